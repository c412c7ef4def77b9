"""FastAPI web server for session-archive.

Routes are plain ``def`` functions so FastAPI runs them in its threadpool;
the archive cache does its own locking.
"""

import logging
import threading

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from .config import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from .core import DetailStatus, SessionDetail
from .export import detail_to_dict, detail_to_json, detail_to_markdown, meta_to_dict
from .service import ArchiveService

logger = logging.getLogger(__name__)

app = FastAPI(title="session-archive", version="0.1.0")

# Service singleton (created on first request)
_service: ArchiveService | None = None
_service_lock = threading.Lock()


def _get_service() -> ArchiveService:
    """Lazily create and keep the archive service."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = ArchiveService()
    return _service


def _list_response(limit: int, if_none_match: str | None) -> Response:
    result = _get_service().list_summaries(limit=limit, etag=if_none_match)
    headers = {"ETag": result.etag, "Cache-Control": "no-cache"}
    if result.not_modified:
        return Response(status_code=304, headers=headers)
    return JSONResponse(
        content=[meta_to_dict(m) for m in result.sessions],
        headers=headers,
    )


def _load_detail(session_id: str) -> SessionDetail:
    result = _get_service().get_detail(session_id)
    if result.status is DetailStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Session not found")
    if result.status is DetailStatus.ERROR:
        logger.error("Failed to load session %s: %s", session_id, result.error)
        raise HTTPException(status_code=500, detail="Failed to load session")
    return result.detail


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/health")
def health():
    """Report where the archive lives and how much of it is cached."""
    service = _get_service()
    stats = service.stats()
    return {
        "status": "ok",
        "sessions_path": str(service.directory),
        "exists": service.directory.is_dir(),
        "cached_sessions": stats.entries,
        "version": stats.version,
    }


@app.get("/api/sessions")
def list_sessions(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    if_none_match: str | None = Header(None),
):
    """Return session summaries, newest first. Honors If-None-Match."""
    return _list_response(limit, if_none_match)


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str):
    """Return one session's summary and full timeline."""
    return detail_to_dict(_load_detail(session_id))


@app.get("/api/export/{session_id}")
def export_session(
    session_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a session as Markdown or JSON."""
    detail = _load_detail(session_id)
    safe_name = "".join(c if c.isalnum() or c in "-_" else "" for c in session_id)[:50] or "session"

    if format == "json":
        return Response(
            content=detail_to_json(detail),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_name}.json"'},
        )
    return Response(
        content=detail_to_markdown(detail),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}.md"'},
    )


@app.get("/api/agents")
def agents(
    action: str | None = Query(None, description="list or detail"),
    id: str | None = Query(None, description="Session id for action=detail"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    if_none_match: str | None = Header(None),
):
    """Query-string variant of the list and detail routes."""
    if action == "list":
        return _list_response(limit, if_none_match)
    if action == "detail" and id:
        return detail_to_dict(_load_detail(id))
    raise HTTPException(status_code=400, detail="Invalid action or missing parameters")

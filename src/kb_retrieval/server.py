"""
FastAPI server exposing the knowledge base over HTTP.

Handlers validate requests, run the index operations in a worker thread and
wrap failures in ``{"error": ...}`` JSON envelopes.
"""

import asyncio
import logging
import threading
import time
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .index import RetrievalIndex, open_index
from .index_config import resolve_index_path, resolve_storage_backend
from .log_config import configure_logging
from .models import (
    MAX_TEXT_CHARS,
    MIN_TEXT_CHARS,
    AddTextRequest,
    AddTextResponse,
    SearchRequest,
    SearchResponse,
    StatsResponse,
)
from .storage import StorageError

logger = logging.getLogger(__name__)

app = FastAPI(title="kb-retrieval", description="Lightweight semantic retrieval over a local knowledge base")

_indexes: dict[tuple[str, str], RetrievalIndex] = {}
_indexes_lock = threading.Lock()
# configuration problems surface as ValueError, filesystem problems as OSError
_INDEX_ERRORS = (StorageError, OSError, ValueError)


def get_index() -> RetrievalIndex:
    """Return the shared index for the configured path, opening it on first use."""
    backend = resolve_storage_backend()
    path = resolve_index_path()
    key = (path, backend)
    with _indexes_lock:
        if key not in _indexes:
            _indexes[key] = open_index(path, backend=backend)
        return _indexes[key]


def reset_indexes() -> None:
    """Forget all opened indexes so the next request re-reads configuration."""
    with _indexes_lock:
        _indexes.clear()


def _session_id(request: Request) -> str:
    return request.headers.get("x-session-id", "").strip() or str(uuid.uuid4())


def _log_event(
    route: str,
    status: str,
    *,
    session_id: str,
    request_id: str,
    started_at: float | None = None,
    **meta: Any,
) -> None:
    details = " ".join(f"{key}={value}" for key, value in meta.items())
    duration = ""
    if started_at is not None:
        duration = f" duration_ms={int((time.perf_counter() - started_at) * 1000)}"
    logger.info(
        "route=%s status=%s session_id=%s request_id=%s%s %s",
        route,
        status,
        session_id,
        request_id,
        duration,
        details,
    )


def _error_response(route: str, exc: Exception, *, session_id: str, request_id: str) -> JSONResponse:
    if isinstance(exc, (StorageError, OSError)):
        error, status_code = "storage_error", 500
    else:
        error, status_code = "config_error", 500
    logger.error(
        "route=%s status=error session_id=%s request_id=%s error=%s",
        route,
        session_id,
        request_id,
        exc,
    )
    return JSONResponse({"error": error, "detail": str(exc)}, status_code=status_code)


@app.post("/api/kb/add_text")
async def add_text(body: AddTextRequest, request: Request):
    """Split plain text into chunks, embed them and persist the index."""
    route = "/api/kb/add_text"
    if len(body.text) < MIN_TEXT_CHARS:
        return JSONResponse({"error": "text_too_short"}, status_code=400)
    if len(body.text) > MAX_TEXT_CHARS:
        return JSONResponse({"error": "text_too_long"}, status_code=400)

    session_id = _session_id(request)
    request_id = str(uuid.uuid4())
    started_at = time.perf_counter()
    _log_event(
        route,
        "started",
        session_id=session_id,
        request_id=request_id,
        title_len=len(body.title or ""),
        text_len=len(body.text),
    )
    try:
        index = await asyncio.to_thread(get_index)
        result = await asyncio.to_thread(
            index.add_document, body.text, title=body.title or None
        )
        stats = index.stats()
    except _INDEX_ERRORS as exc:
        return _error_response(route, exc, session_id=session_id, request_id=request_id)

    _log_event(
        route,
        "ok",
        session_id=session_id,
        request_id=request_id,
        started_at=started_at,
        chunks_added=result.chunks_added,
    )
    return AddTextResponse(
        document_id=result.document_id,
        chunks_added=result.chunks_added,
        stats=StatsResponse(**stats.to_dict()),
    ).model_dump()


@app.get("/api/kb/add_text")
@app.get("/api/kb/stats")
async def index_stats(request: Request):
    """Return dimensionality, chunk count and document count of the index."""
    try:
        index = await asyncio.to_thread(get_index)
    except _INDEX_ERRORS as exc:
        return _error_response(
            request.url.path,
            exc,
            session_id=_session_id(request),
            request_id=str(uuid.uuid4()),
        )
    return StatsResponse(**index.stats().to_dict()).model_dump()


@app.post("/api/kb/search")
async def search_kb(body: SearchRequest, request: Request):
    """Return the top-k documents for a query with assembled excerpts."""
    route = "/api/kb/search"
    if not body.query:
        return JSONResponse({"error": "missing_query"}, status_code=400)

    session_id = _session_id(request)
    request_id = str(uuid.uuid4())
    started_at = time.perf_counter()
    _log_event(
        route,
        "started",
        session_id=session_id,
        request_id=request_id,
        query_len=len(body.query),
        k=body.k,
    )
    try:
        index = await asyncio.to_thread(get_index)
        result = await asyncio.to_thread(index.search, body.query, body.k)
    except _INDEX_ERRORS as exc:
        return _error_response(route, exc, session_id=session_id, request_id=request_id)

    _log_event(
        route,
        "ok",
        session_id=session_id,
        request_id=request_id,
        started_at=started_at,
        items_count=len(result.items),
    )
    return SearchResponse(**result.to_dict()).model_dump()


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    configure_logging()
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    run_server()

"""API routes for probing, pruning and restoring audio tracks."""

import asyncio
import hmac
import time
from contextlib import aclosing
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from audiopruner import __version__
from audiopruner.api.models import (
    AudioStreamResponse,
    ErrorResponse,
    HealthResponse,
    ItemsResponse,
    PruneRequest,
    PruneResponse,
    RestoreRequest,
    RestoreResponse,
    TracksResponse,
    VideoInfo,
)
from audiopruner.core.catalog import LibraryCatalog, LibraryItem
from audiopruner.core.orchestrator import RemuxOrchestrator
from audiopruner.core.tools import resolve_ffmpeg, resolve_ffprobe
from audiopruner.errors import NotFound, ToolNotFound
from audiopruner.models.remux import RemuxRequest
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()
api_router = APIRouter(prefix="/api/v1", tags=["audio"])

ADMIN_HEADER = "X-Api-Key"

ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 404, 409, 500)
}


def get_app_state(request: Request):
    """Dependency to get the application state."""
    return request.app.state.audiopruner


def get_orchestrator(request: Request) -> RemuxOrchestrator:
    """Dependency to get the remux orchestrator."""
    return get_app_state(request).orchestrator


def get_catalog(request: Request) -> LibraryCatalog:
    """Dependency to get the library catalog."""
    return get_app_state(request).catalog


def require_admin(request: Request) -> None:
    """Reject callers without the configured admin token.

    Raises:
        HTTPException: 401 if the header is missing, 403 if it is wrong or
            no token is configured
    """
    expected = get_app_state(request).config.api.admin_token
    if not expected:
        logger.warning("Mutating request refused, no admin token configured", path=request.url.path)
        raise HTTPException(status_code=403, detail="Admin token not configured")

    supplied = request.headers.get(ADMIN_HEADER)
    if not supplied:
        raise HTTPException(status_code=401, detail="Missing admin token")

    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        logger.warning("Invalid admin token", path=request.url.path)
        raise HTTPException(status_code=403, detail="Forbidden")


async def _lookup_item(catalog: LibraryCatalog, item_id: str) -> LibraryItem:
    # A miss rescans the library roots, which must not block the event loop
    loop = asyncio.get_running_loop()
    item = await loop.run_in_executor(None, catalog.get_item, item_id)
    if item is None:
        raise NotFound("item", item_id)
    return item


def _build_request(
    config,
    item: LibraryItem,
    audio_stream_index: int,
    keep_subtitles: Optional[bool],
    keep_chapters: Optional[bool],
    create_backup: Optional[bool],
) -> RemuxRequest:
    defaults = config.remux
    return RemuxRequest(
        source_path=item.path,
        audio_stream_index=audio_stream_index,
        keep_subtitles=defaults.keep_subtitles if keep_subtitles is None else keep_subtitles,
        keep_chapters=defaults.keep_chapters if keep_chapters is None else keep_chapters,
        create_backup=defaults.create_backup if create_backup is None else create_backup,
    )


@api_router.get("/items", response_model=ItemsResponse)
async def list_items(catalog: LibraryCatalog = Depends(get_catalog)):
    """List the videos found under the library roots (rescans first)."""
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, catalog.refresh)
    items = [VideoInfo.from_item(item) for item in catalog.items()]
    return ItemsResponse(count=len(items), items=items)


@api_router.get("/tracks/{item_id}", response_model=TracksResponse)
async def get_audio_tracks(
    item_id: str,
    catalog: LibraryCatalog = Depends(get_catalog),
    orchestrator: RemuxOrchestrator = Depends(get_orchestrator),
):
    """List the audio streams of a video."""
    item = await _lookup_item(catalog, item_id)
    streams = await orchestrator.probe(item.path)
    return TracksResponse(
        video=VideoInfo.from_item(item),
        audio=[AudioStreamResponse.from_descriptor(s) for s in streams],
    )


@api_router.post(
    "/prune",
    response_model=PruneResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(require_admin)],
)
async def prune(
    body: PruneRequest,
    request: Request,
    catalog: LibraryCatalog = Depends(get_catalog),
    orchestrator: RemuxOrchestrator = Depends(get_orchestrator),
):
    """Keep one audio stream, writing a new file beside the original."""
    item = await _lookup_item(catalog, body.item_id)
    remux_request = _build_request(
        get_app_state(request).config,
        item,
        body.audio_stream_index,
        body.keep_subtitles,
        body.keep_chapters,
        body.create_backup,
    )

    logger.info(
        "Prune requested",
        item_id=item.item_id,
        file=str(item.path),
        audio_stream_index=body.audio_stream_index,
    )

    outcome = await orchestrator.remux(remux_request)
    return PruneResponse(
        new_file=str(outcome.output_path),
        backup_file=str(outcome.backup_path) if outcome.backup_path else None,
        warning=f"Backup not created: {outcome.backup_error}" if outcome.backup_error else None,
    )


@api_router.get("/prune/stream", dependencies=[Depends(require_admin)])
async def prune_stream(
    request: Request,
    item_id: str = Query(..., min_length=1),
    audio_stream_index: int = Query(..., ge=0),
    keep_subtitles: Optional[bool] = Query(None),
    keep_chapters: Optional[bool] = Query(None),
    create_backup: Optional[bool] = Query(None),
    catalog: LibraryCatalog = Depends(get_catalog),
    orchestrator: RemuxOrchestrator = Depends(get_orchestrator),
):
    """Keep one audio stream, streaming ffmpeg output as server-sent events.

    Each ffmpeg line is sent as a ``data:`` frame; the stream ends with an
    ``event: done`` (new file) or ``event: error`` (message) frame.
    """
    item = await _lookup_item(catalog, item_id)
    remux_request = _build_request(
        get_app_state(request).config,
        item,
        audio_stream_index,
        keep_subtitles,
        keep_chapters,
        create_backup,
    )

    logger.info(
        "Streaming prune requested",
        item_id=item.item_id,
        file=str(item.path),
        audio_stream_index=audio_stream_index,
    )

    async def event_source():
        async with aclosing(orchestrator.remux_stream(remux_request)) as events:
            async for event in events:
                yield event.to_sse()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@api_router.post(
    "/restore",
    response_model=RestoreResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(require_admin)],
)
async def restore(
    body: RestoreRequest,
    orchestrator: RemuxOrchestrator = Depends(get_orchestrator),
):
    """Replace a file with one of its backups."""
    logger.info("Restore requested", original=body.original_path, backup=body.backup_path)
    await orchestrator.restore(Path(body.original_path), Path(body.backup_path))
    return RestoreResponse(message="Restored from backup.")


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint.

    Reports "degraded" when ffmpeg or ffprobe cannot be resolved.
    """
    app_state = get_app_state(request)
    configured = app_state.config.tools.ffmpeg_path

    ffmpeg_path = ffprobe_path = None
    try:
        ffmpeg_path = str(resolve_ffmpeg(configured))
        ffprobe_path = str(resolve_ffprobe(configured))
    except ToolNotFound as e:
        logger.warning("Media tools unavailable", error=str(e))

    return HealthResponse(
        status="healthy" if ffmpeg_path and ffprobe_path else "degraded",
        version=__version__,
        uptime_seconds=round(time.time() - app_state.start_time, 2),
        ffmpeg_path=ffmpeg_path,
        ffprobe_path=ffprobe_path,
        library_items=len(app_state.catalog.items()),
    )


@router.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "AudioPruner",
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "items": "/api/v1/items",
            "tracks": "/api/v1/tracks/{item_id}",
            "prune": "/api/v1/prune",
            "prune_stream": "/api/v1/prune/stream",
            "restore": "/api/v1/restore",
            "docs": "/docs",
        },
    }

"""FastAPI application exposing the triage engine to a swipe UI.

The server holds one MediaLibrary (set via load_library) and translates
HTTP calls into its operations. Images are served separately from page
listings so a client can fetch card bitmaps lazily.
"""

import io
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from ..engine.library import MediaLibrary
from ..library.models import AssetRef, Category

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Photo Triage",
    description="Swipe through photos, screenshots, videos and flagged content",
    version="0.1.0",
)

# Global state
LIBRARY: Optional[MediaLibrary] = None


def load_library(library: Optional[MediaLibrary]) -> None:
    """Install the library the routes operate on."""
    global LIBRARY
    LIBRARY = library


def get_library() -> MediaLibrary:
    if LIBRARY is None:
        raise HTTPException(status_code=503, detail="Library not loaded")
    return LIBRARY


def parse_category(value: str) -> Category:
    try:
        return Category.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def asset_to_dict(asset: AssetRef) -> dict:
    return {
        "id": asset.identifier,
        "media_kind": asset.media_kind.value,
        "is_screenshot": asset.is_screenshot,
        "created_at": asset.created_at.isoformat(),
    }


class IdentifierRequest(BaseModel):
    identifier: str


class AlbumRequest(BaseModel):
    title: str


class MoveRequest(BaseModel):
    identifier: str
    collection_id: Optional[str] = None
    new_album_title: Optional[str] = None


class SettingsUpdate(BaseModel):
    sensitivity_threshold: Optional[float] = None
    auto_batch_deletions: Optional[bool] = None
    batch_deletion_size: Optional[int] = None


@app.get("/api/status")
async def get_status():
    """Authorization, scan state and deletion queue size."""
    library = get_library()
    state = library.scan_state()
    return {
        "authorization": library.authorization.value,
        "is_scanning": library.signals.is_scanning.value,
        "scan_phase": state.phase.value,
        "scan_progress": state.progress,
        "scan_completed": state.completed,
        "scan_version": state.version,
        "counts_version": library.signals.counts_version.value,
        "deletion_queue_count": library.deletion_queue_count,
        "auto_flush_due": library.auto_flush_due,
    }


@app.get("/api/counts")
def get_counts():
    return get_library().get_counts().to_dict()


@app.post("/api/category/{category}")
async def select_category(category: str):
    """Switch category; returns the token later page requests should carry."""
    return {"token": get_library().select_category(parse_category(category))}


@app.get("/api/page")
def get_page(
    category: str = Query("photos"),
    page: int = Query(0),
    token: Optional[int] = Query(None),
):
    library = get_library()
    parsed = parse_category(category)
    try:
        result = library.load_page(parsed, page, token=token)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "category": parsed.value,
        "page": page,
        "token": result.token,
        "stale": result.stale,
        "exhausted": result.exhausted,
        "items": [asset_to_dict(item.asset) for item in result.items],
    }


@app.get("/api/assets/{identifier:path}/image")
def get_asset_image(identifier: str):
    """JPEG bytes of a card, from the image cache when possible."""
    library = get_library()
    assets = library.source.fetch_by_ids([identifier])
    if not assets:
        raise HTTPException(status_code=404, detail="Asset not found")

    image = library.pagination.load_image(assets[0])
    if image is None:
        raise HTTPException(status_code=422, detail="Asset could not be decoded")

    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=90)
    return Response(content=buffer.getvalue(), media_type="image/jpeg")


@app.post("/api/keep")
def keep_asset(request: IdentifierRequest):
    persisted = get_library().keep(request.identifier)
    return {"identifier": request.identifier, "persisted": persisted}


@app.post("/api/deletions")
def queue_deletion(request: IdentifierRequest):
    library = get_library()
    count = library.enqueue_deletion(request.identifier)
    return {"deletion_queue_count": count, "auto_flush_due": library.auto_flush_due}


@app.post("/api/deletions/flush")
def flush_deletions():
    library = get_library()
    result = library.flush_deletions()
    return {
        "removed_count": result.removed_count,
        "failed": result.failed_identifiers,
        "error": result.error,
        "persisted": result.persisted,
    }


@app.post("/api/deletions/clear")
def clear_deletions():
    restored = get_library().clear_deletions()
    return {"restored": restored}


@app.post("/api/deletions/retry")
def retry_deletions():
    return {"requeued": get_library().retry_failed_deletions()}


@app.get("/api/albums")
def list_albums():
    return {"albums": [{"id": a.id, "title": a.title} for a in get_library().fetch_albums()]}


@app.post("/api/albums")
def create_album(request: AlbumRequest):
    collection_id = get_library().create_album(request.title)
    if collection_id is None:
        raise HTTPException(status_code=400, detail=f"Could not create album {request.title!r}")
    return {"id": collection_id, "title": request.title}


@app.post("/api/move")
def move_to_album(request: MoveRequest):
    library = get_library()
    if request.new_album_title:
        result = library.create_album_and_move(request.new_album_title, request.identifier)
    elif request.collection_id:
        result = library.move_to_album(request.identifier, request.collection_id)
    else:
        raise HTTPException(status_code=400, detail="collection_id or new_album_title required")

    return {"success": result.success, "failed": result.failed, "error": result.error}


@app.post("/api/scan")
def start_scan():
    """Manual re-scan."""
    started = get_library().start_scan()
    return {"started": started}


@app.delete("/api/scan")
def stop_scan():
    get_library().stop_scan()
    return {"stopping": True}


@app.get("/api/settings")
def get_settings():
    return get_library().settings.current.model_dump()


@app.put("/api/settings")
def update_settings(update: SettingsUpdate):
    changes = update.model_dump(exclude_none=True)
    try:
        config = get_library().update_settings(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return config.model_dump()


@app.post("/api/settings/reset")
def reset_settings():
    return get_library().reset_settings().model_dump()

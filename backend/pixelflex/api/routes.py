"""API routes for the per-session conversion queue."""
import asyncio
import logging
import threading
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field

from pixelflex.archive import archive_filename, download_filename, pack
from pixelflex.batch import ConversionQueue, SourceFile, drop_queue, find_queue, get_queue
from pixelflex.collaborators import get_gemini_client
from pixelflex.config import (
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    IMAGE_EXTENSIONS,
    MAX_IMAGE_SIZE_BYTES,
    MAX_IMAGES_PER_UPLOAD,
)
from pixelflex.conversion.errors import ArchiveError, BatchAlreadyRunning, EmptyArchiveError
from pixelflex.conversion.models import FORMAT_LABELS, ConversionItem, ConversionOptions
from pixelflex.conversion.service import ConversionOrchestrator
from pixelflex.resources import ResourceReleasedError, get_registry

logger = logging.getLogger("pixelflex.api")
router = APIRouter(prefix="/api", tags=["pixelflex"])

_cancel_events: dict[str, threading.Event] = {}
_cancel_lock = threading.Lock()


class OptionsBody(BaseModel):
    format: str = DEFAULT_FORMAT
    quality: int = Field(DEFAULT_QUALITY, ge=1, le=100)
    width: Optional[int] = Field(None, ge=1)
    height: Optional[int] = Field(None, ge=1)
    maintain_aspect_ratio: bool = True
    background: Optional[str] = None
    ai_enhance: bool = False


def get_or_create_session_id(request: Request) -> str:
    """Use X-Session-ID header or generate and attach to request for response header."""
    sid = (request.headers.get("X-Session-ID") or "").strip()
    if sid:
        return sid
    sid = str(uuid.uuid4())
    request.state.session_id = sid
    return sid


def _new_queue() -> ConversionQueue:
    client = get_gemini_client()
    registry = get_registry()
    orchestrator = ConversionOrchestrator(enhancer=client.enhance, registry=registry)
    return ConversionQueue(orchestrator=orchestrator, describer=client.describe, registry=registry)


def session_queue(session_id: str = Depends(get_or_create_session_id)) -> ConversionQueue:
    return get_queue(session_id, factory=_new_queue)


def existing_queue(session_id: str = Depends(get_or_create_session_id)) -> Optional[ConversionQueue]:
    """Read-side lookup: never registers a queue for an unknown session."""
    return find_queue(session_id)


def _item_to_dict(item: ConversionItem) -> dict:
    out = item.output
    return {
        "id": item.item_id,
        "filename": item.filename,
        "status": item.status.value,
        "error": item.error,
        "metadata": {
            "width": item.metadata.width,
            "height": item.metadata.height,
            "byte_size": item.metadata.byte_size,
            "mime_type": item.metadata.mime_type,
        },
        "preview_url": item.source.url,
        "output_url": out.url if out is not None else None,
        "output_size": out.size if out is not None else None,
        "download_filename": download_filename(item) if out is not None else None,
    }


def _queue_to_dict(queue: Optional[ConversionQueue]) -> dict:
    if queue is None:
        return {"items": [], "description": "", "all_completed": False, "running": False}
    return {
        "items": [_item_to_dict(i) for i in queue.items],
        "description": queue.description,
        "all_completed": queue.all_completed,
        "running": queue.running,
    }


def _get_item_or_404(queue: Optional[ConversionQueue], item_id: str) -> ConversionItem:
    item = queue.get(item_id) if queue is not None else None
    if item is None:
        raise HTTPException(404, "Item not found")
    return item


def _attachment(data: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/limits")
def get_limits():
    """Return upload limits for the client."""
    return {
        "max_images_per_upload": MAX_IMAGES_PER_UPLOAD,
        "max_image_size_mb": MAX_IMAGE_SIZE_BYTES // (1024 * 1024),
        "max_image_size_bytes": MAX_IMAGE_SIZE_BYTES,
    }


@router.get("/formats")
def get_formats():
    return {
        "input": sorted(IMAGE_EXTENSIONS),
        "output": {label: fmt.value for label, fmt in FORMAT_LABELS.items()},
        "ai_available": get_gemini_client().configured,
    }


@router.post("/queue")
async def add_files(
    files: list[UploadFile] = File(...),
    queue: ConversionQueue = Depends(session_queue),
):
    """Upload images into the session queue. Unsupported, oversize and unreadable files are skipped."""
    if len(files) > MAX_IMAGES_PER_UPLOAD:
        raise HTTPException(400, f"Max {MAX_IMAGES_PER_UPLOAD} images per upload")
    sources: list[SourceFile] = []
    skipped: list[str] = []
    for file in files:
        name = file.filename or "image"
        ext = Path(name).suffix.lower()
        if ext not in IMAGE_EXTENSIONS:
            logger.warning("Skipping unsupported file: %s", name)
            skipped.append(name)
            continue
        data = await file.read(MAX_IMAGE_SIZE_BYTES + 1)
        if len(data) > MAX_IMAGE_SIZE_BYTES:
            logger.warning("Skipping %s: larger than %s bytes", name, MAX_IMAGE_SIZE_BYTES)
            skipped.append(name)
            continue
        sources.append(SourceFile(filename=name, data=data, content_type=file.content_type or IMAGE_EXTENSIONS[ext]))
    rejected: list[SourceFile] = []
    added = await asyncio.to_thread(queue.add, sources, rejected)
    skipped.extend(s.filename for s in rejected)
    return {
        "added": [_item_to_dict(i) for i in added],
        "skipped": skipped,
        "queue_size": len(queue),
    }


@router.get("/queue")
def list_queue(queue: Optional[ConversionQueue] = Depends(existing_queue)):
    return _queue_to_dict(queue)


@router.delete("/queue")
def clear_queue(queue: Optional[ConversionQueue] = Depends(existing_queue)):
    if queue is not None:
        queue.clear()
    return {"ok": True}


def _run_queue(session_id: str, queue: ConversionQueue, options: ConversionOptions, cancel: threading.Event) -> None:
    """Blocking: convert the queue in order. Called in thread."""
    try:
        queue.run_all(options, cancel=cancel)
    except BatchAlreadyRunning:
        logger.warning("Batch for session %s already running", session_id)
    except Exception as e:
        logger.exception("Batch failed for session %s: %s", session_id, e)
    finally:
        with _cancel_lock:
            if _cancel_events.get(session_id) is cancel:
                _cancel_events.pop(session_id, None)


@router.post("/queue/run")
async def run_queue(
    body: OptionsBody,
    background_tasks: BackgroundTasks,
    session_id: str = Depends(get_or_create_session_id),
):
    """Start converting the queue in the background. Poll GET /api/queue for status."""
    try:
        options = ConversionOptions(**body.model_dump())
    except ValueError as e:
        raise HTTPException(400, str(e))
    queue = find_queue(session_id)
    if queue is None or len(queue) == 0:
        raise HTTPException(400, "Queue is empty")
    cancel = threading.Event()
    # A registered event marks a run as started until _run_queue finishes
    with _cancel_lock:
        if queue.running or session_id in _cancel_events:
            raise HTTPException(409, "Conversion already running")
        _cancel_events[session_id] = cancel

    async def run_queue_async():
        await asyncio.to_thread(_run_queue, session_id, queue, options, cancel)

    background_tasks.add_task(run_queue_async)
    return {"status": "processing", "message": "Conversion started. Poll /api/queue for status."}


@router.post("/queue/cancel")
def cancel_queue(session_id: str = Depends(get_or_create_session_id)):
    with _cancel_lock:
        cancel = _cancel_events.get(session_id)
    if cancel is None:
        return {"ok": False, "message": "Nothing running"}
    cancel.set()
    return {"ok": True}


@router.get("/queue/archive")
def download_archive(queue: Optional[ConversionQueue] = Depends(existing_queue)):
    """Zip of every completed item."""
    try:
        data = pack(queue.items if queue is not None else [])
    except EmptyArchiveError:
        raise HTTPException(404, "No completed items to download")
    except ArchiveError as e:
        raise HTTPException(409, e.message)
    return _attachment(data, "application/zip", archive_filename())


@router.get("/queue/{item_id}")
def get_item(item_id: str, queue: Optional[ConversionQueue] = Depends(existing_queue)):
    return _item_to_dict(_get_item_or_404(queue, item_id))


@router.delete("/queue/{item_id}")
def remove_item(item_id: str, queue: Optional[ConversionQueue] = Depends(existing_queue)):
    if queue is None or not queue.remove(item_id):
        raise HTTPException(404, "Item not found")
    return {"ok": True, "queue_size": len(queue)}


@router.get("/queue/{item_id}/preview")
def item_preview(item_id: str, queue: Optional[ConversionQueue] = Depends(existing_queue)):
    item = _get_item_or_404(queue, item_id)
    try:
        return Response(content=item.source.data, media_type=item.source.media_type)
    except ResourceReleasedError:
        raise HTTPException(404, "Preview released")


@router.get("/queue/{item_id}/download")
def item_download(item_id: str, queue: Optional[ConversionQueue] = Depends(existing_queue)):
    """Download one converted item."""
    item = _get_item_or_404(queue, item_id)
    out = item.output
    if out is None:
        raise HTTPException(409, f"Item is {item.status.value}, not completed")
    try:
        return _attachment(out.data, out.media_type, download_filename(item))
    except ResourceReleasedError:
        raise HTTPException(404, "Output released")


@router.get("/resources/{handle}")
def get_resource(handle: str):
    resource = get_registry().get(handle)
    if resource is None:
        raise HTTPException(404, "Resource not found")
    try:
        return Response(content=resource.data, media_type=resource.media_type)
    except ResourceReleasedError:
        raise HTTPException(404, "Resource released")


@router.delete("/session/data")
def session_delete_data(session_id: str = Depends(get_or_create_session_id)):
    """Drop the session queue and release every resource it owned."""
    with _cancel_lock:
        cancel = _cancel_events.pop(session_id, None)
    if cancel is not None:
        cancel.set()
    drop_queue(session_id)
    return {"ok": True, "message": "Session data cleared"}

"""Zip packaging of completed outputs, built entirely in memory."""
import io
import logging
import time
import zipfile
from typing import Iterable, Optional

from pixelflex.config import ARCHIVE_PREFIX, DOWNLOAD_PREFIX
from pixelflex.conversion.errors import ArchiveError, EmptyArchiveError
from pixelflex.conversion.models import ConversionItem, ImageFormat, ItemStatus
from pixelflex.resources import ResourceReleasedError

logger = logging.getLogger("pixelflex.archive")


def base_name(filename: str) -> str:
    """File name without its last extension segment ("a.b.png" -> "a.b")."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    stem, dot, _ = name.rpartition(".")
    if not dot or not stem:
        return name or "image"
    return stem


def output_filename(filename: str, image_format: "str | ImageFormat") -> str:
    return f"{base_name(filename)}.{ImageFormat.parse(image_format).extension}"


def download_filename(item: ConversionItem) -> str:
    """Name offered when a single converted item is downloaded."""
    if item.output is None:
        raise ValueError(f"Item {item.item_id} has no output")
    return f"{DOWNLOAD_PREFIX}{output_filename(item.filename, item.output.image_format)}"


def archive_filename(now: Optional[float] = None) -> str:
    ms = int((time.time() if now is None else now) * 1000)
    return f"{ARCHIVE_PREFIX}-{ms}.zip"


def pack(items: Iterable[ConversionItem]) -> bytes:
    """
    Zip the outputs of all COMPLETED items. Entries are named
    <base>.<ext> after the format each output was encoded to; when two items
    map to the same name the later one wins. Raises EmptyArchiveError if
    nothing is completed.
    """
    completed = [i for i in items if i.status is ItemStatus.COMPLETED and i.output is not None]
    if not completed:
        raise EmptyArchiveError("No completed items to package")

    entries: dict[str, bytes] = {}
    try:
        for item in completed:
            name = output_filename(item.filename, item.output.image_format)
            if name in entries:
                logger.warning("Archive entry %s is duplicated; keeping the later item %s", name, item.item_id[:8])
            entries[name] = item.output.data
    except ResourceReleasedError as e:
        raise ArchiveError(f"Output released while packaging: {e}") from e

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    logger.info("Packed %s entries from %s completed items", len(entries), len(completed))
    return buf.getvalue()

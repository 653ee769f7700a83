"""Read image dimensions without a full decode."""
import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from pixelflex.conversion.errors import DecodeError, MetadataProbeError
from pixelflex.conversion.models import ImageMetadata

logger = logging.getLogger("pixelflex.metadata")


def probe(data: bytes) -> Tuple[int, int]:
    """Return (width, height) from the image header. Raises MetadataProbeError."""
    if not data:
        raise MetadataProbeError("Empty file")
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise MetadataProbeError(f"Not a readable image: {e}") from e
    if width <= 0 or height <= 0:
        raise MetadataProbeError(f"Image reports {width}x{height}")
    return width, height


def read_metadata(data: bytes, content_type: Optional[str] = None) -> ImageMetadata:
    width, height = probe(data)
    mime_type = content_type
    if not mime_type:
        with Image.open(io.BytesIO(data)) as img:
            mime_type = img.get_format_mimetype() or "application/octet-stream"
    return ImageMetadata(width=width, height=height, byte_size=len(data), mime_type=mime_type)


def decode(data: bytes) -> Image.Image:
    """Fully load an image into memory. Raises DecodeError."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            # Animated sources contribute their first frame only
            if getattr(img, "is_animated", False):
                img.seek(0)
            return img.copy()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        logger.warning("Decode failed: %s", e)
        raise DecodeError(f"Failed to load image for conversion: {e}") from e

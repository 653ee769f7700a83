"""Conversion item, options and format models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from PIL import ImageColor

from pixelflex.resources import BinaryResource


class ImageFormat(str, Enum):
    PNG = "image/png"
    JPEG = "image/jpeg"
    WEBP = "image/webp"
    SVG = "image/svg+xml"
    GIF = "image/gif"
    BMP = "image/bmp"

    @property
    def extension(self) -> str:
        return FORMAT_EXTENSIONS[self]

    @property
    def supports_alpha(self) -> bool:
        return self is not ImageFormat.JPEG

    @classmethod
    def parse(cls, value: "str | ImageFormat") -> "ImageFormat":
        """Accept a MIME type, a label (PNG, JPG) or an extension (jpg, .webp)."""
        if isinstance(value, ImageFormat):
            return value
        raw = (value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            pass
        key = raw.lstrip(".")
        for fmt, ext in FORMAT_EXTENSIONS.items():
            if key == ext or key == fmt.name.lower():
                return fmt
        raise ValueError(f"Unsupported output format: {value}")


# MIME subtype -> extension, with jpeg -> jpg and svg+xml -> svg normalized
FORMAT_EXTENSIONS = {
    ImageFormat.PNG: "png",
    ImageFormat.JPEG: "jpg",
    ImageFormat.WEBP: "webp",
    ImageFormat.SVG: "svg",
    ImageFormat.GIF: "gif",
    ImageFormat.BMP: "bmp",
}

# User-facing labels, as offered in the options panel
FORMAT_LABELS = {
    "PNG": ImageFormat.PNG,
    "JPG": ImageFormat.JPEG,
    "WEBP": ImageFormat.WEBP,
    "SVG": ImageFormat.SVG,
    "GIF": ImageFormat.GIF,
    "BMP": ImageFormat.BMP,
}


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ConversionOptions:
    format: ImageFormat = ImageFormat.PNG
    quality: int = 90
    width: Optional[int] = None
    height: Optional[int] = None
    maintain_aspect_ratio: bool = True
    background: Optional[str] = None
    ai_enhance: bool = False

    def __post_init__(self):
        self.format = ImageFormat.parse(self.format)
        if isinstance(self.quality, bool) or not 1 <= int(self.quality) <= 100:
            raise ValueError(f"quality must be between 1 and 100, got {self.quality}")
        self.quality = int(self.quality)
        for axis in ("width", "height"):
            value = getattr(self, axis)
            if value is not None and int(value) <= 0:
                raise ValueError(f"{axis} must be a positive integer, got {value}")
        if self.background is not None:
            self.background = self.background.strip() or None
        if self.background is not None:
            # Raises ValueError for anything Pillow cannot parse
            ImageColor.getrgb(self.background)


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    byte_size: int
    mime_type: str


class ConversionItem:
    """One queued image and its conversion state.

    Status only changes through the mark_* methods, which keep the invariant:
    output is set iff COMPLETED, error is set iff FAILED.
    """

    def __init__(self, item_id: str, filename: str, source: BinaryResource, metadata: ImageMetadata):
        self.item_id = item_id
        self.filename = filename
        self.source = source
        self.metadata = metadata
        self._status = ItemStatus.PENDING
        self._output: Optional[BinaryResource] = None
        self._error: Optional[str] = None

    @property
    def status(self) -> ItemStatus:
        return self._status

    @property
    def output(self) -> Optional[BinaryResource]:
        return self._output

    @property
    def error(self) -> Optional[str]:
        return self._error

    def mark_processing(self) -> None:
        # FAILED items may be attempted again in place
        if self._status not in (ItemStatus.PENDING, ItemStatus.FAILED):
            raise ValueError(f"Cannot start item {self.item_id} from status {self._status.value}")
        self._status = ItemStatus.PROCESSING
        self._error = None

    def mark_completed(self, output: BinaryResource) -> None:
        self._require_processing()
        self._status = ItemStatus.COMPLETED
        self._output = output
        self._error = None

    def mark_failed(self, message: str) -> None:
        self._require_processing()
        self._status = ItemStatus.FAILED
        self._output = None
        self._error = message or "Conversion failed"

    def reset(self) -> Optional[BinaryResource]:
        """Back to PENDING. Returns the detached output so the owner can release it."""
        output = self._output
        self._status = ItemStatus.PENDING
        self._output = None
        self._error = None
        return output

    def _require_processing(self) -> None:
        if self._status is not ItemStatus.PROCESSING:
            raise ValueError(f"Item {self.item_id} is not processing (status {self._status.value})")

    def __repr__(self) -> str:
        return f"<ConversionItem {self.item_id[:8]} {self.filename!r} {self._status.value}>"

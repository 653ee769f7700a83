"""Shared fixtures: in-memory sample images and isolated registries."""
import io
import os

import pytest
from PIL import Image, ImageDraw

from pixelflex.batch import ConversionQueue, SourceFile
from pixelflex.conversion.models import ConversionItem, ImageMetadata
from pixelflex.conversion.service import ConversionOrchestrator
from pixelflex.resources import ResourceRegistry


def image_bytes(size=(80, 60), mode="RGB", color="red", fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def transparent_png(size=(40, 40)) -> bytes:
    """Fully transparent canvas with an opaque blue square in the middle."""
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    w, h = size
    draw.rectangle([w // 4, h // 4, 3 * w // 4, 3 * h // 4], fill=(0, 0, 255, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def truncated_png(size=(64, 64)) -> bytes:
    """Header parses (so probing works) but pixel data is cut off."""
    noise = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buf = io.BytesIO()
    noise.save(buf, format="PNG")
    data = buf.getvalue()
    return data[: len(data) // 2]


def open_bytes(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def registry():
    reg = ResourceRegistry()
    yield reg
    reg.release_all()


@pytest.fixture
def make_item(registry):
    """Build a PENDING item directly, bypassing the queue's metadata probe."""
    counter = {"n": 0}

    def _make(data: bytes, filename: str = None, width: int = 80, height: int = 60) -> ConversionItem:
        counter["n"] += 1
        source = registry.register(data, "image/png")
        return ConversionItem(
            item_id=f"item-{counter['n']}",
            filename=filename or f"image{counter['n']}.png",
            source=source,
            metadata=ImageMetadata(width=width, height=height, byte_size=len(data), mime_type="image/png"),
        )

    return _make


@pytest.fixture
def make_queue(registry):
    def _make(enhancer=None, describer=None) -> ConversionQueue:
        orchestrator = ConversionOrchestrator(enhancer=enhancer, registry=registry)
        return ConversionQueue(orchestrator=orchestrator, describer=describer, registry=registry)

    return _make


@pytest.fixture
def sources():
    return [
        SourceFile("first.png", image_bytes((80, 60), color="red"), "image/png"),
        SourceFile("second.jpg", image_bytes((100, 50), color="green", fmt="JPEG"), "image/jpeg"),
        SourceFile("third.gif", image_bytes((30, 30), mode="P", color=3, fmt="GIF"), "image/gif"),
    ]

"""Render a decoded image onto a target surface and serialize it.

SVG output is a PNG raster embedded in a minimal SVG container. It is not a
vector trace: it scales like the raster it wraps and weighs about a third
more than the PNG because of base64.
"""
import base64
import io
import logging
from typing import Optional

from PIL import Image, ImageColor

from pixelflex.config import DEFAULT_BACKGROUND, WEBP_EFFORT
from pixelflex.conversion.errors import EncodeError
from pixelflex.conversion.models import ConversionOptions, ImageFormat
from pixelflex.resources import BinaryResource, ResourceRegistry, get_registry

logger = logging.getLogger("pixelflex.encoder")

SVG_TEMPLATE = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}">'
    '<image href="data:image/png;base64,{payload}" width="{w}" height="{h}" />'
    "</svg>"
)


def _needs_fill(options: ConversionOptions) -> bool:
    return bool(options.background) or not options.format.supports_alpha


def render_surface(img: Image.Image, target_width: int, target_height: int, options: ConversionOptions) -> Image.Image:
    """
    Produce an RGBA surface of exactly (target_width, target_height) with the
    source stretched to fill it. Backgrounds are filled first when a color is
    set or the format has no alpha channel.
    """
    source = img if img.mode == "RGBA" else img.convert("RGBA")
    if source.size == (target_width, target_height):
        drawn = source.copy()
    else:
        drawn = source.resize((target_width, target_height), Image.Resampling.LANCZOS)
    if not _needs_fill(options):
        return drawn
    fill = ImageColor.getcolor(options.background or DEFAULT_BACKGROUND, "RGBA")
    surface = Image.new("RGBA", (target_width, target_height), fill)
    surface.alpha_composite(drawn)
    return surface


def _serialize(surface: Image.Image, options: ConversionOptions) -> bytes:
    fmt = options.format
    buf = io.BytesIO()
    if fmt is ImageFormat.JPEG:
        surface.convert("RGB").save(buf, format="JPEG", quality=options.quality, optimize=True)
    elif fmt is ImageFormat.WEBP:
        surface.save(buf, format="WEBP", quality=options.quality, method=WEBP_EFFORT)
    elif fmt is ImageFormat.PNG:
        surface.save(buf, format="PNG", optimize=True)
    elif fmt is ImageFormat.GIF:
        surface.save(buf, format="GIF")
    elif fmt is ImageFormat.BMP:
        surface.save(buf, format="BMP")
    elif fmt is ImageFormat.SVG:
        surface.save(buf, format="PNG", optimize=True)
        payload = base64.b64encode(buf.getvalue()).decode("ascii")
        w, h = surface.size
        return SVG_TEMPLATE.format(w=w, h=h, payload=payload).encode("utf-8")
    else:
        raise EncodeError(f"No encoder for {fmt}")
    return buf.getvalue()


def encode(
    img: Image.Image,
    target_width: int,
    target_height: int,
    options: ConversionOptions,
    registry: Optional[ResourceRegistry] = None,
) -> BinaryResource:
    """Render and serialize; returns an owned resource the caller must release."""
    registry = registry or get_registry()
    try:
        surface = render_surface(img, target_width, target_height, options)
        data = _serialize(surface, options)
    except EncodeError:
        raise
    except (OSError, ValueError, KeyError, MemoryError) as e:
        logger.warning("Encoding to %s failed: %s", options.format.name, e)
        raise EncodeError(f"Could not encode {options.format.name} {target_width}x{target_height}: {e}") from e
    resource = registry.register(data, options.format.value, image_format=options.format.value)
    logger.info(
        "Encoded %sx%s %s (%s bytes)", target_width, target_height, options.format.name, resource.size
    )
    return resource

"""Target dimension resolution for a resize request."""
import logging
import math
from typing import Optional, Tuple

from pixelflex.conversion.errors import InvalidDimensions
from pixelflex.conversion.models import ConversionOptions

logger = logging.getLogger("pixelflex.geometry")


def _round(value: float) -> int:
    # half-up, not banker's rounding
    return int(math.floor(value + 0.5))


def resolve_dimensions(
    source_width: int,
    source_height: int,
    options: ConversionOptions,
) -> Tuple[int, int]:
    """
    Compute (width, height) for the output surface.
    - neither width nor height set: source size.
    - aspect ratio not kept: set axes as given, unset axes from the source.
    - aspect ratio kept, one axis set: the other follows the source ratio.
    - aspect ratio kept, both set: fit within both bounds.
    Raises InvalidDimensions if either axis ends up below 1 pixel.
    """
    if source_width <= 0 or source_height <= 0:
        raise InvalidDimensions(f"Invalid source dimensions {source_width}x{source_height}")
    target_width: Optional[int] = options.width
    target_height: Optional[int] = options.height

    if target_width is None and target_height is None:
        w, h = source_width, source_height
    elif not options.maintain_aspect_ratio:
        w = target_width if target_width is not None else source_width
        h = target_height if target_height is not None else source_height
    elif target_height is None:
        w = target_width
        h = _round(target_width * source_height / source_width)
    elif target_width is None:
        w = _round(target_height * source_width / source_height)
        h = target_height
    elif target_width * source_height <= target_height * source_width:
        # width is the binding bound; compare cross products to keep it exact
        w = target_width
        h = _round(source_height * target_width / source_width)
    else:
        w = _round(source_width * target_height / source_height)
        h = target_height

    if w < 1 or h < 1:
        raise InvalidDimensions(
            f"Resize {source_width}x{source_height} -> {w}x{h} collapses an axis to zero"
        )
    logger.debug("Resolved %sx%s -> %sx%s", source_width, source_height, w, h)
    return w, h

"""Per-item conversion: optional enhancement, decode, resize, encode."""
import base64
import binascii
import logging
import threading
from typing import Callable, Optional

from pixelflex.conversion.encoder import encode
from pixelflex.conversion.errors import (
    BatchCancelled,
    ConversionError,
    EnhancementUnavailable,
)
from pixelflex.conversion.geometry import resolve_dimensions
from pixelflex.conversion.metadata import decode
from pixelflex.conversion.models import ConversionItem, ConversionOptions, ItemStatus
from pixelflex.resources import ResourceRegistry, get_registry

logger = logging.getLogger("pixelflex.service")

# base64 in, base64 (or None) out
Enhancer = Callable[[str], Optional[str]]
ItemCallback = Callable[[ConversionItem], None]


class ConversionOrchestrator:
    """Drives a single item through the pipeline and records the outcome on it."""

    def __init__(
        self,
        enhancer: Optional[Enhancer] = None,
        registry: Optional[ResourceRegistry] = None,
    ):
        self.enhancer = enhancer
        self.registry = registry or get_registry()

    def _enhanced_source(self, item: ConversionItem) -> bytes:
        """Enhanced bytes when the collaborator delivers, otherwise the original."""
        original = item.source.data
        if self.enhancer is None:
            logger.info("AI enhancement requested but no enhancer configured; using original")
            return original
        try:
            result = self.enhancer(base64.b64encode(original).decode("ascii"))
        except EnhancementUnavailable as e:
            logger.info("Enhancement unavailable for %s: %s", item.filename, e.message)
            return original
        except Exception as e:
            logger.warning("Enhancement failed for %s: %s", item.filename, e, exc_info=True)
            return original
        if not result:
            return original
        if result.startswith("data:") and "," in result:
            result = result.split(",", 1)[1]
        try:
            return base64.b64decode(result, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning("Enhancer returned undecodable payload for %s: %s", item.filename, e)
            return original

    def run(
        self,
        item: ConversionItem,
        options: ConversionOptions,
        cancel: Optional[threading.Event] = None,
        on_update: Optional[ItemCallback] = None,
    ) -> ConversionItem:
        """
        Convert one item in place. Completed items are left untouched.
        Per-item errors end in FAILED; only BatchCancelled propagates.
        """
        if item.status is ItemStatus.COMPLETED:
            return item
        item.mark_processing()
        if on_update:
            on_update(item)
        try:
            source = item.source.data
            if options.ai_enhance:
                if cancel is not None and cancel.is_set():
                    item.reset()
                    if on_update:
                        on_update(item)
                    raise BatchCancelled("Batch cancelled before enhancement", item_id=item.item_id)
                source = self._enhanced_source(item)
            img = decode(source)
            width, height = resolve_dimensions(img.width, img.height, options)
            output = encode(img, width, height, options, registry=self.registry)
            item.mark_completed(output)
            logger.info("Converted %s -> %sx%s %s", item.filename, width, height, options.format.name)
        except BatchCancelled:
            raise
        except ConversionError as e:
            logger.warning("Conversion failed for %s: %s", item.filename, e.message)
            item.mark_failed(e.message)
        except Exception as e:
            logger.exception("Conversion failed for %s: %s", item.filename, e)
            item.mark_failed(str(e) or e.__class__.__name__)
        if on_update:
            on_update(item)
        return item

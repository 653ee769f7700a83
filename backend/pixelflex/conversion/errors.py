"""Conversion error taxonomy.

Per-item errors (InvalidDimensions, DecodeError, EncodeError) are recorded on
the item by the orchestrator. Collaborator errors (EnhancementUnavailable,
MetadataProbeError) are absorbed by their callers. Archive errors reach the
caller.
"""
from typing import Optional


class ConversionError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.item_id = item_id


class InvalidDimensions(ConversionError):
    """Target size resolves to zero or less on an axis."""


class DecodeError(ConversionError):
    """Source bytes are not a loadable image."""


class EncodeError(ConversionError):
    """Render surface or serialization failure."""


class EnhancementUnavailable(ConversionError):
    """The AI collaborator could not produce a result (no key, quota, network)."""


class MetadataProbeError(ConversionError):
    """Dimensions could not be read at enqueue time."""


class ArchiveError(ConversionError):
    pass


class EmptyArchiveError(ArchiveError):
    """Pack requested with no completed items."""


class BatchCancelled(ConversionError):
    """A cooperative cancellation stopped run_all."""


class BatchAlreadyRunning(ConversionError):
    pass

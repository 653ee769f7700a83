"""In-memory binary resources addressed by handle.

A handle plays the role of an object URL: the registry keeps the bytes alive
until the owner releases them, and /api/resources/{handle} serves them.
"""
import logging
import threading
import uuid
from typing import Optional

logger = logging.getLogger("pixelflex.resources")


class ResourceReleasedError(RuntimeError):
    pass


class BinaryResource:
    """Immutable byte buffer with a media type. Owned by whoever registered it."""

    def __init__(self, handle: str, data: bytes, media_type: str, image_format: Optional[str] = None):
        self.handle = handle
        self.media_type = media_type
        # MIME value of the ImageFormat the bytes were encoded to, if any
        self.image_format = image_format
        self._data: Optional[bytes] = bytes(data)
        self._size = len(self._data)

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise ResourceReleasedError(f"Resource {self.handle} has been released")
        return self._data

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def url(self) -> str:
        return f"/api/resources/{self.handle}"

    def _drop(self) -> None:
        self._data = None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self._size} bytes"
        return f"<BinaryResource {self.handle[:8]} {self.media_type} {state}>"


class ResourceRegistry:
    """Thread-safe handle -> resource map with explicit release."""

    def __init__(self):
        self._resources: dict[str, BinaryResource] = {}
        self._lock = threading.Lock()

    def register(self, data: bytes, media_type: str, image_format: Optional[str] = None) -> BinaryResource:
        resource = BinaryResource(uuid.uuid4().hex, data, media_type, image_format)
        with self._lock:
            self._resources[resource.handle] = resource
        logger.debug("Registered %r", resource)
        return resource

    def get(self, handle: str) -> Optional[BinaryResource]:
        with self._lock:
            return self._resources.get(handle)

    def release(self, resource: Optional[BinaryResource]) -> None:
        """Drop the bytes and forget the handle. Safe to call twice or with None."""
        if resource is None:
            return
        with self._lock:
            self._resources.pop(resource.handle, None)
        resource._drop()
        logger.debug("Released %r", resource)

    def release_all(self) -> None:
        with self._lock:
            resources = list(self._resources.values())
            self._resources.clear()
        for resource in resources:
            resource._drop()

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def __contains__(self, handle: str) -> bool:
        with self._lock:
            return handle in self._resources


# Singleton
_registry: Optional[ResourceRegistry] = None


def get_registry() -> ResourceRegistry:
    global _registry
    if _registry is None:
        _registry = ResourceRegistry()
    return _registry

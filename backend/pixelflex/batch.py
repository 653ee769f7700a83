"""In-memory conversion queue. Items run strictly one at a time, in queue order."""
import base64
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from pixelflex.config import DESCRIPTION_FALLBACK
from pixelflex.conversion.errors import BatchAlreadyRunning, BatchCancelled, MetadataProbeError
from pixelflex.conversion.metadata import read_metadata
from pixelflex.conversion.models import ConversionItem, ConversionOptions, ItemStatus
from pixelflex.conversion.service import ConversionOrchestrator, ItemCallback
from pixelflex.resources import ResourceRegistry, get_registry

logger = logging.getLogger("pixelflex.batch")

Describer = Callable[[str], str]


@dataclass
class SourceFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None


class ConversionQueue:
    """Owns the ordered items of one session and their resources."""

    def __init__(
        self,
        orchestrator: Optional[ConversionOrchestrator] = None,
        describer: Optional[Describer] = None,
        registry: Optional[ResourceRegistry] = None,
    ):
        self.registry = registry or get_registry()
        self.orchestrator = orchestrator or ConversionOrchestrator(registry=self.registry)
        self.describer = describer
        self.description = ""
        self._items: list[ConversionItem] = []
        self._lock = threading.RLock()
        self._run_lock = threading.Lock()

    @property
    def items(self) -> list[ConversionItem]:
        with self._lock:
            return list(self._items)

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    @property
    def all_completed(self) -> bool:
        with self._lock:
            return bool(self._items) and all(i.status is ItemStatus.COMPLETED for i in self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, item_id: str) -> Optional[ConversionItem]:
        with self._lock:
            for item in self._items:
                if item.item_id == item_id:
                    return item
        return None

    def add(
        self, sources: Iterable[SourceFile], rejected: Optional[list[SourceFile]] = None
    ) -> list[ConversionItem]:
        """
        Probe and enqueue each source as PENDING, keeping input order. Unreadable
        files are skipped and, when `rejected` is given, appended to it.
        """
        added: list[ConversionItem] = []
        seen = 0
        for src in sources:
            seen += 1
            try:
                metadata = read_metadata(src.data, src.content_type)
            except MetadataProbeError as e:
                logger.warning("Skipping %s: %s", src.filename, e.message)
                if rejected is not None:
                    rejected.append(src)
                continue
            preview = self.registry.register(src.data, metadata.mime_type)
            item = ConversionItem(
                item_id=str(uuid.uuid4()),
                filename=src.filename,
                source=preview,
                metadata=metadata,
            )
            added.append(item)
        with self._lock:
            self._items.extend(added)
        logger.info("Queued %s of %s files", len(added), seen)
        return added

    def _release(self, item: ConversionItem) -> None:
        self.registry.release(item.source)
        self.registry.release(item.output)

    def remove(self, item_id: str) -> bool:
        """Drop an item and release its resources. Returns False if it was not queued."""
        with self._lock:
            item = next((i for i in self._items if i.item_id == item_id), None)
            if item is None:
                return False
            self._items.remove(item)
            if not self._items:
                self.description = ""
        # An item still in flight keeps its source until the orchestrator hands it back
        if item.status is not ItemStatus.PROCESSING:
            self._release(item)
        logger.info("Removed %s", item.filename)
        return True

    def clear(self) -> None:
        with self._lock:
            items = self._items
            self._items = []
            self.description = ""
        for item in items:
            if item.status is not ItemStatus.PROCESSING:
                self._release(item)
        logger.info("Cleared %s items", len(items))

    def _describe(self, item: ConversionItem) -> None:
        if self.describer is None:
            return
        try:
            text = self.describer(base64.b64encode(item.source.data).decode("ascii"))
            self.description = (text or "").strip() or DESCRIPTION_FALLBACK
        except Exception as e:
            logger.warning("Description failed for %s: %s", item.filename, e)
            self.description = DESCRIPTION_FALLBACK

    def run_all(
        self,
        options: ConversionOptions,
        cancel: Optional[threading.Event] = None,
        on_update: Optional[ItemCallback] = None,
    ) -> list[ConversionItem]:
        """
        Convert every non-completed item in queue order. Stops between items
        (or before an enhancement call) once `cancel` is set.
        """
        if not self._run_lock.acquire(blocking=False):
            raise BatchAlreadyRunning("A batch is already running for this queue")
        try:
            for item in self.items:
                if cancel is not None and cancel.is_set():
                    logger.info("Batch cancelled before %s", item.filename)
                    break
                if item.status is ItemStatus.COMPLETED:
                    continue
                with self._lock:
                    if item not in self._items:
                        continue
                cancelled = False
                try:
                    self.orchestrator.run(item, options, cancel=cancel, on_update=on_update)
                except BatchCancelled:
                    logger.info("Batch cancelled at %s", item.filename)
                    cancelled = True
                with self._lock:
                    still_queued = item in self._items
                    is_first = still_queued and self._items[0] is item
                if not still_queued:
                    # Removed while converting: nobody owns the result any more
                    self._release(item)
                if cancelled:
                    break
                if is_first and item.status is ItemStatus.COMPLETED:
                    self._describe(item)
            return self.items
        finally:
            self._run_lock.release()


# One queue per session, kept in memory only
_queues: dict[str, ConversionQueue] = {}
_queues_lock = threading.Lock()
QueueFactory = Callable[[], ConversionQueue]


def get_queue(session_id: str, factory: Optional[QueueFactory] = None) -> ConversionQueue:
    with _queues_lock:
        queue = _queues.get(session_id)
        if queue is None:
            queue = factory() if factory else ConversionQueue()
            _queues[session_id] = queue
        return queue


def find_queue(session_id: str) -> Optional[ConversionQueue]:
    """Look up a session's queue without creating one."""
    with _queues_lock:
        return _queues.get(session_id)


def drop_queue(session_id: str) -> bool:
    with _queues_lock:
        queue = _queues.pop(session_id, None)
    if queue is None:
        return False
    queue.clear()
    return True


def drop_all_queues() -> None:
    with _queues_lock:
        session_ids = list(_queues)
    for sid in session_ids:
        drop_queue(sid)

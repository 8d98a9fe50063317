"""Ordered queue of submitted images and their per-item conversion state.

Items are frozen snapshots. Every mutation swaps a whole item, so readers never
see a half-updated record, and subscribers are notified after each change.
"""
import dataclasses
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from converter.client.outputs import OutputHandle
from converter.config import ACCEPTED_INPUT_TYPES

logger = logging.getLogger("converter.store")


class ItemStatus(str, Enum):
    READY = "ready"
    WORKING = "working"
    DONE = "done"
    ERROR = "error"


ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.READY: frozenset({ItemStatus.WORKING}),
    ItemStatus.WORKING: frozenset({ItemStatus.DONE, ItemStatus.ERROR}),
    ItemStatus.DONE: frozenset({ItemStatus.WORKING}),
    ItemStatus.ERROR: frozenset({ItemStatus.WORKING}),
}


class InvalidTransition(ValueError):
    pass


@dataclass(frozen=True)
class SourceFile:
    """Original file as submitted: name, MIME type and bytes."""

    name: str
    mime_type: str
    data: bytes = dataclasses.field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        path = Path(path)
        mime, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, mime_type=mime or "application/octet-stream", data=path.read_bytes())


@dataclass(frozen=True)
class QueuedItem:
    id: int
    source: SourceFile
    status: ItemStatus = ItemStatus.READY
    progress: int = 0
    output: Optional[OutputHandle] = None
    error: Optional[str] = None

    @property
    def output_size(self) -> Optional[int]:
        return self.output.size if self.output is not None else None

    @property
    def started(self) -> bool:
        return self.status is not ItemStatus.READY


Listener = Callable[[tuple[QueuedItem, ...]], None]


def is_accepted(source: SourceFile) -> bool:
    return source.mime_type.lower() in ACCEPTED_INPUT_TYPES


class ItemStore:
    """Owns the queue. Constructed per session, torn down with ``clear``."""

    def __init__(self):
        self._items: list[QueuedItem] = []
        self._next_id = 1
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> tuple[QueuedItem, ...]:
        return tuple(self._items)

    def ids(self) -> list[int]:
        return [it.id for it in self._items]

    def get(self, item_id: int) -> Optional[QueuedItem]:
        for it in self._items:
            if it.id == item_id:
                return it
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(items)`` after every mutation. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.items()
        for listener in list(self._listeners):
            listener(snapshot)

    def _index(self, item_id: int) -> Optional[int]:
        for i, it in enumerate(self._items):
            if it.id == item_id:
                return i
        return None

    def _replace(self, item_id: int, **changes) -> bool:
        i = self._index(item_id)
        if i is None:
            logger.debug("Item %s no longer queued; ignoring %s", item_id, sorted(changes))
            return False
        self._items[i] = dataclasses.replace(self._items[i], **changes)
        self._notify()
        return True

    def append(self, sources: Iterable[SourceFile]) -> int:
        """Queue the JPEG/PNG sources; returns how many were accepted."""
        sources = list(sources)
        accepted = [s for s in sources if is_accepted(s)]
        for s in sources:
            if not is_accepted(s):
                logger.warning("Skipping unsupported file: %s (%s)", s.name, s.mime_type)
        if not accepted:
            return 0
        for s in accepted:
            self._items.append(QueuedItem(id=self._next_id, source=s))
            self._next_id += 1
        logger.info("Queued %s file(s), %s total", len(accepted), len(self._items))
        self._notify()
        return len(accepted)

    def clear(self) -> None:
        """Release every output, then drop the queue."""
        released = 0
        for it in self._items:
            if it.output is not None:
                it.output.release()
                released += 1
        count = len(self._items)
        self._items = []
        logger.info("Cleared %s item(s), released %s output(s)", count, released)
        self._notify()

    def set_status(self, item_id: int, status: ItemStatus) -> bool:
        """Checked transition; progress moves with the status (0, or 100 for ``done``)."""
        if status is ItemStatus.WORKING:
            return self.start_attempt(item_id)
        it = self.get(item_id)
        if it is None:
            return False
        self._check(it, status)
        progress = 100 if status is ItemStatus.DONE else 0
        return self._replace(item_id, status=status, progress=progress)

    def set_progress(self, item_id: int, pct: float) -> bool:
        value = int(round(max(0.0, min(100.0, float(pct)))))
        it = self.get(item_id)
        if it is None or it.progress == value:
            return it is not None
        return self._replace(item_id, progress=value)

    def set_output(self, item_id: int, output: Optional[OutputHandle]) -> bool:
        """Hand ``output`` to the item, releasing the one it held before.

        If the item is gone the handle has no owner and is released here.
        """
        it = self.get(item_id)
        if it is None:
            if output is not None:
                output.release()
            return False
        if it.output is not None and it.output is not output:
            it.output.release()
        return self._replace(item_id, output=output)

    def set_error(self, item_id: int, message: Optional[str]) -> bool:
        return self._replace(item_id, error=message)

    # Composite transitions used by the orchestrator. Each is a single swap.

    def _check(self, it: QueuedItem, status: ItemStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[it.status]:
            raise InvalidTransition(f"Item {it.id}: {it.status.value} -> {status.value} is not allowed")

    def start_attempt(self, item_id: int) -> bool:
        """Drop the previous output and error, reset progress, enter ``working``."""
        it = self.get(item_id)
        if it is None:
            return False
        self._check(it, ItemStatus.WORKING)
        if it.output is not None:
            it.output.release()
        return self._replace(item_id, status=ItemStatus.WORKING, progress=0, output=None, error=None)

    def complete(self, item_id: int, output: OutputHandle) -> bool:
        it = self.get(item_id)
        if it is None:
            output.release()
            return False
        self._check(it, ItemStatus.DONE)
        if it.output is not None and it.output is not output:
            it.output.release()
        return self._replace(item_id, status=ItemStatus.DONE, progress=100, output=output)

    def fail(self, item_id: int, message: str) -> bool:
        it = self.get(item_id)
        if it is None:
            return False
        self._check(it, ItemStatus.ERROR)
        return self._replace(item_id, status=ItemStatus.ERROR, progress=0, error=message)

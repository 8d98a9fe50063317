"""Batch conversion: drives queued items through the transfer client.

Runs on one asyncio loop. ``working`` is never re-entered for an item, and
``convert_all`` issues one request at a time unless ``max_concurrency`` is
raised. Every conversion failure is caught per item; a batch always runs to
the end and reports how many items succeeded.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from converter.client.errors import ConversionError
from converter.client.outputs import DiskOutputSink, download_name
from converter.client.store import ItemStatus, ItemStore, QueuedItem, SourceFile
from converter.client.summary import BatchSummary, ProgressPolicy, batch_summary, global_progress, started_items
from converter.client.transfer import Capabilities, TransferClient, normalize_format
from converter.config import DEFAULT_FORMAT, DEFAULT_QUALITY, MAX_CONCURRENCY, OUTPUT_FORMATS

logger = logging.getLogger("converter.orchestrator")


class ConvertOutcome(str, Enum):
    CONVERTED = "converted"
    ALREADY_DONE = "already_done"
    SKIPPED_RUNNING = "skipped_running"
    FAILED = "failed"
    NOT_FOUND = "not_found"

    @property
    def ok(self) -> bool:
        return self in (ConvertOutcome.CONVERTED, ConvertOutcome.ALREADY_DONE)


class StatusKind(str, Enum):
    NONE = ""
    OK = "ok"
    BAD = "bad"


@dataclass(frozen=True)
class StatusLine:
    message: str = ""
    kind: StatusKind = StatusKind.NONE


@dataclass(frozen=True)
class BatchResult:
    succeeded: int
    total: int

    @property
    def ok(self) -> bool:
        return self.succeeded == self.total


@dataclass
class ConversionSettings:
    """Output format and quality applied to the next conversion attempt."""

    output_format: str = DEFAULT_FORMAT
    quality: int = DEFAULT_QUALITY

    def __post_init__(self):
        self.output_format = normalize_format(self.output_format)
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {self.output_format}")
        self.quality = int(self.quality)


class BatchConverter:
    """Coordinates the store, the transfer client and the output sink."""

    def __init__(
        self,
        store: ItemStore,
        transfer: TransferClient,
        sink: DiskOutputSink,
        settings: Optional[ConversionSettings] = None,
        max_concurrency: int = MAX_CONCURRENCY,
        progress_policy: ProgressPolicy = started_items,
    ):
        self.store = store
        self.transfer = transfer
        self.sink = sink
        self.settings = settings or ConversionSettings()
        self.max_concurrency = max(1, max_concurrency)
        self.progress_policy = progress_policy
        self.capabilities: Optional[Capabilities] = None
        self._status = StatusLine()
        self._batch_running = False
        self._listeners: list[Callable[[], None]] = []
        store.subscribe(lambda _items: self._notify())

    # Read side

    @property
    def status(self) -> StatusLine:
        return self._status

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    def current_items(self) -> tuple[QueuedItem, ...]:
        return self.store.items()

    def current_summary(self) -> Optional[BatchSummary]:
        return batch_summary(self.store.items())

    def global_progress(self) -> int:
        return global_progress(self.store.items(), self.progress_policy)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """``listener()`` runs after every item change and status change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _set_status(self, message: str, kind: StatusKind = StatusKind.NONE) -> None:
        self._status = StatusLine(message, kind)
        self._notify()

    # Queue management

    def add_files(self, sources: Iterable[SourceFile]) -> int:
        accepted = self.store.append(sources)
        if not accepted:
            self._set_status("Only JPG/PNG files are supported.", StatusKind.BAD)
        else:
            self._set_status(f"Added: {accepted} file(s).", StatusKind.OK)
        return accepted

    def clear(self) -> None:
        self.store.clear()
        self._set_status("")

    async def refresh_capabilities(self) -> Optional[Capabilities]:
        try:
            self.capabilities = await self.transfer.capabilities()
        except ConversionError as e:
            logger.warning("Capabilities probe failed: %s", e.message)
            self.capabilities = None
        return self.capabilities

    def format_available(self, output_format: Optional[str] = None) -> Optional[bool]:
        """None while unknown; the endpoint gets the final word either way."""
        if self.capabilities is None:
            return None
        return self.capabilities.supports(output_format or self.settings.output_format)

    # Conversion

    async def convert_one(self, item_id: int, force: bool = False) -> ConvertOutcome:
        item = self.store.get(item_id)
        if item is None:
            return ConvertOutcome.NOT_FOUND
        if item.status is ItemStatus.WORKING:
            logger.debug("Item %s already converting; skipped", item_id)
            return ConvertOutcome.SKIPPED_RUNNING
        if item.status is ItemStatus.DONE and not force:
            return ConvertOutcome.ALREADY_DONE

        output_format = self.settings.output_format
        quality = self.settings.quality
        self.store.start_attempt(item_id)

        try:
            result = await self.transfer.convert(
                item.source,
                output_format,
                quality,
                on_progress=lambda pct: self.store.set_progress(item_id, pct),
            )
        except ConversionError as e:
            logger.warning("Conversion of %s failed: %s", item.source.name, e.message)
            if not self.store.fail(item_id, e.message):
                return ConvertOutcome.NOT_FOUND
            self._set_status(e.message, StatusKind.BAD)
            return ConvertOutcome.FAILED
        except BaseException:
            self.store.fail(item_id, "Conversion interrupted")
            raise

        if self.store.get(item_id) is None:
            logger.info("Item %s was cleared during conversion; result dropped", item_id)
            return ConvertOutcome.NOT_FOUND
        try:
            handle = self.sink.store(item_id, download_name(item.source.name, output_format), result.data)
        except OSError as e:
            message = f"Could not store output: {e}"
            logger.error("Storing output for %s failed: %s", item.source.name, e)
            self.store.fail(item_id, message)
            self._set_status(message, StatusKind.BAD)
            return ConvertOutcome.FAILED

        self.store.complete(item_id, handle)
        logger.info(
            "Converted %s: %s -> %s bytes", item.source.name, item.source.size, handle.size
        )
        return ConvertOutcome.CONVERTED

    async def retry(self, item_id: int) -> ConvertOutcome:
        """Retry a failed item or reconvert a finished one."""
        return await self.convert_one(item_id, force=True)

    async def _convert_bounded(self, ids: list[int]) -> list[ConvertOutcome]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(item_id: int) -> ConvertOutcome:
            async with semaphore:
                return await self.convert_one(item_id, force=True)

        tasks = [asyncio.ensure_future(run(i)) for i in ids]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def convert_all(self) -> BatchResult:
        """Reconvert every queued item with the current settings."""
        if self._batch_running:
            logger.warning("Batch conversion already running; request ignored")
            return BatchResult(0, 0)
        ids = self.store.ids()
        if not ids:
            return BatchResult(0, 0)

        self._batch_running = True
        self._set_status("Converting batch...")
        try:
            if self.max_concurrency == 1:
                outcomes = []
                for item_id in ids:
                    outcomes.append(await self.convert_one(item_id, force=True))
            else:
                outcomes = await self._convert_bounded(ids)
        finally:
            self._batch_running = False

        result = BatchResult(succeeded=sum(1 for o in outcomes if o.ok), total=len(ids))
        if result.ok:
            self._set_status(f"Done. Converted: {result.succeeded}/{result.total}", StatusKind.OK)
        else:
            self._set_status(f"Finished with errors: {result.succeeded}/{result.total}", StatusKind.BAD)
        logger.info("Batch finished: %s/%s converted", result.succeeded, result.total)
        return result

from .errors import (
    ConversionError,
    EmptyOutputError,
    PayloadTooLargeError,
    ServerConversionError,
    TransportError,
    ValidationError,
)
from .orchestrator import BatchConverter, BatchResult, ConversionSettings, ConvertOutcome, StatusKind, StatusLine
from .outputs import DiskOutputSink, OutputHandle
from .store import InvalidTransition, ItemStatus, ItemStore, QueuedItem, SourceFile
from .summary import BatchSummary, batch_summary, global_progress, pct_saved, pretty_bytes
from .transfer import Capabilities, ConvertedResult, TransferClient

__all__ = [
    "BatchConverter",
    "BatchResult",
    "BatchSummary",
    "Capabilities",
    "ConversionError",
    "ConversionSettings",
    "ConvertOutcome",
    "ConvertedResult",
    "DiskOutputSink",
    "EmptyOutputError",
    "InvalidTransition",
    "ItemStatus",
    "ItemStore",
    "OutputHandle",
    "PayloadTooLargeError",
    "QueuedItem",
    "ServerConversionError",
    "SourceFile",
    "StatusKind",
    "StatusLine",
    "TransferClient",
    "TransportError",
    "ValidationError",
    "batch_summary",
    "global_progress",
    "pct_saved",
    "pretty_bytes",
]

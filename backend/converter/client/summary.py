"""Derived views over the queue: global progress, byte totals, savings."""
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from converter.client.store import QueuedItem

PLACEHOLDER = "–"
_UNITS = ["B", "KB", "MB", "GB"]

ProgressPolicy = Callable[[Sequence[QueuedItem]], Sequence[QueuedItem]]


def pretty_bytes(n: Optional[float]) -> str:
    """0 -> "0 B", 1536 -> "1.50 KB", 1048576 -> "1.00 MB"."""
    if n is None or isinstance(n, bool) or not isinstance(n, (int, float)) or not math.isfinite(n):
        return PLACEHOLDER
    i = 0
    value = float(n)
    while value >= 1024 and i < len(_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{value:.{0 if i == 0 else 2}f} {_UNITS[i]}"


def saved_percent(total_in: Optional[int], total_out: Optional[int]) -> Optional[float]:
    if not total_in or not total_out:
        return None
    return (1 - total_out / total_in) * 100


def pct_saved(total_in: Optional[int], total_out: Optional[int]) -> str:
    pct = saved_percent(total_in, total_out)
    return PLACEHOLDER if pct is None else f"{pct:.1f}%"


def started_items(items: Sequence[QueuedItem]) -> Sequence[QueuedItem]:
    """Average over items that have started; all items while none has."""
    started = [it for it in items if it.started]
    return started or items


def all_items(items: Sequence[QueuedItem]) -> Sequence[QueuedItem]:
    return items


def global_progress(items: Sequence[QueuedItem], policy: ProgressPolicy = started_items) -> int:
    if not items:
        return 0
    counted = policy(items)
    if not counted:
        return 0
    return math.floor(sum(it.progress for it in counted) / len(counted) + 0.5)


@dataclass(frozen=True)
class BatchSummary:
    total_input: int
    total_output: int

    @property
    def saved_bytes(self) -> int:
        return self.total_input - self.total_output

    @property
    def saved_percent(self) -> Optional[float]:
        return saved_percent(self.total_input, self.total_output)

    def describe(self) -> dict[str, str]:
        return {
            "input": pretty_bytes(self.total_input),
            "output": pretty_bytes(self.total_output),
            "saved": f"{pretty_bytes(self.saved_bytes)} ({pct_saved(self.total_input, self.total_output)})",
        }


def batch_summary(items: Sequence[QueuedItem]) -> Optional[BatchSummary]:
    """None (hidden) until some item holds an output."""
    if not any(it.output_size is not None for it in items):
        return None
    total_in = sum(it.source.size for it in items)
    total_out = sum(it.output_size for it in items if it.output_size is not None)
    return BatchSummary(total_input=total_in, total_output=total_out)

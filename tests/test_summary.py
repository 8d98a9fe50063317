from pathlib import Path

import pytest

from converter.client.outputs import OutputHandle
from converter.client.store import ItemStatus, QueuedItem, SourceFile
from converter.client.summary import (
    PLACEHOLDER,
    all_items,
    batch_summary,
    global_progress,
    pct_saved,
    pretty_bytes,
)


def _item(item_id: int, size: int, status=ItemStatus.READY, progress=0, out: int | None = None) -> QueuedItem:
    output = OutputHandle(Path(f"/nonexistent/{item_id}.webp"), out) if out is not None else None
    return QueuedItem(
        id=item_id,
        source=SourceFile(f"{item_id}.jpg", "image/jpeg", b"x" * size),
        status=status,
        progress=progress,
        output=output,
    )


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0 B"),
        (512, "512 B"),
        (1536, "1.50 KB"),
        (1048576, "1.00 MB"),
        (3 * 1024 ** 3, "3.00 GB"),
        (5 * 1024 ** 4, "5120.00 GB"),
        (None, PLACEHOLDER),
        (float("inf"), PLACEHOLDER),
    ],
)
def test_pretty_bytes(value, expected):
    assert pretty_bytes(value) == expected


def test_pct_saved():
    assert pct_saved(1_000_000, 250_000) == "75.0%"
    assert pct_saved(1000, 1100) == "-10.0%"
    assert pct_saved(0, 250_000) == PLACEHOLDER
    assert pct_saved(1000, 0) == PLACEHOLDER


def test_global_progress_empty_queue():
    assert global_progress([]) == 0


def test_global_progress_averages_all_items_before_any_started():
    items = [_item(1, 10), _item(2, 10)]
    assert global_progress(items) == 0


def test_global_progress_ignores_items_not_started():
    items = [
        _item(1, 10, ItemStatus.DONE, 100),
        _item(2, 10, ItemStatus.WORKING, 50),
        _item(3, 10),
        _item(4, 10),
    ]
    assert global_progress(items) == 75
    assert global_progress(items, policy=all_items) == 38


def test_global_progress_counts_errors_as_zero():
    items = [_item(1, 10, ItemStatus.DONE, 100), _item(2, 10, ItemStatus.ERROR, 0)]
    assert global_progress(items) == 50


def test_summary_hidden_until_an_output_exists():
    items = [_item(1, 100, ItemStatus.WORKING, 40), _item(2, 100)]
    assert batch_summary(items) is None


def test_summary_totals():
    items = [
        _item(1, 1000, ItemStatus.DONE, 100, out=250),
        _item(2, 3000, ItemStatus.DONE, 100, out=750),
        _item(3, 1000, ItemStatus.ERROR),
    ]
    summary = batch_summary(items)
    assert summary.total_input == 5000
    assert summary.total_output == 1000
    assert summary.saved_bytes == 4000
    assert summary.saved_percent == pytest.approx(80.0)
    assert summary.describe() == {"input": "4.88 KB", "output": "1000 B", "saved": "3.91 KB (80.0%)"}

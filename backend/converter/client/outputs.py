"""Ownership of converted bytes. Each handle is a file released exactly once."""
import itertools
import logging
import re
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger("converter.outputs")


class OutputHandle:
    """Converted image written to disk, owned by one queued item."""

    def __init__(self, path: Path, size: int):
        self.path = path
        self.size = size
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def read_bytes(self) -> bytes:
        if self._released:
            raise RuntimeError(f"Output {self.path.name} already released")
        return self.path.read_bytes()

    def release(self) -> None:
        if self._released:
            raise RuntimeError(f"Output {self.path.name} released twice")
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.path, e)

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"OutputHandle({self.path.name!r}, {self.size}, {state})"


class DiskOutputSink:
    """Writes converted bytes into ``output_dir`` as ``<stem>.<ext>``."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def store(self, item_id: int, filename: str, data: bytes) -> OutputHandle:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for path in self._candidates(item_id, filename):
            try:
                with open(path, "xb") as f:
                    f.write(data)
            except FileExistsError:
                continue
            logger.debug("Stored output %s (%s bytes)", path.name, len(data))
            return OutputHandle(path, len(data))

    def _candidates(self, item_id: int, filename: str) -> Iterator[Path]:
        safe = re.sub(r"[^\w.\- ]+", "_", filename).strip() or "image"
        yield self.output_dir / safe
        stem, dot, ext = safe.rpartition(".")
        if not dot:
            stem, ext = safe, ""
        suffix = f".{ext}" if ext else ""
        yield self.output_dir / f"{stem}_{item_id}{suffix}"
        for n in itertools.count(2):
            yield self.output_dir / f"{stem}_{item_id}_{n}{suffix}"


def download_name(source_name: Optional[str], output_format: str) -> str:
    """Filename offered for a converted item: original stem plus the format's extension."""
    ext = "jpg" if output_format == "jpeg" else output_format
    stem = re.sub(r"\.[^.]+$", "", source_name or "") or "image"
    return f"{stem}.{ext}"

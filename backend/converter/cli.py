"""Command-line batch conversion against a running conversion endpoint.

Usage:
    convert-batch photos/*.jpg --format webp --quality 55 --out converted/
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from converter.client import (
    BatchConverter,
    ConversionSettings,
    DiskOutputSink,
    ItemStatus,
    ItemStore,
    SourceFile,
    TransferClient,
    pct_saved,
    pretty_bytes,
)
from converter.client.summary import PLACEHOLDER
from converter.config import (
    CONVERTER_URL,
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    MAX_CONCURRENCY,
    OUTPUT_DIR,
    OUTPUT_FORMATS,
)

logger = logging.getLogger("converter.cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Convert JPEG/PNG images to AVIF/WebP/JPEG via the converter API")
    p.add_argument("files", nargs="+", type=Path, help="Images to convert")
    p.add_argument("-f", "--format", default=DEFAULT_FORMAT, choices=OUTPUT_FORMATS + ["jpg"])
    p.add_argument("-q", "--quality", type=int, default=DEFAULT_QUALITY, help="1-95")
    p.add_argument("--url", default=CONVERTER_URL, help="Converter API base URL")
    p.add_argument("-o", "--out", type=Path, default=OUTPUT_DIR, help="Output directory")
    p.add_argument("-j", "--concurrency", type=int, default=MAX_CONCURRENCY, help="Parallel requests (1 = sequential)")
    return p


class ProgressPrinter:
    """Logs an item's progress when it moves by at least ``step`` percent."""

    def __init__(self, converter: BatchConverter, step: int = 25):
        self.converter = converter
        self.step = step
        self._last: dict[int, tuple[ItemStatus, int]] = {}
        self._last_status = ""

    def __call__(self) -> None:
        for it in self.converter.current_items():
            prev_status, prev_pct = self._last.get(it.id, (None, -self.step))
            if it.status != prev_status or it.progress - prev_pct >= self.step:
                logger.info("[%s] %s %s%% (overall %s%%)", it.source.name, it.status.value, it.progress, self.converter.global_progress())
                self._last[it.id] = (it.status, it.progress)
        status = self.converter.status.message
        if status and status != self._last_status:
            logger.info("%s", status)
        self._last_status = status


def print_report(converter: BatchConverter) -> None:
    for it in converter.current_items():
        out = pretty_bytes(it.output_size) if it.output_size is not None else PLACEHOLDER
        saved = pct_saved(it.source.size, it.output_size)
        line = f"{it.source.name:<40} {it.status.value:<8} {pretty_bytes(it.source.size):>10} -> {out:>10} {saved:>7}"
        if it.error:
            line += f"  {it.error}"
        elif it.output is not None:
            line += f"  {it.output.path}"
        print(line)
    summary = converter.current_summary()
    if summary is not None:
        d = summary.describe()
        print(f"Total: {d['input']} -> {d['output']}, saved {d['saved']}")


def load_sources(paths: list[Path]) -> list[SourceFile]:
    sources = []
    for path in paths:
        if not path.is_file():
            logger.warning("Not a file: %s", path)
            continue
        sources.append(SourceFile.from_path(path))
    return sources


async def run(args: argparse.Namespace) -> int:
    settings = ConversionSettings(output_format=args.format, quality=args.quality)
    async with TransferClient(args.url) as transfer:
        converter = BatchConverter(
            ItemStore(),
            transfer,
            DiskOutputSink(args.out),
            settings=settings,
            max_concurrency=args.concurrency,
        )
        converter.subscribe(ProgressPrinter(converter))

        if not converter.add_files(load_sources(args.files)):
            return 2

        await converter.refresh_capabilities()
        if converter.format_available() is False:
            logger.warning("Server reports %s as unavailable; sending anyway", settings.output_format)

        result = await converter.convert_all()
        print_report(converter)
        return 0 if result.ok else 1


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

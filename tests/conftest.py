"""Shared fixtures: generated images, an in-memory transfer double, a fake endpoint, output sinks."""

from __future__ import annotations

import asyncio
import io
import os
from pathlib import Path
from typing import Callable, Optional

import pytest
from aiohttp import web
from PIL import Image

from converter.client.outputs import DiskOutputSink, OutputHandle
from converter.client.store import SourceFile
from converter.client.transfer import Capabilities, ConvertedResult


def make_image_bytes(fmt: str = "JPEG", size: tuple[int, int] = (64, 48), noise: bool = False, mode: str = "RGB") -> bytes:
    if noise:
        img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    else:
        img = Image.new(mode, size, (200, 80, 40, 128) if mode == "RGBA" else (200, 80, 40))
    buf = io.BytesIO()
    save_kw = {"quality": 95} if fmt == "JPEG" else {}
    img.save(buf, format=fmt, **save_kw)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def make_source() -> Callable[..., SourceFile]:
    def _make(name: str = "photo.jpg", mime_type: str = "image/jpeg", data: Optional[bytes] = None) -> SourceFile:
        if data is None:
            data = make_image_bytes("PNG" if mime_type == "image/png" else "JPEG")
        return SourceFile(name=name, mime_type=mime_type, data=data)

    return _make


class RecordingSink(DiskOutputSink):
    """Disk sink that remembers every handle it issued."""

    def __init__(self, output_dir: Path):
        super().__init__(output_dir)
        self.handles: list[OutputHandle] = []

    def store(self, item_id: int, filename: str, data: bytes) -> OutputHandle:
        handle = super().store(item_id, filename, data)
        self.handles.append(handle)
        return handle


@pytest.fixture
def sink(tmp_path: Path) -> RecordingSink:
    return RecordingSink(tmp_path / "out")


class FakeTransfer:
    """Transfer double: records calls, can block on a gate or fail per file name."""

    def __init__(self):
        self.calls: list[tuple[str, str, int]] = []
        self.active = 0
        self.max_active = 0
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}
        self.delay = 0.0
        self.caps: Optional[Capabilities] = Capabilities(avif=False, webp=True, jpeg=True)
        self.caps_error: Optional[Exception] = None

    async def convert(self, source, output_format, quality, on_progress=None) -> ConvertedResult:
        self.calls.append((source.name, output_format, quality))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if on_progress:
                on_progress(25)
            gate = self.gates.get(source.name)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(self.delay)
            if on_progress:
                on_progress(75)
            if source.name in self.failures:
                raise self.failures[source.name]
            if on_progress:
                on_progress(100)
            return ConvertedResult(data=b"x" * max(1, source.size // 4), content_type=f"image/{output_format}")
        finally:
            self.active -= 1

    async def capabilities(self) -> Capabilities:
        if self.caps_error is not None:
            raise self.caps_error
        return self.caps


@pytest.fixture
def fake_transfer() -> FakeTransfer:
    return FakeTransfer()


async def _read_image(request: web.Request) -> dict:
    reader = await request.multipart()
    part = await reader.next()
    data = await part.read()
    return {
        "field": part.name,
        "filename": part.filename,
        "content_type": part.headers.get("Content-Type"),
        "size": len(data),
        "query": dict(request.query),
    }


@pytest.fixture
def endpoint(aiohttp_server):
    """Start a fake conversion endpoint whose /convert is ``handler``."""

    async def start(handler, capabilities=None):
        app = web.Application()
        app["calls"] = []

        async def convert(request: web.Request):
            request.app["calls"].append(await _read_image(request))
            return await handler(request)

        async def caps(request: web.Request):
            return web.json_response(capabilities or {"avif": False, "webp": True, "jpg": True})

        app.router.add_post("/convert", convert)
        app.router.add_get("/capabilities", caps)
        server = await aiohttp_server(app)
        return server, str(server.make_url("/"))

    return start

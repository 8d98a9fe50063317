"""Upload one image to the conversion endpoint and download the result.

Progress is reported in two halves: 0-50 while the multipart body is sent,
50-100 while the converted bytes arrive (only when the response has a
Content-Length). 100 is always reported on success.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import aiohttp

from converter.client.errors import (
    EmptyOutputError,
    PayloadTooLargeError,
    ServerConversionError,
    TransportError,
    ValidationError,
)
from converter.client.store import SourceFile, is_accepted
from converter.config import (
    CLIENT_TIMEOUT_SEC,
    CONVERTER_URL,
    MAX_ERROR_TEXT,
    OUTPUT_FORMATS,
    UPLOAD_CHUNK_SIZE,
)

logger = logging.getLogger("converter.transfer")

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class ConvertedResult:
    data: bytes
    content_type: str
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Capabilities:
    avif: bool
    webp: bool
    jpeg: bool

    def supports(self, output_format: str) -> bool:
        fmt = normalize_format(output_format)
        return fmt in ("avif", "webp", "jpeg") and getattr(self, fmt)

    @classmethod
    def from_dict(cls, data: dict) -> "Capabilities":
        return cls(
            avif=bool(data.get("avif")),
            webp=bool(data.get("webp")),
            jpeg=bool(data.get("jpg", data.get("jpeg"))),
        )


def normalize_format(output_format: str) -> str:
    fmt = (output_format or "").strip().lower()
    return "jpeg" if fmt == "jpg" else fmt


class _Progress:
    """Forwards only increasing integer percentages, capped at 100."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last = -1

    def __call__(self, pct: float) -> None:
        value = int(min(100.0, max(0.0, pct)))
        if value <= self._last:
            return
        self._last = value
        if self._callback is not None:
            self._callback(value)


def _error_message(status: int, content_type: str, body: bytes) -> tuple[str, Optional[str]]:
    """Server detail from a JSON ``error`` field, else raw text, else a status line."""
    fallback = f"Server returned {status} ({content_type or 'unknown'})"
    text = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        return (text.strip()[:MAX_ERROR_TEXT] or fallback), None
    if isinstance(data, dict):
        error = data.get("error")
        code = data.get("code")
        return (str(error)[:MAX_ERROR_TEXT] if error else fallback), (str(code) if code else None)
    return fallback, None


def _filename_from(resp: aiohttp.ClientResponse) -> Optional[str]:
    disposition = resp.content_disposition
    return disposition.filename if disposition is not None else None


class TransferClient:
    """One aiohttp session against the conversion endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = CLIENT_TIMEOUT_SEC,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = (base_url or CONVERTER_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.chunk_size = max(1, chunk_size)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "TransferClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def capabilities(self) -> Capabilities:
        """GET /capabilities."""
        url = f"{self.base_url}/capabilities"
        try:
            async with self._get_session().get(url) as resp:
                body = await resp.read()
                if not 200 <= resp.status < 300:
                    message, code = _error_message(resp.status, resp.content_type, body)
                    raise ServerConversionError(message, resp.status, code)
                try:
                    data = json.loads(body)
                except ValueError:
                    raise ServerConversionError("Capabilities response is not JSON", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Network error: {e!s}" if str(e) else "Network error") from e
        if not isinstance(data, dict):
            raise ServerConversionError("Capabilities response is not an object", 200)
        return Capabilities.from_dict(data)

    async def _upload_body(self, data: bytes, report: _Progress) -> AsyncIterator[bytes]:
        total = len(data)
        for start in range(0, total, self.chunk_size):
            chunk = data[start:start + self.chunk_size]
            yield chunk
            report((start + len(chunk)) / total * 50)

    def _form(self, source: SourceFile, report: _Progress) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field(
            "image",
            self._upload_body(source.data, report),
            filename=source.name,
            content_type=source.mime_type,
        )
        return form

    async def convert(
        self,
        source: SourceFile,
        output_format: str,
        quality: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConvertedResult:
        """POST /convert for one file. Raises a ConversionError subclass on failure."""
        fmt = normalize_format(output_format)
        if fmt not in OUTPUT_FORMATS:
            raise ValidationError(f"Unsupported output format: {output_format}. Use avif/webp/jpeg.")
        if isinstance(quality, bool) or not isinstance(quality, int):
            raise ValidationError(f"Quality must be an integer, got {quality!r}")
        if not is_accepted(source):
            raise ValidationError(f"Only JPG/PNG files are supported: {source.name} ({source.mime_type})")
        if not source.data:
            raise ValidationError(f"{source.name} is empty")

        report = _Progress(on_progress)
        url = f"{self.base_url}/convert"
        params = {"format": fmt, "quality": str(quality)}
        logger.info("Converting %s (%s bytes) to %s q=%s", source.name, source.size, fmt, quality)
        try:
            async with self._get_session().post(url, params=params, data=self._form(source, report)) as resp:
                report(50)
                content_type = resp.content_type or ""
                if not 200 <= resp.status < 300 or not content_type.startswith("image/"):
                    body = await resp.read()
                    message, code = _error_message(resp.status, content_type, body)
                    if resp.status == 413:
                        raise PayloadTooLargeError(message, code)
                    if code == "EMPTY_OUTPUT":
                        raise EmptyOutputError(message)
                    raise ServerConversionError(message, resp.status, code)
                data = await self._download(resp, report)
                filename = _filename_from(resp)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Transfer of %s failed: %r", source.name, e)
            raise TransportError(f"Network error: {e!s}" if str(e) else "Network error") from e

        if not data:
            raise EmptyOutputError("Server returned an empty file (0 B).")
        report(100)
        logger.info("Received %s (%s bytes) for %s", content_type, len(data), source.name)
        return ConvertedResult(data=data, content_type=content_type, filename=filename)

    async def _download(self, resp: aiohttp.ClientResponse, report: _Progress) -> bytes:
        total = resp.content_length
        received = 0
        chunks: list[bytes] = []
        async for chunk in resp.content.iter_chunked(self.chunk_size):
            chunks.append(chunk)
            received += len(chunk)
            if total:
                report(50 + min(received, total) / total * 50)
        return b"".join(chunks)

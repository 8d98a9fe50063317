"""API routes for single-shot conversion."""
import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from converter.config import MAX_UPLOAD_BYTES, MAX_UPLOAD_MB
from converter.conversion import (
    EmptyOutputError,
    OutputFormat,
    UnsupportedFormatError,
    capabilities,
    convert_image,
    parse_quality,
)

logger = logging.getLogger("converter.api")
router = APIRouter(tags=["converter"])

UPLOAD_READ_CHUNK = 1024 * 1024


class CodedHTTPException(HTTPException):
    """HTTPException carrying a machine-readable ``code`` for the error body."""

    def __init__(self, status_code: int, detail: str, code: str):
        super().__init__(status_code, detail)
        self.code = code


async def _read_limited(upload: UploadFile) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while chunk := await upload.read(UPLOAD_READ_CHUNK):
        total += len(chunk)
        if total > MAX_UPLOAD_BYTES:
            raise CodedHTTPException(
                413,
                f"Upload exceeds the server limit of {MAX_UPLOAD_MB} MB.",
                "LIMIT_FILE_SIZE",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/capabilities")
def get_capabilities():
    """Output formats the server can produce."""
    return capabilities()


@router.post("/convert")
async def convert(
    image: Optional[UploadFile] = File(None),
    format: str = Query("avif", description="avif | webp | jpeg (jpg)"),
    quality: Optional[str] = Query(None, description="1-95, default 55"),
):
    """Convert one uploaded image and return the encoded bytes."""
    if image is None:
        raise HTTPException(400, "Missing image file")
    try:
        output_format = OutputFormat.parse(format)
    except ValueError:
        raise HTTPException(400, "Unsupported format. Use avif/webp/jpg.")
    q = parse_quality(quality)

    data = await _read_limited(image)
    if not data:
        raise HTTPException(400, "Missing image file")

    try:
        result = await run_in_threadpool(convert_image, data, output_format, q)
    except UnsupportedFormatError as e:
        raise HTTPException(400, str(e))
    except EmptyOutputError as e:
        raise CodedHTTPException(500, str(e), "EMPTY_OUTPUT")
    except Exception as e:
        logger.exception("Conversion failed for %s: %s", image.filename, e)
        raise HTTPException(500, "Conversion failed")

    filename = result.filename_for(image.filename)
    logger.info("Converted %s -> %s (%s bytes)", image.filename, filename, result.size)
    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

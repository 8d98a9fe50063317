"""Single-shot image re-encoding with Pillow."""
import io
import logging
import math
from typing import Optional

from PIL import Image, ImageOps

from converter.config import DEFAULT_QUALITY, MAX_QUALITY, MIN_QUALITY
from converter.conversion.models import ConvertedImage, OutputFormat

logger = logging.getLogger("converter.service")


class UnsupportedFormatError(ValueError):
    """Requested output format is unknown or missing from this Pillow build."""


class EmptyOutputError(RuntimeError):
    """Encoder finished without producing any bytes."""


def capabilities() -> dict[str, bool]:
    """Which output formats this Pillow build (plus registered plugins) can write."""
    Image.init()
    return {
        "avif": "AVIF" in Image.SAVE,
        "webp": "WEBP" in Image.SAVE,
        "jpg": True,
    }


def parse_quality(raw: Optional[str]) -> int:
    """Parse the quality query value; non-numbers fall back to the default, numbers are clamped."""
    try:
        value = float(raw) if raw is not None and raw.strip() != "" else float(DEFAULT_QUALITY)
    except ValueError:
        return DEFAULT_QUALITY
    if not math.isfinite(value):
        return DEFAULT_QUALITY
    return int(round(min(MAX_QUALITY, max(MIN_QUALITY, value))))


def _flatten_alpha(img: Image.Image) -> Image.Image:
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def convert_image(data: bytes, output_format: OutputFormat, quality: int) -> ConvertedImage:
    """Decode ``data``, apply EXIF orientation and encode it as ``output_format``."""
    caps = capabilities()
    if output_format is OutputFormat.AVIF and not caps["avif"]:
        raise UnsupportedFormatError("This Pillow build cannot write AVIF. Try WebP.")
    if output_format is OutputFormat.WEBP and not caps["webp"]:
        raise UnsupportedFormatError("This Pillow build cannot write WebP.")

    with Image.open(io.BytesIO(data)) as img:
        work = ImageOps.exif_transpose(img)
        save_kw: dict = {"quality": quality}
        if output_format is OutputFormat.JPEG:
            work = _flatten_alpha(work)
            save_kw["optimize"] = True
        elif work.mode in ("P", "LA"):
            work = work.convert("RGBA")
        elif work.mode not in ("RGB", "RGBA"):
            work = work.convert("RGB")
        buf = io.BytesIO()
        work.save(buf, format=output_format.pillow_format, **save_kw)

    out = buf.getvalue()
    if not out:
        raise EmptyOutputError("Conversion produced empty output.")
    logger.info("Encoded %s bytes -> %s bytes as %s (q=%s)", len(data), len(out), output_format.value, quality)
    return ConvertedImage(data=out, output_format=output_format)

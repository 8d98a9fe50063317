"""Conversion request/response models."""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutputFormat(str, Enum):
    AVIF = "avif"
    WEBP = "webp"
    JPEG = "jpeg"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OutputFormat":
        """Accept the query-string spelling, including the "jpg" alias."""
        name = (value or "").strip().lower()
        if name == "jpg":
            name = "jpeg"
        return cls(name)

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is OutputFormat.JPEG else self.value

    @property
    def pillow_format(self) -> str:
        return self.value.upper()


@dataclass
class ConvertedImage:
    data: bytes
    output_format: OutputFormat

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return self.output_format.mime_type

    def filename_for(self, original_name: Optional[str]) -> str:
        stem = re.sub(r"\.[^.]+$", "", original_name or "") or "image"
        return f"{stem}.{self.output_format.extension}"

from .service import EmptyOutputError, UnsupportedFormatError, capabilities, convert_image, parse_quality
from .models import ConvertedImage, OutputFormat

__all__ = [
    "ConvertedImage",
    "EmptyOutputError",
    "OutputFormat",
    "UnsupportedFormatError",
    "capabilities",
    "convert_image",
    "parse_quality",
]

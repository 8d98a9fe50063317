"""Failures of a single item conversion, as seen by the batch client."""
from typing import Optional


class ConversionError(Exception):
    """Base class; ``message`` is what the user gets to read."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ConversionError):
    """Rejected before any network call (unsupported input kind, bad parameters)."""


class TransportError(ConversionError):
    """The endpoint could not be reached or the connection broke."""


class ServerConversionError(ConversionError):
    """The endpoint answered but declined or failed the conversion."""

    def __init__(self, message: str, status: int, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class PayloadTooLargeError(ServerConversionError):
    """HTTP 413 from the endpoint."""

    def __init__(self, detail: Optional[str] = None, code: Optional[str] = None):
        message = f"File too large: {detail}" if detail else "File too large (server upload limit exceeded)."
        super().__init__(message, 413, code)


class EmptyOutputError(ConversionError):
    """Success status but no bytes, or the endpoint reported an empty result."""

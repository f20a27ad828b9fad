"""
Error taxonomy for report rendering.

License: MIT
"""

from typing import Any, Optional


class ReportError(Exception):
    """Base class for all report rendering errors."""


class InvalidElementSpec(ReportError, ValueError):
    """Raised by the element factories when their arguments are malformed."""


class UnknownStyle(ReportError, LookupError):
    """Raised at render time when a style identifier was never registered."""

    def __init__(self, style_id: str):
        super().__init__(f"Unknown style: {style_id!r}")
        self.style_id = style_id


class NoActiveRegion(ReportError):
    """Raised when an element is appended before a region was selected."""

    def __init__(self, message: str = "No active region selected"):
        super().__init__(message)


class SerializationError(ReportError):
    """
    Raised when the finished document cannot be written out.

    The offending element (if any) is kept on ``element`` so callers can
    report which part of the report caused the failure.
    """

    def __init__(self, message: str, element: Optional[Any] = None):
        super().__init__(message)
        self.element = element

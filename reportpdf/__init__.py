"""
reportpdf: paginated PDF reports from a declarative element tree.

License: MIT
"""

__version__ = "1.0.0"

from reportpdf.controller import AddResult, Document, DocumentMeta, ReportController, render_report  # noqa: E402
from reportpdf.errors import (  # noqa: E402
    InvalidElementSpec,
    NoActiveRegion,
    ReportError,
    SerializationError,
    UnknownStyle,
)
from reportpdf.regions import RegionKind  # noqa: E402

__all__ = [
    "__version__",
    "AddResult",
    "Document",
    "DocumentMeta",
    "ReportController",
    "render_report",
    "InvalidElementSpec",
    "NoActiveRegion",
    "ReportError",
    "SerializationError",
    "UnknownStyle",
    "RegionKind",
]

"""
Pytest configuration for reportpdf
"""

import logging
import sys
from pathlib import Path

import pytest
from PIL import Image as PILImage

from reportpdf.config import Settings
from reportpdf.geometry import PageGeometry
from reportpdf.layout import LayoutEngine
from reportpdf.styles import default_style_table


@pytest.fixture(autouse=True)
def configure_logging():
    """Configure logging for tests to avoid file handler issues."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(name)s - %(levelname)s - %(message)s'))

    root_logger.addHandler(console_handler)
    root_logger.setLevel(logging.WARNING)

    yield

    root_logger.handlers.clear()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    import tempfile
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def settings():
    """Deterministic, uncompressed output so PDF bytes can be inspected."""
    return Settings(invariant=True, compression=False)


@pytest.fixture
def geometry():
    """595x842 pt page with 10 pt margins all round."""
    return PageGeometry(
        page_width=595,
        page_height=842,
        margin_top=10,
        margin_bottom=10,
        margin_left=10,
        margin_right=10,
    )


@pytest.fixture
def rtl_geometry(geometry):
    return geometry.model_copy(update={"direction": "rtl"})


@pytest.fixture
def styles():
    return default_style_table()


@pytest.fixture
def make_engine(styles):
    """Factory for layout engines over a given geometry."""
    def _make(geometry, **kwargs):
        return LayoutEngine(geometry, styles, **kwargs)
    return _make


@pytest.fixture
def png_path(temp_dir):
    """20x10 pixel PNG image."""
    path = temp_dir / "picture.png"
    PILImage.new("RGB", (20, 10), (200, 30, 30)).save(path)
    return path

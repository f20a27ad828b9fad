"""
Image source reading.

License: MIT
"""

import os
from typing import Protocol, Union

ImageSource = Union[str, "os.PathLike[str]"]


class ImageLoader(Protocol):
    """Reads the raw bytes of an image source."""

    def read(self, source: ImageSource) -> bytes:
        ...


class FileImageLoader:
    """Reads images from the local filesystem, optionally below a base directory."""

    def __init__(self, base_dir: Union[str, "os.PathLike[str]", None] = None):
        self.base_dir = base_dir

    def read(self, source: ImageSource) -> bytes:
        path = os.fspath(source)
        if self.base_dir is not None and not os.path.isabs(path):
            path = os.path.join(os.fspath(self.base_dir), path)
        with open(path, "rb") as fh:
            return fh.read()

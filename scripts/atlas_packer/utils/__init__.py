"""
Utility modules for image handling and logging setup.
"""

from .image import ImageUtils, ImageLoadError
from .log import setup_logging

__all__ = [
    "ImageUtils",
    "ImageLoadError",
    "setup_logging",
]

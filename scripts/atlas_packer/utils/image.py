"""
Image utilities for loading sprites and preparing them for packing.
"""

import io
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image

CHECKER_LIGHT = (0xCC, 0xCC, 0xCC, 255)
CHECKER_DARK = (0x99, 0x99, 0x99, 255)


class ImageLoadError(ValueError):
    """Raised when a source image cannot be decoded."""
    pass


class ImageUtils:
    """Utility class for common image operations used by the packer."""

    @staticmethod
    def load_image(data: Union[bytes, str, Path, Image.Image]) -> Image.Image:
        """
        Load image from various sources.

        Args:
            data: Image data as bytes, file path, or PIL Image

        Returns:
            Fully decoded PIL Image

        Raises:
            ImageLoadError: If data cannot be loaded as image
        """
        if isinstance(data, Image.Image):
            return data
        elif isinstance(data, bytes):
            try:
                image = Image.open(io.BytesIO(data))
                image.load()
                return image
            except Exception as e:
                raise ImageLoadError(f"Cannot load image from bytes: {e}")
        elif isinstance(data, (str, Path)):
            try:
                with Image.open(data) as image:
                    image.load()
                    return image.copy()
            except Exception as e:
                raise ImageLoadError(f"Cannot load image from path '{data}': {e}")
        else:
            raise ImageLoadError(f"Unsupported image data type: {type(data)}")

    @staticmethod
    def save_image(image: Image.Image, path: Union[str, Path], format: str = 'PNG', **kwargs) -> None:
        """
        Save image to file.

        Args:
            image: Image to save
            path: Output file path
            format: Image format (PNG, WEBP, ...)
            **kwargs: Additional save parameters
        """
        save_kwargs = {}
        compress_level = kwargs.pop('compress_level', 6)

        if format.upper() == 'PNG':
            save_kwargs['optimize'] = True
            save_kwargs['compress_level'] = compress_level
        elif format.upper() == 'WEBP':
            save_kwargs['lossless'] = kwargs.pop('lossless', True)

        save_kwargs.update(kwargs)
        image.save(path, format=format, **save_kwargs)

    @staticmethod
    def ensure_rgba(image: Image.Image) -> Image.Image:
        """Convert image to RGBA mode if not already."""
        if image.mode != 'RGBA':
            return image.convert('RGBA')
        return image

    @staticmethod
    def detect_trim(image: Image.Image, alpha_threshold: int = 0) -> Tuple[int, int, int, int]:
        """
        Measure the transparent border around an image.

        A pixel counts as content when its alpha is above ``alpha_threshold``.
        A fully transparent image is trimmed away entirely.

        Args:
            image: Image to analyze
            alpha_threshold: Highest alpha value still treated as transparent

        Returns:
            Margins as (top, right, bottom, left)
        """
        width, height = image.size
        if image.mode not in ('RGBA', 'LA', 'PA') and 'transparency' not in image.info:
            return (0, 0, 0, 0)

        alpha = np.asarray(ImageUtils.ensure_rgba(image).getchannel('A'))
        mask = alpha > alpha_threshold
        if not mask.any():
            return (height, 0, 0, width)

        rows = np.flatnonzero(mask.any(axis=1))
        cols = np.flatnonzero(mask.any(axis=0))

        top = int(rows[0])
        bottom = int(height - 1 - rows[-1])
        left = int(cols[0])
        right = int(width - 1 - cols[-1])
        return (top, right, bottom, left)

    @staticmethod
    def crop_trimmed(image: Image.Image, top: int, right: int, bottom: int, left: int) -> Image.Image:
        """Cut the trimmed region out of an image."""
        width = max(0, image.width - left - right)
        height = max(0, image.height - top - bottom)
        return image.crop((left, top, left + width, top + height))

    @staticmethod
    def create_checkerboard(size: Tuple[int, int], check_size: int = 16,
                            light: Tuple[int, int, int, int] = CHECKER_LIGHT,
                            dark: Tuple[int, int, int, int] = CHECKER_DARK) -> Image.Image:
        """
        Create an RGBA checkerboard used to visualize transparency.

        Args:
            size: Image (width, height)
            check_size: Edge length of a single check
            light: Color of checks where column + row is even
            dark: Color of the other checks

        Returns:
            Checkerboard image
        """
        width, height = size
        if width <= 0 or height <= 0:
            return Image.new('RGBA', (max(0, width), max(0, height)), light)

        rows, cols = np.indices((height, width))
        even = ((cols // check_size) + (rows // check_size)) % 2 == 0
        pixels = np.where(even[..., None],
                          np.array(light, dtype=np.uint8),
                          np.array(dark, dtype=np.uint8)).astype(np.uint8)
        return Image.fromarray(pixels)

    @staticmethod
    def next_power_of_two(n: int) -> int:
        """Find the next power of two greater than or equal to n."""
        if n <= 0:
            return 1

        if n & (n - 1) == 0:
            return n

        power = 1
        while power < n:
            power <<= 1

        return power

    @staticmethod
    def is_power_of_two(n: int) -> bool:
        """Check if number is a power of two."""
        return n > 0 and (n & (n - 1)) == 0

    @staticmethod
    def guess_format(path: Union[str, Path], default: Optional[str] = None) -> Optional[str]:
        """Map a file extension to a Pillow format name."""
        extension = Path(path).suffix.lower()
        return Image.registered_extensions().get(extension, default)

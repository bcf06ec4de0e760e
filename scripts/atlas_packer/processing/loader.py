"""
Builds packing sources from image files.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from PIL import Image

from ..utils.image import ImageUtils
from .packing import SourceImage, TrimMargins

logger = logging.getLogger(__name__)


def unique_source_id(name: str, taken: Dict[str, int]) -> str:
    """Return name, or name with a numeric suffix when it is already taken."""
    if name not in taken:
        taken[name] = 0
        return name

    while True:
        taken[name] += 1
        candidate = f"{name}_{taken[name]}"
        if candidate not in taken:
            taken[candidate] = 0
            return candidate


def source_from_image(source_id: str, image: Image.Image, auto_trim: bool = False,
                      alpha_threshold: int = 0, trim: Optional[TrimMargins] = None) -> SourceImage:
    """
    Create a SourceImage from a decoded image.

    Args:
        source_id: Identifier used in the frame map
        image: Decoded image, converted to RGBA
        auto_trim: Measure trim margins from the alpha channel
        alpha_threshold: Alpha values up to this are considered transparent
        trim: Explicit trim margins, used when auto_trim is off

    Returns:
        SourceImage carrying the pixels
    """
    image = ImageUtils.ensure_rgba(image)

    if auto_trim:
        top, right, bottom, left = ImageUtils.detect_trim(image, alpha_threshold)
        trim = TrimMargins(top=top, right=right, bottom=bottom, left=left)
        logger.debug(f"Auto trim for '{source_id}': {trim}")

    return SourceImage.from_image(source_id, image, trim)


def load_sources(paths: Iterable[Union[str, Path]], auto_trim: bool = False,
                 alpha_threshold: int = 0) -> List[SourceImage]:
    """
    Load image files as packing sources.

    Source ids are the file stems; repeated stems get ``_1``, ``_2``
    suffixes in input order.

    Raises:
        ImageLoadError: If a file cannot be decoded
    """
    sources = []
    taken: Dict[str, int] = {}

    for path in paths:
        path = Path(path)
        image = ImageUtils.load_image(path)
        source_id = unique_source_id(path.stem, taken)
        sources.append(source_from_image(source_id, image, auto_trim, alpha_threshold))

    logger.info(f"Loaded {len(sources)} source images")
    return sources

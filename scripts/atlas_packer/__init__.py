"""
Texture atlas packer for XS engine sprite assets.

Packs sprite images into a single atlas using shelf or MaxRects bin
packing, composites the atlas bitmap with Pillow and exports frame maps.
"""

__version__ = "0.1.0"
__author__ = "XS Tools Team"

from .config import PackerConfig
from .processing.packing import (
    PackingStrategy,
    Rect,
    TrimMargins,
    SourceImage,
    PackResult,
    ShelfPacker,
    MaxRectsPacker,
    PackingError,
    PackingOverflowError,
)
from .processing.atlas import (
    AtlasConfig,
    AtlasResult,
    AtlasAssembler,
    AtlasPacker,
    AtlasGenerationError,
    pack_atlas,
)
from .processing.loader import load_sources

__all__ = [
    "PackerConfig",
    "PackingStrategy",
    "Rect",
    "TrimMargins",
    "SourceImage",
    "PackResult",
    "ShelfPacker",
    "MaxRectsPacker",
    "PackingError",
    "PackingOverflowError",
    "AtlasConfig",
    "AtlasResult",
    "AtlasAssembler",
    "AtlasPacker",
    "AtlasGenerationError",
    "pack_atlas",
    "load_sources",
]

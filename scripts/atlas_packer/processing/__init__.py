"""
Packing strategies, source loading and atlas assembly.
"""

from .packing import (
    PackingStrategy,
    Rect,
    TrimMargins,
    SourceImage,
    PackResult,
    BinPacker,
    ShelfPacker,
    MaxRectsPacker,
    create_packer,
    PackingError,
    PackingOverflowError,
)
from .atlas import (
    AtlasConfig,
    AtlasResult,
    AtlasAssembler,
    AtlasPacker,
    AtlasValidator,
    AtlasGenerationError,
    pack_atlas,
)
from .loader import load_sources, source_from_image

__all__ = [
    "PackingStrategy",
    "Rect",
    "TrimMargins",
    "SourceImage",
    "PackResult",
    "BinPacker",
    "ShelfPacker",
    "MaxRectsPacker",
    "create_packer",
    "PackingError",
    "PackingOverflowError",
    "AtlasConfig",
    "AtlasResult",
    "AtlasAssembler",
    "AtlasPacker",
    "AtlasValidator",
    "AtlasGenerationError",
    "pack_atlas",
    "load_sources",
    "source_from_image",
]

"""
Texture atlas assembly: packs sources, composites the atlas bitmap and
exports the frame map.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import toml
from PIL import Image

from ..utils.image import ImageUtils
from .packing import (
    PackingError, PackingOverflowError, PackingStrategy, PackResult, Rect, SourceImage,
    create_packer
)

logger = logging.getLogger(__name__)

BACKGROUND_TRANSPARENT = "transparent"
BACKGROUND_CHECKERBOARD = "checkerboard"
BACKGROUNDS = (BACKGROUND_TRANSPARENT, BACKGROUND_CHECKERBOARD)


@dataclass
class AtlasConfig:
    """Configuration for atlas generation."""
    padding: int = 2
    strategy: PackingStrategy = PackingStrategy.MAX_RECTS
    allow_partial: bool = False
    power_of_two: bool = False
    max_size: Tuple[int, int] = (16384, 16384)
    background: str = BACKGROUND_TRANSPARENT
    format: str = "RGBA"


@dataclass
class AtlasResult:
    """Result of atlas generation."""
    atlas: Image.Image
    frame_map: Dict[str, Dict[str, int]]
    metadata: Dict[str, Any] = field(default_factory=dict)
    pack_result: Optional[PackResult] = None

    @property
    def width(self) -> int:
        return self.atlas.width

    @property
    def height(self) -> int:
        return self.atlas.height

    @property
    def placements(self) -> Dict[str, Rect]:
        return {name: Rect(f["x"], f["y"], f["w"], f["h"]) for name, f in self.frame_map.items()}

    def save_atlas(self, path: Union[str, Path], format: Optional[str] = None,
                   compression_level: int = 6) -> None:
        """
        Save atlas image to file.

        The format is taken from the path extension when not given.

        Raises:
            AtlasGenerationError: If the atlas has no pixels to write
        """
        if self.atlas.width == 0 or self.atlas.height == 0:
            raise AtlasGenerationError(
                f"Atlas is empty ({self.atlas.width}x{self.atlas.height}), nothing to save"
            )
        format = format or ImageUtils.guess_format(path, "PNG")
        ImageUtils.save_image(self.atlas, path, format=format, compress_level=compression_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": self.frame_map,
            "meta": {
                "size": {"w": self.atlas.width, "h": self.atlas.height},
                "format": self.atlas.mode,
                "scale": 1,
                **self.metadata
            }
        }

    def save_frame_map(self, path: Union[str, Path], format: str = "json") -> None:
        """Save frame map to JSON or TOML file."""
        atlas_data = self.to_dict()

        if format.lower() == "toml":
            with open(path, 'w') as f:
                toml.dump(atlas_data, f)
        elif format.lower() == "json":
            with open(path, 'w') as f:
                json.dump(atlas_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported frame map format: {format}")

    def to_sprite_data(self, image_name: str) -> Dict[str, Any]:
        """Describe the atlas in the sprite editor document layout."""
        return {
            "image": image_name,
            "sprites": {
                name: {"x": f["x"], "y": f["y"], "width": f["w"], "height": f["h"]}
                for name, f in self.frame_map.items()
            }
        }

    def save_sprite_data(self, path: Union[str, Path], image_name: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_sprite_data(image_name), f, indent=2)


class AtlasAssembler:
    """Composites packed sources into a single bitmap."""

    CHECK_SIZE = 16

    def __init__(self, background: str = BACKGROUND_TRANSPARENT, mode: str = "RGBA"):
        if background not in BACKGROUNDS:
            raise ValueError(f"Unknown atlas background: {background}")
        self.background = background
        self.mode = mode

    def assemble(self, sources: Sequence[SourceImage], placements: Dict[str, Rect],
                 width: int, height: int) -> Image.Image:
        """
        Blit the trimmed region of every placed source onto a new canvas.

        Placements are assumed not to overlap. Sources without pixels,
        without a placement or with an empty trimmed region are skipped.
        """
        if self.background == BACKGROUND_CHECKERBOARD:
            atlas = ImageUtils.create_checkerboard((width, height), self.CHECK_SIZE)
        else:
            atlas = Image.new("RGBA", (width, height), (0, 0, 0, 0))

        for source in sources:
            rect = placements.get(source.id)
            if rect is None or source.image is None or rect.area == 0:
                continue

            trim = source.trim
            region = ImageUtils.crop_trimmed(ImageUtils.ensure_rgba(source.image),
                                             trim.top, trim.right, trim.bottom, trim.left)

            if self.background == BACKGROUND_CHECKERBOARD:
                atlas.alpha_composite(region, (rect.x, rect.y))
            else:
                atlas.paste(region, (rect.x, rect.y))

        if self.mode != "RGBA":
            atlas = atlas.convert(self.mode)
        return atlas


class AtlasPacker:
    """
    Drives a packing run end to end.

    Selects the packing strategy, applies the overflow policy and size
    constraints, then hands placements to the assembler.
    """

    def __init__(self, config: Optional[AtlasConfig] = None):
        self.config = config or AtlasConfig()
        self.assembler = AtlasAssembler(self.config.background, self.config.format)

    def pack(self, sources: Sequence[SourceImage], padding: Optional[int] = None,
             strategy: Optional[PackingStrategy] = None) -> PackResult:
        """
        Compute a layout without rasterizing.

        Raises:
            PackingError: If source ids are not unique
            PackingOverflowError: If sources were left unplaced and partial
                results are not allowed
        """
        padding = self.config.padding if padding is None else padding
        strategy = strategy or self.config.strategy

        self._check_unique_ids(sources)

        empty = [s.id for s in sources if s.trimmed_width == 0 or s.trimmed_height == 0]
        if empty:
            logger.debug(f"Sources trimmed to zero size: {', '.join(empty)}")

        packer = create_packer(strategy)
        result = packer.pack(sources, padding)

        if result.unplaced:
            if not self.config.allow_partial:
                raise PackingOverflowError(result.unplaced, result)
            logger.warning(
                f"Atlas is incomplete, {len(result.unplaced)} source(s) did not fit: "
                f"{', '.join(result.unplaced)}"
            )

        return result

    def pack_atlas(self, sources: Sequence[SourceImage], padding: Optional[int] = None,
                   strategy: Optional[PackingStrategy] = None) -> AtlasResult:
        """
        Pack sources and render the atlas.

        Args:
            sources: Sources with decoded pixels
            padding: Spacing between sources, defaults to the configured value
            strategy: Packing strategy, defaults to the configured value

        Returns:
            AtlasResult with atlas image and frame map

        Raises:
            PackingError: If packing fails
            AtlasGenerationError: If the atlas exceeds the maximum size
        """
        padding = self.config.padding if padding is None else padding
        strategy = strategy or self.config.strategy

        result = self.pack(sources, padding, strategy)
        width, height = self._final_size(result)

        max_width, max_height = self.config.max_size
        if width > max_width or height > max_height:
            raise AtlasGenerationError(
                f"Atlas size {width}x{height} exceeds maximum {self.config.max_size}"
            )

        atlas = self.assembler.assemble(sources, result.placements, width, height)

        frame_map = {
            source.id: result.placements[source.id].to_dict()
            for source in sources if source.id in result.placements
        }

        used_area = sum(rect.area for rect in result.placements.values())
        total_area = width * height

        logger.info(
            f"Packed {len(frame_map)}/{len(sources)} sources into {width}x{height} "
            f"using {strategy.value}"
        )

        return AtlasResult(
            atlas=atlas,
            frame_map=frame_map,
            metadata={
                "padding": max(0, padding),
                "strategy": strategy.value,
                "sprite_count": len(frame_map),
                "layout_efficiency": used_area / total_area if total_area > 0 else 0.0,
            },
            pack_result=result,
        )

    def _final_size(self, result: PackResult) -> Tuple[int, int]:
        width, height = result.bin_width, result.bin_height
        if self.config.power_of_two:
            if width > 0:
                width = ImageUtils.next_power_of_two(width)
            if height > 0:
                height = ImageUtils.next_power_of_two(height)
        return width, height

    @staticmethod
    def _check_unique_ids(sources: Sequence[SourceImage]) -> None:
        seen = set()
        for source in sources:
            if source.id in seen:
                raise PackingError(f"Duplicate source id: {source.id}")
            seen.add(source.id)


def pack_atlas(sources: Sequence[SourceImage], padding: int = 2,
               strategy: PackingStrategy = PackingStrategy.MAX_RECTS,
               **config_options: Any) -> AtlasResult:
    """Pack sources into an atlas with a one-off configuration."""
    config = AtlasConfig(padding=padding, strategy=strategy, **config_options)
    return AtlasPacker(config).pack_atlas(sources)


class AtlasValidator:
    """Validator for atlas generation results and layout consistency."""

    def __init__(self, config: AtlasConfig):
        """Initialize atlas validator with configuration."""
        self.config = config

    def validate_atlas_dimensions(self, atlas: Image.Image) -> List[str]:
        """
        Validate atlas dimensions meet requirements.

        Returns:
            List of validation error messages
        """
        errors = []

        if atlas is None:
            errors.append("Atlas image is None or invalid")
            return errors

        width, height = atlas.size

        if width > self.config.max_size[0] or height > self.config.max_size[1]:
            errors.append(f"Atlas size {width}x{height} exceeds maximum {self.config.max_size}")

        if self.config.power_of_two:
            if width and not ImageUtils.is_power_of_two(width):
                errors.append(f"Atlas width {width} is not a power of two")
            if height and not ImageUtils.is_power_of_two(height):
                errors.append(f"Atlas height {height} is not a power of two")

        return errors

    def validate_frame_boundaries(self, atlas: Image.Image, frame_map: Dict[str, Dict[str, int]]) -> List[str]:
        """
        Validate that all frames lie within the atlas.

        Returns:
            List of validation error messages
        """
        errors = []
        atlas_width, atlas_height = atlas.size

        for frame_name, frame_data in frame_map.items():
            try:
                x = frame_data["x"]
                y = frame_data["y"]
                w = frame_data["w"]
                h = frame_data["h"]
            except KeyError as e:
                errors.append(f"Frame '{frame_name}' missing required coordinate: {e}")
                continue

            if x < 0 or y < 0:
                errors.append(f"Frame '{frame_name}' has negative coordinates: ({x}, {y})")

            if w < 0 or h < 0:
                errors.append(f"Frame '{frame_name}' has invalid dimensions: {w}x{h}")

            if x + w > atlas_width:
                errors.append(f"Frame '{frame_name}' extends beyond atlas width: {x + w} > {atlas_width}")

            if y + h > atlas_height:
                errors.append(f"Frame '{frame_name}' extends beyond atlas height: {y + h} > {atlas_height}")

        return errors

    def validate_no_overlap(self, frame_map: Dict[str, Dict[str, int]]) -> List[str]:
        """Report every pair of frames sharing pixels."""
        errors = []
        rects = [
            (name, Rect(f["x"], f["y"], f["w"], f["h"]))
            for name, f in frame_map.items() if f["w"] > 0 and f["h"] > 0
        ]

        for i, (name_a, rect_a) in enumerate(rects):
            for name_b, rect_b in rects[i + 1:]:
                if rect_a.intersects(rect_b):
                    errors.append(f"Frames '{name_a}' and '{name_b}' overlap")

        return errors

    def validate_frame_sizes(self, sources: Sequence[SourceImage],
                             frame_map: Dict[str, Dict[str, int]]) -> List[str]:
        """Check every frame matches its source's trimmed size."""
        errors = []

        for source in sources:
            frame = frame_map.get(source.id)
            if frame is None:
                continue
            if (frame["w"], frame["h"]) != (source.trimmed_width, source.trimmed_height):
                errors.append(
                    f"Frame '{source.id}' size {frame['w']}x{frame['h']} does not match trimmed "
                    f"size {source.trimmed_width}x{source.trimmed_height}"
                )

        return errors

    def validate_atlas_result(self, atlas_result: AtlasResult,
                              sources: Optional[Sequence[SourceImage]] = None) -> List[str]:
        """Run every check against a generated atlas."""
        all_errors = []
        all_errors.extend(self.validate_atlas_dimensions(atlas_result.atlas))
        all_errors.extend(self.validate_frame_boundaries(atlas_result.atlas, atlas_result.frame_map))
        all_errors.extend(self.validate_no_overlap(atlas_result.frame_map))
        if sources is not None:
            all_errors.extend(self.validate_frame_sizes(sources, atlas_result.frame_map))
        return all_errors


class AtlasGenerationError(Exception):
    """Exception raised when atlas generation fails."""

    def __init__(self, message: str):
        super().__init__(message)

"""
Tests for atlas assembly, the packing orchestrator and frame map export.
"""

import unittest
import tempfile
import os
import json

import toml
from PIL import Image

from ..processing.atlas import (
    AtlasConfig, AtlasAssembler, AtlasPacker, AtlasResult, AtlasValidator,
    AtlasGenerationError, pack_atlas
)
from ..processing.packing import (
    PackingStrategy, PackingError, PackingOverflowError, Rect, SourceImage, TrimMargins
)
from ..utils.image import CHECKER_LIGHT, CHECKER_DARK

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
CLEAR = (0, 0, 0, 0)


def solid_source(source_id, width, height, color=RED):
    return SourceImage.from_image(source_id, Image.new('RGBA', (width, height), color))


def golden_sources():
    return [
        solid_source("wide", 100, 50),
        solid_source("tall", 80, 60, BLUE),
        solid_source("small", 50, 50),
    ]


class TestAtlasAssembler(unittest.TestCase):
    """Test AtlasAssembler compositing."""

    def test_blits_trimmed_region(self):
        """Test only the trimmed region lands at the placement."""
        image = Image.new('RGBA', (6, 6), CLEAR)
        image.paste(Image.new('RGBA', (4, 4), BLUE), (1, 1))
        source = SourceImage.from_image("s", image, TrimMargins(top=1, right=1, bottom=1, left=1))

        atlas = AtlasAssembler().assemble([source], {"s": Rect(2, 3, 4, 4)}, 10, 10)

        self.assertEqual(atlas.size, (10, 10))
        self.assertEqual(atlas.getpixel((2, 3)), BLUE)
        self.assertEqual(atlas.getpixel((5, 6)), BLUE)
        self.assertEqual(atlas.getpixel((1, 3)), CLEAR)
        self.assertEqual(atlas.getpixel((6, 3)), CLEAR)
        self.assertEqual(atlas.getpixel((2, 7)), CLEAR)

    def test_skips_sources_without_pixels_or_placement(self):
        sources = [
            SourceImage("no_pixels", 4, 4),
            solid_source("not_placed", 4, 4),
        ]

        atlas = AtlasAssembler().assemble(sources, {"no_pixels": Rect(0, 0, 4, 4)}, 8, 8)

        self.assertEqual(atlas.getbbox(), None)

    def test_checkerboard_background(self):
        """Test the checkerboard alternates every 16 pixels under the sprites."""
        source = solid_source("s", 4, 4)

        atlas = AtlasAssembler("checkerboard").assemble([source], {"s": Rect(40, 40, 4, 4)}, 48, 48)

        self.assertEqual(atlas.getpixel((0, 0)), CHECKER_LIGHT)
        self.assertEqual(atlas.getpixel((16, 0)), CHECKER_DARK)
        self.assertEqual(atlas.getpixel((0, 16)), CHECKER_DARK)
        self.assertEqual(atlas.getpixel((16, 16)), CHECKER_LIGHT)
        self.assertEqual(atlas.getpixel((41, 41)), RED)

    def test_unknown_background(self):
        with self.assertRaises(ValueError):
            AtlasAssembler("striped")

    def test_output_mode_conversion(self):
        atlas = AtlasAssembler(mode="RGB").assemble([], {}, 4, 4)

        self.assertEqual(atlas.mode, "RGB")


class TestAtlasPacker(unittest.TestCase):
    """Test the packing orchestrator."""

    def test_shelf_golden_atlas(self):
        """Test the shelf layout is rendered at the tight bin size."""
        packer = AtlasPacker(AtlasConfig(padding=2, strategy=PackingStrategy.SHELF))

        result = packer.pack_atlas(golden_sources())

        self.assertEqual(result.atlas.size, (104, 168))
        self.assertEqual(result.frame_map["wide"], {"x": 2, "y": 2, "w": 100, "h": 50})
        self.assertEqual(result.frame_map["tall"], {"x": 2, "y": 54, "w": 80, "h": 60})
        self.assertEqual(result.frame_map["small"], {"x": 2, "y": 116, "w": 50, "h": 50})
        self.assertEqual(result.atlas.getpixel((2, 2)), RED)
        self.assertEqual(result.atlas.getpixel((2, 54)), BLUE)
        self.assertEqual(result.atlas.getpixel((0, 0)), CLEAR)

    def test_power_of_two_rounds_each_side(self):
        config = AtlasConfig(padding=2, strategy=PackingStrategy.SHELF, power_of_two=True)

        result = AtlasPacker(config).pack_atlas(golden_sources())

        self.assertEqual(result.atlas.size, (128, 256))
        self.assertEqual(result.frame_map["small"], {"x": 2, "y": 116, "w": 50, "h": 50})

    def test_max_size_exceeded(self):
        config = AtlasConfig(padding=2, strategy=PackingStrategy.SHELF, max_size=(128, 128))

        with self.assertRaises(AtlasGenerationError):
            AtlasPacker(config).pack_atlas(golden_sources())

    def test_duplicate_ids_rejected(self):
        sources = [solid_source("a", 4, 4), solid_source("a", 8, 8)]

        with self.assertRaises(PackingError):
            AtlasPacker().pack(sources)

    def test_overflow_raises_by_default(self):
        """Test unplaced sources fail the run unless partial atlases are allowed."""
        sources = [SourceImage("huge", 20000, 10), solid_source("small", 10, 10)]

        with self.assertRaises(PackingOverflowError) as context:
            AtlasPacker(AtlasConfig(padding=0)).pack_atlas(sources)

        self.assertEqual(context.exception.unplaced, ["huge"])
        self.assertIsNotNone(context.exception.result)
        self.assertIn("huge", str(context.exception))

    def test_overflow_allowed_renders_partial_atlas(self):
        sources = [SourceImage("huge", 20000, 10), solid_source("small", 10, 10)]
        config = AtlasConfig(padding=0, allow_partial=True)

        with self.assertLogs("atlas_packer", level="WARNING"):
            result = AtlasPacker(config).pack_atlas(sources)

        self.assertEqual(result.atlas.size, (10, 10))
        self.assertEqual(result.frame_map, {"small": {"x": 0, "y": 0, "w": 10, "h": 10}})
        self.assertEqual(result.pack_result.unplaced, ["huge"])
        self.assertFalse(result.pack_result.success)

    def test_empty_sources(self):
        """Test an empty input still renders a padding-sized atlas."""
        result = AtlasPacker(AtlasConfig(padding=3)).pack_atlas([])

        self.assertEqual(result.atlas.size, (6, 6))
        self.assertEqual(result.frame_map, {})
        self.assertEqual(result.metadata["sprite_count"], 0)

    def test_fully_trimmed_source_renders_empty_atlas(self):
        """Test a source trimmed to nothing packs into a 0x0 atlas without error."""
        source = SourceImage.from_image("clear", Image.new('RGBA', (8, 8), CLEAR),
                                        TrimMargins(top=8, left=8))
        config = AtlasConfig(padding=0, strategy=PackingStrategy.SHELF)

        result = AtlasPacker(config).pack_atlas([source])

        self.assertEqual(result.atlas.size, (0, 0))
        self.assertEqual(result.frame_map["clear"], {"x": 0, "y": 0, "w": 0, "h": 0})

    def test_frame_map_follows_input_order(self):
        """Test frames are listed in input order, not packing order."""
        sources = [solid_source("tiny", 4, 4), solid_source("big", 40, 40), solid_source("mid", 20, 20)]

        result = AtlasPacker().pack_atlas(sources)

        self.assertEqual(list(result.frame_map), ["tiny", "big", "mid"])
        self.assertEqual(result.placements["big"], Rect(0, 0, 40, 40))

    def test_metadata(self):
        config = AtlasConfig(padding=2, strategy=PackingStrategy.SHELF)

        result = AtlasPacker(config).pack_atlas(golden_sources())

        self.assertEqual(result.metadata["padding"], 2)
        self.assertEqual(result.metadata["strategy"], "shelf")
        self.assertEqual(result.metadata["sprite_count"], 3)
        self.assertAlmostEqual(result.metadata["layout_efficiency"], 12300 / (104 * 168))

    def test_overrides_take_precedence(self):
        """Test per-call padding and strategy override the configuration."""
        packer = AtlasPacker(AtlasConfig(padding=8, strategy=PackingStrategy.MAX_RECTS))

        result = packer.pack_atlas(golden_sources(), padding=2, strategy=PackingStrategy.SHELF)

        self.assertEqual(result.atlas.size, (104, 168))
        self.assertEqual(result.metadata["strategy"], "shelf")

    def test_pack_atlas_function(self):
        result = pack_atlas(golden_sources(), padding=2, strategy=PackingStrategy.SHELF,
                            power_of_two=True)

        self.assertEqual(result.atlas.size, (128, 256))

    def test_maxrects_atlas_is_valid(self):
        """Test a MaxRects atlas passes every validator check."""
        sources = [
            solid_source(f"s{i}", 4 + (i * 7) % 30, 4 + (i * 11) % 25)
            for i in range(40)
        ]
        config = AtlasConfig(padding=1)

        result = AtlasPacker(config).pack_atlas(sources)

        self.assertEqual(AtlasValidator(config).validate_atlas_result(result, sources), [])


class TestAtlasResult(unittest.TestCase):
    """Test AtlasResult export."""

    def setUp(self):
        """Set up test fixtures."""
        self.atlas = Image.new('RGBA', (100, 100), RED)
        self.frame_map = {
            "frame1": {"x": 0, "y": 0, "w": 50, "h": 50},
            "frame2": {"x": 50, "y": 50, "w": 50, "h": 50}
        }
        self.result = AtlasResult(self.atlas, self.frame_map, {"strategy": "shelf"})

    def test_save_atlas(self):
        """Test saving atlas image."""
        with tempfile.NamedTemporaryFile(suffix='.png', delete=False) as f:
            try:
                self.result.save_atlas(f.name)

                with Image.open(f.name) as loaded:
                    self.assertEqual(loaded.size, (100, 100))
                    self.assertEqual(loaded.format, "PNG")
            finally:
                os.unlink(f.name)

    def test_save_empty_atlas_raises(self):
        """Test a zero-size atlas is reported instead of handed to Pillow."""
        result = AtlasResult(Image.new('RGBA', (0, 0)), {})

        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "atlas.png")
            with self.assertRaises(AtlasGenerationError):
                result.save_atlas(path)
            self.assertFalse(os.path.exists(path))

    def test_save_atlas_webp(self):
        with tempfile.NamedTemporaryFile(suffix='.webp', delete=False) as f:
            try:
                self.result.save_atlas(f.name)

                with Image.open(f.name) as loaded:
                    self.assertEqual(loaded.format, "WEBP")
            finally:
                os.unlink(f.name)

    def test_save_frame_map_json(self):
        """Test saving frame map as JSON."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            try:
                self.result.save_frame_map(f.name, format="json")

                with open(f.name, 'r') as rf:
                    data = json.load(rf)

                self.assertEqual(data["frames"], self.frame_map)
                self.assertEqual(data["meta"]["size"], {"w": 100, "h": 100})
                self.assertEqual(data["meta"]["strategy"], "shelf")
            finally:
                os.unlink(f.name)

    def test_save_frame_map_toml(self):
        """Test saving frame map as TOML."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.toml', delete=False) as f:
            try:
                self.result.save_frame_map(f.name, format="toml")

                with open(f.name, 'r') as rf:
                    data = toml.load(rf)

                self.assertEqual(data["frames"]["frame2"], {"x": 50, "y": 50, "w": 50, "h": 50})
                self.assertEqual(data["meta"]["size"]["w"], 100)
            finally:
                os.unlink(f.name)

    def test_save_frame_map_unknown_format(self):
        with self.assertRaises(ValueError):
            self.result.save_frame_map("frames.yaml", format="yaml")

    def test_sprite_data(self):
        """Test the sprite editor document layout."""
        data = self.result.to_sprite_data("atlas.png")

        self.assertEqual(data["image"], "atlas.png")
        self.assertEqual(data["sprites"]["frame1"], {"x": 0, "y": 0, "width": 50, "height": 50})
        self.assertEqual(len(data["sprites"]), 2)


class TestAtlasValidator(unittest.TestCase):
    """Test AtlasValidator checks."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = AtlasConfig()
        self.validator = AtlasValidator(self.config)
        self.atlas = Image.new('RGBA', (64, 64))

    def test_valid_frames(self):
        frame_map = {
            "a": {"x": 0, "y": 0, "w": 32, "h": 32},
            "b": {"x": 32, "y": 0, "w": 32, "h": 32},
        }

        self.assertEqual(self.validator.validate_frame_boundaries(self.atlas, frame_map), [])
        self.assertEqual(self.validator.validate_no_overlap(frame_map), [])

    def test_frame_outside_atlas(self):
        frame_map = {"a": {"x": 40, "y": 0, "w": 32, "h": 32}}

        errors = self.validator.validate_frame_boundaries(self.atlas, frame_map)

        self.assertEqual(len(errors), 1)
        self.assertIn("beyond atlas width", errors[0])

    def test_missing_coordinate(self):
        errors = self.validator.validate_frame_boundaries(self.atlas, {"a": {"x": 0, "y": 0, "w": 4}})

        self.assertIn("missing required coordinate", errors[0])

    def test_overlapping_frames(self):
        frame_map = {
            "a": {"x": 0, "y": 0, "w": 32, "h": 32},
            "b": {"x": 16, "y": 16, "w": 32, "h": 32},
        }

        errors = self.validator.validate_no_overlap(frame_map)

        self.assertEqual(errors, ["Frames 'a' and 'b' overlap"])

    def test_power_of_two_dimensions(self):
        validator = AtlasValidator(AtlasConfig(power_of_two=True))

        errors = validator.validate_atlas_dimensions(Image.new('RGBA', (100, 64)))

        self.assertEqual(len(errors), 1)
        self.assertIn("width 100", errors[0])

    def test_oversized_atlas(self):
        validator = AtlasValidator(AtlasConfig(max_size=(32, 32)))

        errors = validator.validate_atlas_dimensions(self.atlas)

        self.assertIn("exceeds maximum", errors[0])

    def test_frame_size_mismatch(self):
        sources = [SourceImage("a", 10, 10)]

        errors = self.validator.validate_frame_sizes(sources, {"a": {"x": 0, "y": 0, "w": 8, "h": 10}})

        self.assertEqual(len(errors), 1)


if __name__ == '__main__':
    unittest.main()

"""
Bin packing strategies for texture atlas layout.

Two interchangeable packers share one contract: a shelf (row) packer and a
MaxRects packer with Best Short Side Fit placement and bin growth. Packers
never mutate their sources; placements come back as an id -> Rect map.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image

logger = logging.getLogger(__name__)


class PackingStrategy(Enum):
    """Available packing algorithms."""
    SHELF = "shelf"
    MAX_RECTS = "maxrects"

    @classmethod
    def from_name(cls, name: str) -> "PackingStrategy":
        """Resolve a strategy from a user supplied name ('shelf', 'max-rects', ...)."""
        normalized = name.strip().lower().replace("-", "").replace("_", "")
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        raise ValueError(f"Unknown packing strategy: {name}")


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle used for placements and free space."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def contains(self, other: "Rect") -> bool:
        """Check if other lies completely inside this rectangle."""
        return (other.x >= self.x and other.y >= self.y and
                other.right <= self.right and other.bottom <= self.bottom)

    def intersects(self, other: "Rect") -> bool:
        """Check if this rectangle shares any area with another."""
        return not (self.right <= other.x or other.right <= self.x or
                    self.bottom <= other.y or other.bottom <= self.y)

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "w": self.width, "h": self.height}


@dataclass(frozen=True)
class TrimMargins:
    """Pixels cropped from each edge of a source before packing."""
    top: int = 0
    right: int = 0
    bottom: int = 0
    left: int = 0

    def __post_init__(self):
        for side in ("top", "right", "bottom", "left"):
            if getattr(self, side) < 0:
                raise ValueError(f"Trim margin '{side}' must not be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "TrimMargins":
        return cls(
            top=int(data.get("top", 0)),
            right=int(data.get("right", 0)),
            bottom=int(data.get("bottom", 0)),
            left=int(data.get("left", 0)),
        )


@dataclass
class SourceImage:
    """
    A single packing input.

    Raw dimensions and pixels come from the image loader; the packers only
    read the trimmed dimensions derived from them.
    """
    id: str
    raw_width: int
    raw_height: int
    trim: TrimMargins = field(default_factory=TrimMargins)
    image: Optional[Image.Image] = None

    @property
    def trimmed_width(self) -> int:
        return max(0, self.raw_width - self.trim.left - self.trim.right)

    @property
    def trimmed_height(self) -> int:
        return max(0, self.raw_height - self.trim.top - self.trim.bottom)

    @property
    def trimmed_area(self) -> int:
        return self.trimmed_width * self.trimmed_height

    @classmethod
    def from_image(cls, source_id: str, image: Image.Image,
                   trim: Optional[TrimMargins] = None) -> "SourceImage":
        """Build a source from a decoded image."""
        return cls(source_id, image.width, image.height, trim or TrimMargins(), image)


@dataclass
class PackResult:
    """Outcome of a packing run."""
    success: bool
    bin_width: int
    bin_height: int
    placements: Dict[str, Rect] = field(default_factory=dict)
    unplaced: List[str] = field(default_factory=list)
    capacity_width: int = 0
    capacity_height: int = 0
    attempts: int = 0

    @property
    def size(self) -> Tuple[int, int]:
        return (self.bin_width, self.bin_height)


class BinPacker(ABC):
    """Common interface of the packing strategies."""

    strategy: PackingStrategy

    @abstractmethod
    def pack(self, sources: Sequence[SourceImage], padding: int) -> PackResult:
        """Place every source and report the achieved bin size."""
        pass

    @staticmethod
    def _normalize_padding(padding: int) -> int:
        if padding < 0:
            logger.warning(f"Negative padding {padding} treated as 0")
            return 0
        return padding

    @staticmethod
    def _empty_result(padding: int) -> PackResult:
        size = padding * 2
        return PackResult(True, size, size, capacity_width=size, capacity_height=size)


class ShelfPacker(BinPacker):
    """
    Row based packer.

    Sources are sorted by trimmed width (widest first) and laid out left to
    right; a new row starts whenever the next source would stretch the
    widest row so far. Always succeeds.
    """

    strategy = PackingStrategy.SHELF

    def pack(self, sources: Sequence[SourceImage], padding: int) -> PackResult:
        padding = self._normalize_padding(padding)
        if not sources:
            return self._empty_result(padding)

        ordered = sorted(sources, key=lambda s: s.trimmed_width, reverse=True)

        x = padding
        y = padding
        row_height = 0
        max_width = 0
        placements: Dict[str, Rect] = {}

        for source in ordered:
            width = source.trimmed_width
            height = source.trimmed_height

            if x > padding and x + width + padding > max_width:
                y += row_height + padding
                x = padding
                row_height = 0

            placements[source.id] = Rect(x, y, width, height)

            x += width + padding
            row_height = max(row_height, height)
            max_width = max(max_width, x)

        bin_width = max_width
        bin_height = y + row_height + padding
        logger.debug(f"Shelf packed {len(placements)} sources into {bin_width}x{bin_height}")

        return PackResult(
            success=True,
            bin_width=bin_width,
            bin_height=bin_height,
            placements=placements,
            capacity_width=bin_width,
            capacity_height=bin_height,
            attempts=1,
        )


class MaxRectsPacker(BinPacker):
    """
    MaxRects packer with Best Short Side Fit placement.

    Tries successively larger bins, doubling the smaller side after each
    failed attempt. When every attempt fails a last forced attempt at the
    fallback size is accepted as is, and the sources it could not fit are
    reported in ``PackResult.unplaced``.
    """

    strategy = PackingStrategy.MAX_RECTS

    INITIAL_SIZE = 512
    MAX_ATTEMPTS = 10
    FALLBACK_SIZE = 4096

    def __init__(self, initial_size: int = INITIAL_SIZE, max_attempts: int = MAX_ATTEMPTS,
                 fallback_size: int = FALLBACK_SIZE):
        self.initial_size = initial_size
        self.max_attempts = max_attempts
        self.fallback_size = fallback_size

    def pack(self, sources: Sequence[SourceImage], padding: int) -> PackResult:
        padding = self._normalize_padding(padding)
        if not sources:
            return self._empty_result(padding)

        # Largest first for better initial density
        ordered = sorted(sources, key=lambda s: s.trimmed_area, reverse=True)

        bin_width = bin_height = self.initial_size
        for attempt in range(1, self.max_attempts + 1):
            result = self.try_pack(ordered, bin_width, bin_height, padding)
            if result.success:
                result.attempts = attempt
                logger.debug(
                    f"MaxRects packed {len(ordered)} sources on attempt {attempt} "
                    f"({bin_width}x{bin_height} -> {result.bin_width}x{result.bin_height})"
                )
                return result

            logger.debug(f"MaxRects attempt {attempt} at {bin_width}x{bin_height} failed")
            if bin_width <= bin_height:
                bin_width *= 2
            else:
                bin_height *= 2

        logger.debug(f"MaxRects growth exhausted, forcing {self.fallback_size}x{self.fallback_size}")
        result = self.try_pack(ordered, self.fallback_size, self.fallback_size, padding,
                               stop_on_failure=False)
        result.attempts = self.max_attempts + 1
        return result

    def try_pack(self, sources: Sequence[SourceImage], bin_width: int, bin_height: int,
                 padding: int, stop_on_failure: bool = True) -> PackResult:
        """
        Pack sources in the given order into a fixed bin.

        Args:
            sources: Sources in placement order
            bin_width: Bin width to try
            bin_height: Bin height to try
            padding: Spacing added to the right and bottom of every source
            stop_on_failure: Abort at the first source that does not fit.
                When False, unfittable sources are skipped and packing
                continues with the rest.

        Returns:
            PackResult with the tight bounding box of the placements
        """
        free_rects = [Rect(0, 0, bin_width, bin_height)]
        placements: Dict[str, Rect] = {}
        unplaced: List[str] = []

        for index, source in enumerate(sources):
            width = source.trimmed_width + padding
            height = source.trimmed_height + padding

            if width == 0 or height == 0:
                # Occupies no space, nothing to split
                placements[source.id] = Rect(0, 0, source.trimmed_width, source.trimmed_height)
                continue

            target = self._find_position_bssf(free_rects, width, height)
            if target is None:
                unplaced.append(source.id)
                if stop_on_failure:
                    unplaced.extend(s.id for s in sources[index + 1:])
                    break
                continue

            placements[source.id] = Rect(target.x, target.y,
                                         source.trimmed_width, source.trimmed_height)
            free_rects = self._place_rect(free_rects, Rect(target.x, target.y, width, height))

        used_width = max((r.right + padding for r in placements.values()), default=0)
        used_height = max((r.bottom + padding for r in placements.values()), default=0)

        return PackResult(
            success=not unplaced,
            bin_width=min(used_width, bin_width),
            bin_height=min(used_height, bin_height),
            placements=placements,
            unplaced=unplaced,
            capacity_width=bin_width,
            capacity_height=bin_height,
        )

    @staticmethod
    def _find_position_bssf(free_rects: List[Rect], width: int, height: int) -> Optional[Rect]:
        """Pick the free rectangle leaving the smallest short-side leftover."""
        best = None
        best_short = best_long = None

        for free in free_rects:
            if free.width < width or free.height < height:
                continue
            leftover_horiz = free.width - width
            leftover_vert = free.height - height
            short_side = min(leftover_horiz, leftover_vert)
            long_side = max(leftover_horiz, leftover_vert)

            if best is None or short_side < best_short or (
                    short_side == best_short and long_side < best_long):
                best = free
                best_short = short_side
                best_long = long_side

        return best

    def _place_rect(self, free_rects: List[Rect], used: Rect) -> List[Rect]:
        """Carve the used rectangle out of the free set and prune contained rects."""
        remaining: List[Rect] = []
        new_rects: List[Rect] = []

        for free in free_rects:
            if free.intersects(used):
                new_rects.extend(self._split_free_rect(free, used))
            else:
                remaining.append(free)

        for candidate in new_rects:
            if any(other.contains(candidate) for other in remaining):
                continue
            remaining = [other for other in remaining if not candidate.contains(other)]
            remaining.append(candidate)

        return remaining

    @staticmethod
    def _split_free_rect(free: Rect, used: Rect) -> List[Rect]:
        """Return the parts of free lying right of, below, left of and above used."""
        pieces = []

        if used.right < free.right:
            pieces.append(Rect(used.right, free.y, free.right - used.right, free.height))

        if used.bottom < free.bottom:
            pieces.append(Rect(free.x, used.bottom, free.width, free.bottom - used.bottom))

        if used.x > free.x:
            pieces.append(Rect(free.x, free.y, used.x - free.x, free.height))

        if used.y > free.y:
            pieces.append(Rect(free.x, free.y, free.width, used.y - free.y))

        return pieces


def create_packer(strategy: PackingStrategy) -> BinPacker:
    """Instantiate the packer for a strategy."""
    if strategy is PackingStrategy.SHELF:
        return ShelfPacker()
    if strategy is PackingStrategy.MAX_RECTS:
        return MaxRectsPacker()
    raise ValueError(f"Unsupported packing strategy: {strategy}")


class PackingError(Exception):
    """Exception raised when sources cannot be packed."""

    def __init__(self, message: str):
        super().__init__(message)


class PackingOverflowError(PackingError):
    """Raised when MaxRects could not fit every source even in the fallback bin."""

    def __init__(self, unplaced: List[str], result: Optional[PackResult] = None):
        self.unplaced = list(unplaced)
        self.result = result
        super().__init__(
            f"Could not fit {len(self.unplaced)} source(s) into the atlas: "
            f"{', '.join(self.unplaced)}"
        )

from __future__ import annotations

import math
from pathlib import Path

import numpy as np

NEUTRAL_BRIGHTNESS = 512
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


class EnvironmentField:
    """Read-only RGB raster the light sensors look at.

    Origin is the top-left pixel, x grows right and y grows down. Two sampling modes
    exist with different scales:

    * ``sample_at``: single pixel, ``round((255 - mean(rgb)) * 4)``, darker is higher,
      0..1020, 512 outside the field.
    * ``sample_area``: luma averaged over a square window, 0..1, darker is lower.
    """

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 3 or pixels.shape[2] < 3:
            raise ValueError(f"field raster must be (h, w, 3), got shape {pixels.shape}")
        data = np.ascontiguousarray(pixels[:, :, :3], dtype=np.uint8)
        data.setflags(write=False)
        self.pixels = data

    @classmethod
    def blank(
        cls,
        width: int,
        height: int,
        color: tuple[int, int, int] = (240, 240, 240),
    ) -> "EnvironmentField":
        pixels = np.empty((height, width, 3), dtype=np.uint8)
        pixels[:, :] = color
        return cls(pixels)

    @classmethod
    def from_image(cls, path: Path, size: tuple[int, int] | None = None) -> "EnvironmentField":
        """Load a map image, stretched to ``size`` (width, height) when given."""
        import pygame

        surface = pygame.image.load(str(path))
        if size is not None and surface.get_size() != tuple(size):
            surface = pygame.transform.scale(surface, size)
        # surfarray is indexed [x][y]
        pixels = pygame.surfarray.array3d(surface).transpose(1, 0, 2)
        return cls(pixels)

    def save(self, path: Path) -> None:
        import pygame

        surface = pygame.surfarray.make_surface(self.pixels.transpose(1, 0, 2))
        pygame.image.save(surface, str(path))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def contains_box(self, left: float, top: float, w: float, h: float) -> bool:
        return left >= 0 and top >= 0 and left + w <= self.width and top + h <= self.height

    def sample_at(self, x: float, y: float) -> int:
        px = _round_half_up(x)
        py = _round_half_up(y)
        if px < 0 or px >= self.width or py < 0 or py >= self.height:
            return NEUTRAL_BRIGHTNESS

        r, g, b = (int(c) for c in self.pixels[py, px])
        brightness = (r + g + b) / 3
        return _round_half_up((255 - brightness) * 4)

    def sample_area(self, x: float, y: float, size: int) -> float:
        half = size // 2
        x0 = max(0, _round_half_up(x) - half)
        y0 = max(0, _round_half_up(y) - half)
        x1 = min(self.width, _round_half_up(x) - half + size)
        y1 = min(self.height, _round_half_up(y) - half + size)
        if x1 <= x0 or y1 <= y0:
            return 0.0

        window = self.pixels[y0:y1, x0:x1].astype(np.float64)
        luma = window @ LUMA_WEIGHTS
        return float(luma.mean() / 255.0)

    def resized(self, width: int, height: int) -> "EnvironmentField":
        """Nearest-neighbour rescale used when the field bounds change."""
        if width <= 0 or height <= 0:
            raise ValueError(f"field size must be positive, got {width}x{height}")
        rows = (np.arange(height) * self.height // height).astype(np.intp)
        cols = (np.arange(width) * self.width // width).astype(np.intp)
        return EnvironmentField(self.pixels[rows][:, cols])

    def with_rect(
        self,
        left: int,
        top: int,
        w: int,
        h: int,
        color: tuple[int, int, int],
    ) -> "EnvironmentField":
        """Copy of the field with a filled rectangle painted on it."""
        pixels = self.pixels.copy()
        x0 = max(0, left)
        y0 = max(0, top)
        x1 = min(self.width, left + w)
        y1 = min(self.height, top + h)
        if x1 > x0 and y1 > y0:
            pixels[y0:y1, x0:x1] = color
        return EnvironmentField(pixels)

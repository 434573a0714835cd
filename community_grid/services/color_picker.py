import random
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from community_grid.core.config import DEFAULT_COLOR_PALETTE


class ColorPicker(ABC):
    """Chooses the cosmetic color of a locally originated claim."""

    @abstractmethod
    def __call__(self) -> str:
        pass


class RandomPaletteColorPicker(ColorPicker):
    """Uniformly random pick from a fixed palette."""

    def __init__(self, palette: Sequence[str] = DEFAULT_COLOR_PALETTE, rng: Optional[random.Random] = None):
        if not palette:
            raise ValueError("Palette must contain at least one color")
        self.palette = tuple(palette)
        self._rng = rng or random.Random()

    def __call__(self) -> str:
        return self._rng.choice(self.palette)


class FixedColorPicker(ColorPicker):
    """Always returns the same color."""

    def __init__(self, color: str):
        self.color = color

    def __call__(self) -> str:
        return self.color

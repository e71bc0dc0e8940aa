"""Temperature to background palette mapping."""
from __future__ import annotations

from enum import Enum
from typing import Tuple


class Palette(Enum):
    COLD2 = ("blue", "gray")
    COLD1 = ("blue", "green")
    WARM1 = ("yellow", "orange")
    HOT = ("red", "orange")

    @property
    def colors(self) -> Tuple[str, ...]:
        return self.value


# Lower bound (inclusive) of each bucket, highest first.
_THRESHOLDS = (
    (30, Palette.HOT),
    (15, Palette.WARM1),
    (5, Palette.COLD1),
)


def select_palette(temperature_c: int) -> Palette:
    """Return the palette for a whole-degree Celsius temperature.

    Buckets are half-open, so 5, 15 and 30 fall into the warmer bucket.
    """
    for lower, palette in _THRESHOLDS:
        if temperature_c >= lower:
            return palette
    return Palette.COLD2


__all__ = ["Palette", "select_palette"]

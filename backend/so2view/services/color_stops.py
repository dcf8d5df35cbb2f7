"""Color stop generation shared by the style expression and the legend.

Stops are evenly spaced over [0, max] at max / (steps - 1). When the caller's
minimum display threshold falls below that spacing, the first stop is pulled
down to it so the bottom bucket starts where the data becomes visible.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache

from .palettes import RGBA, UnknownPaletteError, palette_rgba


class InvalidArgumentError(ValueError):
    pass


@dataclass(frozen=True)
class ColorStop:
    value: float
    color: RGBA

    def css(self) -> str:
        r, g, b, a = self.color
        return f"rgba({r}, {g}, {b}, {a:g})"


@dataclass(frozen=True)
class ColorScale:
    palette: str = "RdBu"
    min_value: float = 1.0
    max_value: float = 20.0
    steps: int = 11
    alpha: float = 0.5

    def stops(self) -> tuple[ColorStop, ...]:
        return generate_stops(
            self.palette,
            self.min_value,
            self.max_value,
            self.steps,
            alpha=self.alpha,
        )

    def as_dict(self) -> dict:
        return {
            "palette": self.palette,
            "min": self.min_value,
            "max": self.max_value,
            "steps": self.steps,
            "alpha": self.alpha,
        }


def _validate(palette: str, min_value: float, max_value: float, steps: int, alpha: float) -> None:
    if not isinstance(palette, str) or not palette.strip():
        raise InvalidArgumentError("palette must be a non-empty name")
    if isinstance(steps, bool) or not isinstance(steps, int):
        raise InvalidArgumentError(f"steps must be an integer, got {steps!r}")
    if steps < 2:
        raise InvalidArgumentError(f"steps must be >= 2, got {steps}")
    for label, value in (("min", min_value), ("max", max_value), ("alpha", alpha)):
        if not math.isfinite(value):
            raise InvalidArgumentError(f"{label} must be finite, got {value!r}")
    if min_value < 0:
        raise InvalidArgumentError(f"min must be >= 0, got {min_value}")
    if max_value <= min_value:
        raise InvalidArgumentError(f"max must be greater than min (min={min_value}, max={max_value})")
    if not 0.0 <= alpha <= 1.0:
        raise InvalidArgumentError(f"alpha must be within [0, 1], got {alpha}")


@lru_cache(maxsize=128)
def _cached_stops(
    palette: str,
    min_value: float,
    max_value: float,
    steps: int,
    alpha: float,
) -> tuple[ColorStop, ...]:
    delta = max_value / (steps - 1)
    try:
        colors = palette_rgba(palette, steps, alpha)
    except UnknownPaletteError as exc:
        raise InvalidArgumentError(f"Unknown palette: {palette!r}") from exc
    except ValueError as exc:
        raise InvalidArgumentError(str(exc)) from exc

    values = [i * delta for i in range(steps)]
    if min_value < delta:
        values[0] = min_value
    return tuple(ColorStop(value=value, color=color) for value, color in zip(values, colors))


def generate_stops(
    palette: str,
    min_value: float,
    max_value: float,
    steps: int,
    *,
    alpha: float = 0.5,
) -> tuple[ColorStop, ...]:
    """Return `steps` (value, rgba) breakpoints for a palette over [0, max].

    Raises InvalidArgumentError for an unknown palette, steps < 2 or fewer
    steps than the palette has anchors, a negative min, max <= min or an
    alpha outside [0, 1].
    """
    min_value = float(min_value)
    max_value = float(max_value)
    alpha = float(alpha)
    _validate(palette, min_value, max_value, steps, alpha)
    return _cached_stops(palette.strip(), min_value, max_value, steps, alpha)


def flatten_stops(stops: tuple[ColorStop, ...]) -> list:
    """Flatten stops to [v0, c0, v1, c1, ...] with colors as lists."""
    flat: list = []
    for stop in stops:
        flat.append(stop.value)
        flat.append(list(stop.color))
    return flat

"""WebGL tile style expression for the SO2 raster band."""

from __future__ import annotations

from typing import Any

from .color_stops import ColorScale, flatten_stops

TRANSPARENT = [0, 0, 0, 0]


def band_expression(band: int = 1) -> list[Any]:
    return ["band", int(band)]


def build_style_expression(scale: ColorScale, *, band: int = 1) -> dict[str, Any]:
    """Piecewise-linear color ramp evaluated per pixel against a band value.

    Values below the scale minimum render fully transparent.
    """
    data = band_expression(band)
    return {
        "color": [
            "case",
            ["<", data, scale.min_value],
            list(TRANSPARENT),
            [
                "interpolate",
                ["linear"],
                data,
                *flatten_stops(scale.stops()),
            ],
        ],
    }

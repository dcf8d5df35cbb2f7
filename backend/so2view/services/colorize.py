"""Server-side colorization: float32 band → 4-band RGBA uint8 array.

Applies the same piecewise-linear ramp the browser style expression does, so
pre-rendered tiles and loop frames match the WebGL layer pixel for pixel.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from .color_stops import ColorScale


def stop_arrays(scale: ColorScale) -> tuple[np.ndarray, np.ndarray]:
    """Return stop values (N,) and RGBA colors (N, 4) with alpha scaled to 0–255."""
    stops = scale.stops()
    values = np.array([stop.value for stop in stops], dtype=np.float64)
    colors = np.array(
        [[r, g, b, a * 255.0] for r, g, b, a in (stop.color for stop in stops)],
        dtype=np.float64,
    )
    return values, colors


def float_to_rgba(
    data: np.ndarray,
    scale: ColorScale,
    *,
    nodata: float | None = 0.0,
) -> tuple[np.ndarray, dict[str, Any]]:
    """Convert a 2-D float array to a (4, H, W) uint8 RGBA array.

    Parameters
    ----------
    data : np.ndarray
        2-D array (H, W). NaN and `nodata` are transparent.
    scale : ColorScale
        Palette and domain; values below scale.min_value are transparent.

    Returns
    -------
    rgba : np.ndarray
        Shape (4, H, W), dtype uint8.
    meta : dict
        Data statistics and the stops used.
    """
    if data.ndim != 2:
        raise ValueError(f"data must be 2-D, got shape {data.shape}")

    values = np.asarray(data, dtype=np.float64)
    finite_mask = np.isfinite(values)
    if nodata is not None:
        finite_mask &= values != nodata

    stop_values, stop_colors = stop_arrays(scale)
    safe = np.where(finite_mask, values, stop_values[0])

    # np.interp clamps outside the stop range, like the "interpolate" expression.
    channels = [np.interp(safe, stop_values, stop_colors[:, band]) for band in range(4)]
    rgba = np.clip(np.rint(np.stack(channels, axis=0)), 0, 255).astype(np.uint8)

    visible = finite_mask & (values >= scale.min_value)
    rgba[:, ~visible] = 0

    meta = _build_meta(scale, values, finite_mask)
    return rgba, meta


def _build_meta(scale: ColorScale, data: np.ndarray, finite_mask: np.ndarray) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "scale": scale.as_dict(),
        "stops": [[stop.value, list(stop.color)] for stop in scale.stops()],
    }
    if finite_mask.any():
        valid = data[finite_mask]
        meta["min"] = float(np.nanmin(valid))
        meta["max"] = float(np.nanmax(valid))
    else:
        meta["min"] = None
        meta["max"] = None
    return meta

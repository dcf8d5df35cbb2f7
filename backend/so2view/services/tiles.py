"""Colorized XYZ tiles for a single SO2 raster.

Reads band 1 through rio-tiler, applies the shared color stops and encodes a
PNG. Tiles outside the raster extent are expected-empty and come back as a
transparent PNG rather than an error.
"""

from __future__ import annotations

import base64
import io
import logging

import numpy as np
from PIL import Image
from rio_tiler.errors import TileOutsideBounds
from rio_tiler.io.rasterio import Reader

from .color_stops import ColorScale
from .colorize import float_to_rgba

logger = logging.getLogger(__name__)

TILE_SIZE = 256
RESAMPLING = "bilinear"


def _build_transparent_png_tile(tilesize: int = TILE_SIZE) -> bytes:
    safe_size = max(1, int(tilesize))
    try:
        image = Image.new("RGBA", (safe_size, safe_size), (0, 0, 0, 0))
        buf = io.BytesIO()
        image.save(buf, format="PNG", optimize=True)
        return buf.getvalue()
    except OSError:
        logger.exception("Failed to build transparent tile PNG; falling back to 1x1")
        return base64.b64decode(
            "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMB/ax7n7kAAAAASUVORK5CYII="
        )


TRANSPARENT_PNG_TILE = _build_transparent_png_tile(TILE_SIZE)


def _read_band_tile(cog: Reader, *, x: int, y: int, z: int, tilesize: int):
    """Read band 1, falling back to default resampling on older rio-tiler builds."""
    try:
        return cog.tile(
            x,
            y,
            z,
            indexes=1,
            tilesize=tilesize,
            resampling_method=RESAMPLING,
            reproject_method=RESAMPLING,
        )
    except TypeError as exc:
        logger.warning("Reader.tile() rejected resampling kwargs (%s); trying defaults", exc)
        return cog.tile(x, y, z, indexes=1, tilesize=tilesize)


def encode_png(rgba: np.ndarray) -> bytes:
    image = Image.fromarray(np.ascontiguousarray(np.moveaxis(rgba, 0, -1)))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def render_tile(
    location: str,
    *,
    z: int,
    x: int,
    y: int,
    scale: ColorScale,
    tilesize: int = TILE_SIZE,
    dataset=None,
) -> bytes:
    """Render one colorized tile; an already open dataset is read in place and left open."""
    try:
        with Reader(input=location, dataset=dataset) as cog:
            tile = _read_band_tile(cog, x=x, y=y, z=z, tilesize=tilesize)
    except TileOutsideBounds:
        return TRANSPARENT_PNG_TILE

    band = np.asarray(tile.data[0], dtype=np.float64)
    rgba, _ = float_to_rgba(band, scale)

    mask = getattr(tile, "mask", None)
    if mask is not None:
        rgba[3] = np.where(np.asarray(mask) > 0, rgba[3], 0)

    if not rgba[3].any():
        return TRANSPARENT_PNG_TILE
    return encode_png(rgba)

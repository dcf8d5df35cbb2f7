from __future__ import annotations

from pathlib import Path
from typing import Callable

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

# Iceland-centred 1-degree grid: lon -30..-10, lat 60..70.
GRID_WEST = -30.0
GRID_NORTH = 70.0
GRID_WIDTH = 20
GRID_HEIGHT = 10


def write_so2_raster(
    path: Path,
    data: np.ndarray | None = None,
    *,
    time: str | None = "2024-05-30T00:00:00Z",
    created: str | None = "2024-05-29T18:00:00Z",
) -> Path:
    if data is None:
        data = np.full((GRID_HEIGHT, GRID_WIDTH), 5.0, dtype=np.float32)
    tags = {}
    if time is not None:
        tags["time"] = time
    if created is not None:
        tags["created"] = created

    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=data.shape[0],
        width=data.shape[1],
        count=1,
        dtype="float32",
        crs="EPSG:4326",
        transform=from_origin(GRID_WEST, GRID_NORTH, 1.0, 1.0),
        nodata=0.0,
    ) as dst:
        dst.write(data.astype(np.float32), 1)
        if tags:
            dst.update_tags(**tags)
    return path


@pytest.fixture
def so2_raster_writer() -> Callable[..., Path]:
    return write_so2_raster

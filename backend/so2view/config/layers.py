from __future__ import annotations

from dataclasses import dataclass

FORECAST_HOURS: tuple[int, ...] = tuple(range(0, 49, 6))


@dataclass(frozen=True)
class RasterLayer:
    index: int
    name: str
    base: str
    forecast_hour: int

    def as_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "base": self.base,
            "forecast_hour": self.forecast_hour,
        }


def layer_name(fh: int) -> str:
    return f"SO2 column mass [DU] +{fh:02d}h FCST"


def layer_base(fh: int) -> str:
    return f"SO2_col_mass_{fh:03d}.tif"


def build_raster_layers(forecast_hours: tuple[int, ...] = FORECAST_HOURS) -> tuple[RasterLayer, ...]:
    return tuple(
        RasterLayer(index=i, name=layer_name(fh), base=layer_base(fh), forecast_hour=fh)
        for i, fh in enumerate(forecast_hours)
    )


RASTER_LAYERS = build_raster_layers()

VIEW_PRESET: dict[str, object] = {
    "label": "Iceland",
    "center": [-18.0, 65.0],
    "zoom": 4,
}

KEY_BINDINGS: dict[str, str] = {
    "ArrowLeft": "previous",
    "ArrowRight": "next",
    " ": "next",
}

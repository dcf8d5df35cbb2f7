"""SO2 forecast viewer API — layers, navigation, color scale, legend and tiles."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from typing import Any

import numpy as np
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pyproj import Transformer
from rasterio.errors import RasterioError
from rasterio.windows import Window

from .config.layers import KEY_BINDINGS, RASTER_LAYERS, VIEW_PRESET, RasterLayer
from .services.color_stops import ColorScale, InvalidArgumentError, flatten_stops
from .services.legend import legend_layout, render_legend_png
from .services.palettes import list_palettes
from .services.navigator import NavigationError, NavigatorState, RasterNavigator
from .services.sources import MetadataFetchError, RasterFetchError, RasterSourceCache, raster_location
from .services.style import build_style_expression
from .services.tiles import render_tile

logger = logging.getLogger(__name__)


def _optional_int_env(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return None


DATA_ROOT = Path(os.environ.get("SO2V_DATA_ROOT", "./data"))
RASTER_BASE_URL = os.environ.get("SO2V_RASTER_BASE_URL", "").strip() or None
BASEMAP_URL = os.environ.get(
    "SO2V_BASEMAP_URL",
    "https://{1-4}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}.png",
)
BASEMAP_API_KEY = os.environ.get("SO2V_BASEMAP_API_KEY", "").strip() or None
BASEMAP_ATTRIBUTION = os.environ.get("SO2V_BASEMAP_ATTRIBUTION", "© OpenStreetMap contributors © CARTO")
SOURCE_CACHE_MAX = _optional_int_env("SO2V_SOURCE_CACHE_MAX")

DEFAULT_SCALE = ColorScale(
    palette=os.environ.get("SO2V_PALETTE", "RdBu"),
    min_value=float(os.environ.get("SO2V_SCALE_MIN", "1")),
    max_value=float(os.environ.get("SO2V_SCALE_MAX", "20")),
    steps=int(os.environ.get("SO2V_SCALE_STEPS", "11")),
    alpha=float(os.environ.get("SO2V_SCALE_ALPHA", "0.5")),
)
LEGEND_TITLE = "SO2 [DU]"

CACHE_STATIC = "public, max-age=300"
CACHE_NONE = "no-store"


def _make_etag(payload: object) -> str:
    digest = hashlib.md5(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()[:12]
    return f'"{digest}"'


def _etag_matches(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    vals = [v.strip() for v in if_none_match.split(",") if v.strip()]
    return "*" in vals or etag in vals


def _cached_json(request: Request, payload: Any, *, cache_control: str = CACHE_STATIC) -> Response:
    etag = _make_etag(payload)
    headers = {"Cache-Control": cache_control, "ETag": etag}
    if _etag_matches(request.headers.get("if-none-match"), etag):
        return Response(status_code=304, headers=headers)
    return JSONResponse(content=payload, headers=headers)


app = FastAPI(title="SO2 Forecast Viewer API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _layer_location(index: int) -> str:
    return raster_location(RASTER_LAYERS[index].base, data_root=DATA_ROOT, base_url=RASTER_BASE_URL)


_navigator = RasterNavigator(len(RASTER_LAYERS))
_sources = RasterSourceCache(_layer_location, max_entries=SOURCE_CACHE_MAX)


def _get_layer(index: int) -> RasterLayer:
    if not 0 <= index < len(RASTER_LAYERS):
        raise HTTPException(status_code=404, detail=f"Raster index {index} out of range")
    return RASTER_LAYERS[index]


def _scale_from_query(
    palette: str | None,
    min_value: float | None,
    max_value: float | None,
    steps: int | None,
    alpha: float | None,
) -> ColorScale:
    overrides: dict[str, Any] = {}
    if palette is not None:
        overrides["palette"] = palette
    if min_value is not None:
        overrides["min_value"] = min_value
    if max_value is not None:
        overrides["max_value"] = max_value
    if steps is not None:
        overrides["steps"] = steps
    if alpha is not None:
        overrides["alpha"] = alpha
    scale = replace(DEFAULT_SCALE, **overrides) if overrides else DEFAULT_SCALE
    try:
        scale.stops()
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return scale


def _scale_params(
    palette: str | None = Query(None, description="Palette name (e.g. RdBu)"),
    min_value: float | None = Query(None, alias="min", description="Minimum display threshold"),
    max_value: float | None = Query(None, alias="max", description="Top of the color range"),
    steps: int | None = Query(None, description="Number of color stops"),
    alpha: float | None = Query(None, description="Stop opacity in [0, 1]"),
) -> ColorScale:
    return _scale_from_query(palette, min_value, max_value, steps, alpha)


def basemap_url() -> str:
    if BASEMAP_API_KEY and "{api_key}" in BASEMAP_URL:
        return BASEMAP_URL.replace("{api_key}", BASEMAP_API_KEY)
    return BASEMAP_URL


def _viewer_payload(state: NavigatorState) -> dict[str, Any]:
    payload = state.as_dict()
    payload["layer"] = RASTER_LAYERS[state.index].as_dict()
    payload["layers"] = [
        {"index": layer.index, "name": layer.name, "visible": layer.index == state.index}
        for layer in RASTER_LAYERS
    ]
    return payload


@app.get("/api/health")
def health():
    return {
        "ok": True,
        "data_root": str(DATA_ROOT),
        "raster_base_url": RASTER_BASE_URL,
        "layers": len(RASTER_LAYERS),
        "cached_sources": len(_sources),
    }


@app.get("/api/config")
def get_config(request: Request):
    payload = {
        "basemap": {"url": basemap_url(), "attribution": BASEMAP_ATTRIBUTION},
        "view": VIEW_PRESET,
        "scale": DEFAULT_SCALE.as_dict(),
        "palettes": list_palettes(),
        "key_bindings": KEY_BINDINGS,
    }
    return _cached_json(request, payload)


@app.get("/api/layers")
def list_layers(request: Request):
    payload = [layer.as_dict() for layer in RASTER_LAYERS]
    return _cached_json(request, payload)


@app.get("/api/layers/{index:int}/metadata")
def get_layer_metadata(index: int):
    layer = _get_layer(index)
    try:
        metadata = _sources.metadata(index)
    except MetadataFetchError as exc:
        logger.exception("Metadata fetch failed for raster %d (%s)", index, layer.base)
        raise HTTPException(status_code=502, detail=f"Failed reading metadata: {exc}") from exc
    payload = metadata.as_dict()
    payload["index"] = index
    payload["name"] = layer.name
    return payload


@app.get("/api/viewer")
def get_viewer():
    return JSONResponse(content=_viewer_payload(_navigator.state), headers={"Cache-Control": CACHE_NONE})


@app.get("/api/viewer/info")
def get_viewer_info():
    state = _navigator.state
    layer = RASTER_LAYERS[state.index]
    try:
        metadata = _sources.metadata(state.index)
    except MetadataFetchError as exc:
        logger.exception("Metadata fetch failed for current raster %d (%s)", state.index, layer.base)
        raise HTTPException(status_code=502, detail=f"Failed reading metadata: {exc}") from exc
    return JSONResponse(
        content={
            "name": layer.name,
            "description": metadata.valid_label,
            "position": state.position,
            "created": metadata.created,
        },
        headers={"Cache-Control": CACHE_NONE},
    )


@app.post("/api/viewer/next")
def viewer_next():
    return _viewer_payload(_navigator.next())


@app.post("/api/viewer/previous")
def viewer_previous():
    return _viewer_payload(_navigator.previous())


@app.post("/api/viewer/goto/{index:int}")
def viewer_goto(index: int):
    try:
        state = _navigator.go_to(index)
    except NavigationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _viewer_payload(state)


@app.post("/api/viewer/key/{key}")
def viewer_key(key: str):
    try:
        state = _navigator.handle_key(key, KEY_BINDINGS)
    except NavigationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _viewer_payload(state)


@app.get("/api/stops")
def get_stops(request: Request, scale: ColorScale = Depends(_scale_params)):
    stops = scale.stops()
    payload = {
        "scale": scale.as_dict(),
        "stops": [{"value": stop.value, "color": list(stop.color)} for stop in stops],
        "flat": flatten_stops(stops),
    }
    return _cached_json(request, payload)


@app.get("/api/style")
def get_style(request: Request, scale: ColorScale = Depends(_scale_params)):
    return _cached_json(request, build_style_expression(scale))


@app.get("/api/legend")
def get_legend(
    request: Request,
    scale: ColorScale = Depends(_scale_params),
    bar_height: int = Query(200, ge=20, le=2000),
    bar_width: int = Query(20, ge=4, le=200),
):
    layout = legend_layout(scale, bar_height=bar_height, bar_width=bar_width)
    payload = layout.as_dict()
    payload["title"] = LEGEND_TITLE
    return _cached_json(request, payload)


@app.get("/api/legend.png")
def get_legend_png(
    scale: ColorScale = Depends(_scale_params),
    bar_height: int = Query(200, ge=20, le=2000),
    bar_width: int = Query(20, ge=4, le=200),
):
    layout = legend_layout(scale, bar_height=bar_height, bar_width=bar_width)
    content = render_legend_png(layout, title=LEGEND_TITLE)
    return Response(content=content, media_type="image/png", headers={"Cache-Control": CACHE_STATIC})



@app.get("/tiles/{index:int}/{z:int}/{x:int}/{y:int}.png")
def get_tile(index: int, z: int, x: int, y: int):
    layer = _get_layer(index)
    try:
        with _sources.reading(index) as ds:
            content = render_tile(ds.name, z=z, x=x, y=y, scale=DEFAULT_SCALE, dataset=ds)
    except RasterFetchError:
        logger.warning("Tile source unavailable for raster %d (%s)", index, layer.base)
        return Response(status_code=404, headers={"Cache-Control": CACHE_NONE})
    except Exception as exc:
        logger.exception("Tile render failed: %s/%d/%d/%d", layer.base, z, x, y)
        raise HTTPException(status_code=500, detail={"error": str(exc)}) from exc
    return Response(content=content, media_type="image/png", headers={"Cache-Control": CACHE_STATIC})


@lru_cache(maxsize=16)
def _transformer_to(crs_wkt: str) -> Transformer:
    return Transformer.from_crs("EPSG:4326", crs_wkt, always_xy=True)


@app.get("/api/sample")
def sample(
    index: int = Query(..., ge=0, description="Raster index"),
    lat: float = Query(..., ge=-90, le=90, description="Latitude (WGS84)"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude (WGS84)"),
):
    layer = _get_layer(index)
    payload: dict[str, Any] = {"index": index, "lat": lat, "lon": lon, "value": None, "noData": True}
    try:
        with _sources.reading(index) as ds:
            x, y = _transformer_to(ds.crs.to_wkt()).transform(lon, lat)
            if np.isfinite(x) and np.isfinite(y):
                row, col = ds.index(x, y)
                if 0 <= row < ds.height and 0 <= col < ds.width:
                    pixel = ds.read(1, window=Window(col, row, 1, 1))
                    value = float(pixel[0, 0])
                    nodata = ds.nodata
                    if np.isfinite(value) and (nodata is None or value != nodata):
                        payload["value"] = round(value, 2)
                        payload["noData"] = False
    except RasterFetchError as exc:
        logger.exception("Sample open failed for raster %d (%s)", index, layer.base)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RasterioError:
        logger.exception("Sample query failed: raster %d @ (%.4f, %.4f)", index, lat, lon)
        raise HTTPException(status_code=500, detail="internal error")

    payload["visible"] = payload["value"] is not None and payload["value"] >= DEFAULT_SCALE.min_value
    return payload

#!/usr/bin/env python3
"""Pre-render colorized loop WebP frames for the SO2 forecast series.

Usage:
    PYTHONPATH=backend .venv/bin/python backend/scripts/generate_loop_webp.py \
      --data-root ./data --out-dir ./data/loop

Optional:
    --palette RdBu --min 1 --max 20 --steps 11 --alpha 0.5
    --overwrite          # regenerate existing .loop.webp files
    --workers 6          # parallel conversion workers
"""

from __future__ import annotations

import argparse
import json
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import rasterio
from PIL import Image
from rasterio.enums import Resampling

from so2view.config.layers import RASTER_LAYERS, RasterLayer
from so2view.services.color_stops import ColorScale, InvalidArgumentError
from so2view.services.colorize import float_to_rgba

DEFAULT_WEBP_QUALITY = int(os.environ.get("SO2V_LOOP_WEBP_QUALITY", "82"))
DEFAULT_WEBP_MAX_DIM = int(os.environ.get("SO2V_LOOP_WEBP_MAX_DIM", "1600"))


@dataclass
class Job:
    layer: RasterLayer
    tif_path: Path
    webp_path: Path
    sidecar_path: Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pre-render colorized loop WebP frames from SO2 rasters")
    parser.add_argument(
        "--data-root",
        default=os.environ.get("SO2V_DATA_ROOT", "./data"),
        help="Directory holding SO2_col_mass_*.tif (default: env SO2V_DATA_ROOT or ./data)",
    )
    parser.add_argument("--out-dir", required=True, help="Output directory for .loop.webp frames")
    parser.add_argument("--palette", default=os.environ.get("SO2V_PALETTE", "RdBu"))
    parser.add_argument("--min", dest="min_value", type=float, default=float(os.environ.get("SO2V_SCALE_MIN", "1")))
    parser.add_argument("--max", dest="max_value", type=float, default=float(os.environ.get("SO2V_SCALE_MAX", "20")))
    parser.add_argument("--steps", type=int, default=int(os.environ.get("SO2V_SCALE_STEPS", "11")))
    parser.add_argument("--alpha", type=float, default=float(os.environ.get("SO2V_SCALE_ALPHA", "0.5")))
    parser.add_argument("--quality", type=int, default=DEFAULT_WEBP_QUALITY, help="WebP quality (default: 82)")
    parser.add_argument(
        "--max-dim",
        type=int,
        default=DEFAULT_WEBP_MAX_DIM,
        help="Max output dimension in px (default: 1600)",
    )
    parser.add_argument("--workers", type=int, default=4, help="Parallel workers (default: 4)")
    parser.add_argument("--overwrite", action="store_true", help="Regenerate existing .loop.webp files")
    return parser.parse_args(argv)


def discover_jobs(data_root: Path, out_dir: Path, overwrite: bool) -> list[Job]:
    jobs: list[Job] = []
    for layer in RASTER_LAYERS:
        tif_path = data_root / layer.base
        if not tif_path.is_file():
            continue
        stem = tif_path.stem
        webp_path = out_dir / f"{stem}.loop.webp"
        if webp_path.is_file() and not overwrite:
            continue
        jobs.append(
            Job(
                layer=layer,
                tif_path=tif_path,
                webp_path=webp_path,
                sidecar_path=out_dir / f"{stem}.json",
            )
        )
    return jobs


def convert_job(job: Job, scale: ColorScale, quality: int, max_dim: int) -> tuple[Job, bool, str | None]:
    try:
        job.webp_path.parent.mkdir(parents=True, exist_ok=True)

        with rasterio.open(job.tif_path) as ds:
            src_h = int(ds.height)
            src_w = int(ds.width)
            max_side = max(src_h, src_w)
            if max_side <= 0:
                return (job, False, "invalid source dimensions")

            factor = min(1.0, float(max_dim) / float(max_side))
            out_h = max(1, int(round(src_h * factor)))
            out_w = max(1, int(round(src_w * factor)))

            data = ds.read(
                1,
                out_shape=(out_h, out_w),
                resampling=Resampling.bilinear,
            ).astype(np.float64)
            nodata = ds.nodata
            tags = dict(ds.tags())

        rgba, meta = float_to_rgba(data, scale, nodata=0.0 if nodata is None else float(nodata))
        image = Image.fromarray(np.ascontiguousarray(np.moveaxis(rgba, 0, -1)))
        image.save(job.webp_path, format="WEBP", quality=quality, method=6)

        meta.update(
            {
                "index": job.layer.index,
                "name": job.layer.name,
                "forecast_hour": job.layer.forecast_hour,
                "time": tags.get("time"),
                "created": tags.get("created"),
            }
        )
        job.sidecar_path.write_text(json.dumps(meta, indent=2))
        return (job, True, None)
    except Exception as exc:
        return (job, False, str(exc))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.workers < 1:
        print("ERROR: --workers must be >= 1")
        return 2
    if args.max_dim < 64:
        print("ERROR: --max-dim must be >= 64")
        return 2

    scale = ColorScale(
        palette=args.palette,
        min_value=args.min_value,
        max_value=args.max_value,
        steps=args.steps,
        alpha=args.alpha,
    )
    try:
        scale.stops()
    except InvalidArgumentError as exc:
        print(f"ERROR: invalid color scale: {exc}")
        return 2

    data_root = Path(args.data_root)
    if not data_root.is_dir():
        print(f"ERROR: data root not found: {data_root}")
        return 1

    out_dir = Path(args.out_dir)
    jobs = discover_jobs(data_root, out_dir, args.overwrite)
    if not jobs:
        print(f"No conversion jobs found under {data_root}")
        return 0

    print(
        f"Generating loop WebP frames: jobs={len(jobs)} workers={args.workers} "
        f"quality={args.quality} max_dim={args.max_dim} palette={scale.palette}"
    )

    ok = 0
    failed = 0
    with ThreadPoolExecutor(max_workers=args.workers) as executor:
        futures = [executor.submit(convert_job, job, scale, args.quality, args.max_dim) for job in jobs]
        for future in as_completed(futures):
            job, success, error = future.result()
            if success:
                ok += 1
                print(f"OK   {job.webp_path.name}")
            else:
                failed += 1
                print(f"FAIL {job.webp_path.name} :: {error}")

    print(f"Done. success={ok} failed={failed}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Per-raster dataset handles and embedded GDAL metadata.

Each raster index is opened at most once and the handle is reused on every
later navigation step. By default the cache is unbounded and never evicts,
which is fine for a forecast series of a few dozen frames; pass max_entries
to bound it with least-recently-used eviction for longer series.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

import rasterio
from rasterio.errors import RasterioError

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("time", "created")


class RasterFetchError(RuntimeError):
    pass


class MetadataFetchError(RasterFetchError):
    pass


@dataclass(frozen=True)
class RasterMetadata:
    time: str | None = None
    created: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def valid_label(self) -> str:
        return f"Valid: {self.time}"

    def as_dict(self) -> dict:
        return {
            "time": self.time,
            "created": self.created,
            "label": self.valid_label,
            "extra": dict(self.extra),
        }


def raster_location(base: str, *, data_root: Path, base_url: str | None = None) -> str:
    """Resolve a raster file name to a local path or remote URL."""
    if base_url:
        return f"{base_url.rstrip('/')}/{base}"
    return str(data_root / base)


def read_metadata(dataset: rasterio.DatasetReader) -> RasterMetadata:
    try:
        tags = dict(dataset.tags())
    except RasterioError as exc:
        raise MetadataFetchError(f"Failed reading metadata from {dataset.name}: {exc}") from exc
    extra = {key: value for key, value in tags.items() if key not in METADATA_FIELDS}
    return RasterMetadata(time=tags.get("time"), created=tags.get("created"), extra=extra)


class RasterSourceCache:
    def __init__(self, resolve: Callable[[int], str], *, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1 or None, got {max_entries}")
        self._resolve = resolve
        self._max_entries = max_entries
        self._datasets: OrderedDict[int, rasterio.DatasetReader] = OrderedDict()
        self._lock = threading.Lock()
        self._read_locks: dict[int, threading.Lock] = {}
        self.opens = 0

    def __len__(self) -> int:
        return len(self._datasets)

    def __contains__(self, index: object) -> bool:
        return index in self._datasets

    def get(self, index: int) -> rasterio.DatasetReader:
        with self._lock:
            ds = self._datasets.get(index)
            if ds is not None and not ds.closed:
                self._datasets.move_to_end(index)
                return ds

            location = self._resolve(index)
            try:
                ds = rasterio.open(location)
            except RasterioError as exc:
                raise RasterFetchError(f"Failed opening raster {index} at {location}: {exc}") from exc
            self.opens += 1
            self._datasets[index] = ds
            evicted = self._evict_locked()
        self._close_evicted(evicted)
        return ds

    def lock_for(self, index: int) -> threading.Lock:
        """Lock guarding reads from the dataset handle of one raster index."""
        with self._lock:
            return self._read_locks.setdefault(index, threading.Lock())

    @contextmanager
    def reading(self, index: int) -> Iterator[rasterio.DatasetReader]:
        """Yield the open dataset for index while holding its read lock.

        A handle evicted between lookup and locking is reopened.
        """
        while True:
            ds = self.get(index)
            with self.lock_for(index):
                if not ds.closed:
                    yield ds
                    return

    def metadata(self, index: int) -> RasterMetadata:
        try:
            with self.reading(index) as ds:
                return read_metadata(ds)
        except MetadataFetchError:
            raise
        except RasterFetchError as exc:
            raise MetadataFetchError(str(exc)) from exc

    def _evict_locked(self) -> list[tuple[int, rasterio.DatasetReader]]:
        evicted: list[tuple[int, rasterio.DatasetReader]] = []
        if self._max_entries is None:
            return evicted
        while len(self._datasets) > self._max_entries:
            evicted.append(self._datasets.popitem(last=False))
        return evicted

    def _close_evicted(self, evicted: list[tuple[int, rasterio.DatasetReader]]) -> None:
        # Closed under the index's read lock so an in-flight read finishes first.
        for evict_index, ds in evicted:
            with self.lock_for(evict_index):
                try:
                    ds.close()
                except RasterioError:
                    logger.warning("Failed closing evicted raster handle for index %d", evict_index)

    def close(self) -> None:
        with self._lock:
            while self._datasets:
                index, ds = self._datasets.popitem()
                try:
                    ds.close()
                except RasterioError:
                    logger.warning("Failed closing raster handle for index %d", index)

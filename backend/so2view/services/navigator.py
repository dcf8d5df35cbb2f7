"""Current-raster navigation with wrap-around next/previous."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


class NavigationError(IndexError):
    pass


@dataclass(frozen=True)
class NavigatorState:
    index: int
    count: int

    @property
    def position(self) -> str:
        return f"{self.index + 1} / {self.count}"

    def as_dict(self) -> dict:
        return {"index": self.index, "count": self.count, "position": self.position}


class RasterNavigator:
    def __init__(self, count: int, start: int = 0) -> None:
        if count < 1:
            raise NavigationError(f"navigator needs at least one raster, got count={count}")
        if not 0 <= start < count:
            raise NavigationError(f"start index {start} out of range [0, {count})")
        self._count = count
        self._index = start
        self._lock = threading.Lock()

    @property
    def state(self) -> NavigatorState:
        with self._lock:
            return NavigatorState(index=self._index, count=self._count)

    def next(self) -> NavigatorState:
        with self._lock:
            self._index = (self._index + 1) % self._count
            return NavigatorState(index=self._index, count=self._count)

    def previous(self) -> NavigatorState:
        with self._lock:
            self._index = (self._index - 1 + self._count) % self._count
            return NavigatorState(index=self._index, count=self._count)

    def go_to(self, index: int) -> NavigatorState:
        if not 0 <= index < self._count:
            raise NavigationError(f"raster index {index} out of range [0, {self._count})")
        with self._lock:
            self._index = index
            return NavigatorState(index=self._index, count=self._count)

    def handle_key(self, key: str, bindings: dict[str, str]) -> NavigatorState:
        action = bindings.get(key)
        actions: dict[str, Callable[[], NavigatorState]] = {
            "next": self.next,
            "previous": self.previous,
        }
        handler = actions.get(action or "")
        if handler is None:
            logger.warning("Ignoring unbound navigation key %r", key)
            raise NavigationError(f"no navigation bound to key {key!r}")
        return handler()

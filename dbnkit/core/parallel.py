"""Optional data-parallel execution inside a training phase."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, TypeVar

T = TypeVar("T")


class WorkerPool:
    """Map per-sample work onto threads, or run it inline when disabled.

    ``map`` returns only once every item is done, so callers keep strict
    ordering between phases.
    """

    def __init__(self, enabled: bool, max_workers: int | None = None) -> None:
        self.enabled = enabled
        self.max_workers = max_workers or os.cpu_count() or 1
        self._executor: ThreadPoolExecutor | None = None

    def map(self, fn: Callable[..., T], *iterables: Iterable[object]) -> List[T]:
        if not self.enabled or self.max_workers <= 1:
            return [fn(*args) for args in zip(*iterables)]
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers)
        return list(self._executor.map(fn, *iterables))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = ["WorkerPool"]

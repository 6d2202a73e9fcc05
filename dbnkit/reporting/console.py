"""Console progress output for training loops."""

from __future__ import annotations

import time
from typing import Mapping


class ConsoleWatcher:
    """Print a banner when training starts and one line per epoch."""

    def __init__(self, *, every: int = 1) -> None:
        self.every = max(1, every)
        self._start: float | None = None

    def on_train_begin(self, layer: object, epochs: int, samples: int) -> None:
        self._start = time.perf_counter()
        describe = getattr(layer, "to_short_string", None)
        print("=== dbnkit training ===")
        print(f"Layer         : {describe() if callable(describe) else layer}")
        print(f"Epochs        : {epochs}")
        print(f"Samples       : {samples}")
        batch_size = getattr(layer, "batch_size", None)
        if batch_size is not None:
            print(f"Batch size    : {batch_size}")
        print("=======================")

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        if epoch % self.every:
            return
        parts = [f"{key}={value:.6f}" for key, value in metrics.items() if isinstance(value, float)]
        print(f"epoch {epoch:4d} - " + " ".join(parts))

    def on_train_end(self, layer: object, error: float) -> None:
        elapsed = time.perf_counter() - (self._start or time.perf_counter())
        print(f"Training took {elapsed:.2f}s, final error {error:.6f}")


__all__ = ["ConsoleWatcher"]

"""Metrics sinks for layer-wise training runs."""

from __future__ import annotations

import csv
import json
import subprocess
from pathlib import Path
from typing import Mapping


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):  # pragma: no cover - git may be unavailable
        return "unknown"


def _numeric(metrics: Mapping[str, object]) -> dict[str, float]:
    return {
        k: float(v)
        for k, v in metrics.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


class JsonlSink:
    """Append-only JSONL writer for training metrics.

    ``phase`` distinguishes pretraining from fine-tuning and ``layer`` the
    position of the trained layer inside a network.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        phase: str = "pretrain",
        layer: int | None = None,
        seed: int | None = None,
        sha: str | None = None,
        append: bool = False,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not append:
            self.path.write_text("")
        self.phase = phase
        self.layer = layer
        self.seed = seed
        self.sha = sha or _git_sha()

    def _write(self, epoch: int, metrics: Mapping[str, object]) -> None:
        record = {
            "epoch": int(epoch),
            "phase": self.phase,
            "layer": self.layer,
            "seed": self.seed,
            "sha": self.sha,
        }
        record.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    def for_layer(self, layer: int) -> "JsonlSink":
        """Return a sink writing to the same file, tagged with ``layer``."""

        return JsonlSink(
            self.path, phase=self.phase, layer=layer, seed=self.seed, sha=self.sha, append=True
        )

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        self._write(epoch, metrics)

    __call__ = on_epoch


class CsvSink:
    """Write metrics to CSV with a stable schema."""

    def __init__(self, path: str | Path, *, phase: str = "pretrain", layer: int | None = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.phase = phase
        self.layer = layer

    def _write(self, epoch: int, metrics: Mapping[str, object]) -> None:
        row: dict[str, object] = {"epoch": int(epoch), "phase": self.phase}
        if self.layer is not None:
            row["layer"] = self.layer
        row.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            fieldnames = sorted(row.keys())
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    def on_epoch(self, epoch: int, metrics: Mapping[str, object]) -> None:
        self._write(epoch, metrics)


__all__ = ["JsonlSink", "CsvSink"]

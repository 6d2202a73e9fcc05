"""Core typing contracts for dbnkit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

Array = np.ndarray


@dataclass(frozen=True)
class Batch:
    """A single mini-batch of data.

    ``targets`` holds the clean samples for denoising training and the labels
    for fine-tuning; it is ``None`` for plain unsupervised pretraining.
    """

    inputs: Array
    targets: Array | None = None


@dataclass
class PhaseState:
    """Buffers produced by one contrastive divergence step."""

    v1: Array
    h1_a: Array
    h1_s: Array
    v2_a: Array
    v2_s: Array
    h2_a: Array
    h2_s: Array


@dataclass
class Gradients:
    """Batch-averaged parameter gradients of a layer."""

    w: Array
    b: Array
    c: Array

    def items(self):
        return (("w", self.w), ("b", self.b), ("c", self.c))


@dataclass(frozen=True)
class TrainingResult:
    """Summary returned by the RBM and DBN training loops."""

    epochs: int
    error: float
    history: List[Dict[str, float]] = field(default_factory=list)


class ClassConstant:
    """Read-only attribute shared by a class and all of its instances."""

    def __init__(self, value: object) -> None:
        self.value = value
        self.name = "attribute"

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: object, owner: type | None = None) -> object:
        return self.value

    def __set__(self, instance: object, value: object) -> None:
        raise AttributeError(f"{self.name} is fixed by the layer descriptor")

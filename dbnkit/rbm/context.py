"""Auxiliary optimisation state owned by a layer.

Contexts are expensive to build, so a layer creates them on first request
and hands the same object to every caller (pretraining driver, fine-tuning
driver). Re-initialising a dynamic layer discards them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from ..core.types import Array


@dataclass
class SGDContext:
    """Gradients, momentum increments and cached outputs for SGD fine-tuning."""

    w_grad: Array
    b_grad: Array
    w_inc: Array
    b_inc: Array
    output: Array | None = None
    errors: Array | None = None

    @classmethod
    def for_shapes(
        cls, weight_shape: Tuple[int, ...], bias_shape: Tuple[int, ...], dtype: type
    ) -> "SGDContext":
        return cls(
            w_grad=np.zeros(weight_shape, dtype=dtype),
            b_grad=np.zeros(bias_shape, dtype=dtype),
            w_inc=np.zeros(weight_shape, dtype=dtype),
            b_inc=np.zeros(bias_shape, dtype=dtype),
        )

    def reset(self) -> None:
        for array in (self.w_grad, self.b_grad, self.w_inc, self.b_inc):
            array.fill(0.0)
        self.output = None
        self.errors = None


@dataclass
class CGContext:
    """Conjugate gradient bookkeeping: best parameters seen and last run info."""

    weight_shape: Tuple[int, ...]
    bias_shape: Tuple[int, ...]
    best_w: Array | None = None
    best_b: Array | None = None
    best_loss: float = float("inf")
    iterations: int = 0
    last_message: str = ""
    history: list = field(default_factory=list)

    @classmethod
    def for_shapes(
        cls, weight_shape: Tuple[int, ...], bias_shape: Tuple[int, ...]
    ) -> "CGContext":
        return cls(weight_shape=tuple(weight_shape), bias_shape=tuple(bias_shape))

    @property
    def size(self) -> int:
        return int(np.prod(self.weight_shape) + np.prod(self.bias_shape))

    def record(self, w: Array, b: Array, loss: float) -> None:
        self.history.append(float(loss))
        if loss < self.best_loss:
            self.best_loss = float(loss)
            self.best_w = w.copy()
            self.best_b = b.copy()


__all__ = ["SGDContext", "CGContext"]

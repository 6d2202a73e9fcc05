"""Fully connected layers used on top of pretrained RBMs during fine-tuning."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Callable, ClassVar, Dict, Tuple

import numpy as np

from ..core import activations as act
from ..core.conf import ConfElement, ConfSet
from ..core.enums import Function, to_string
from ..core.errors import ConfigurationError, ShapeMismatchError, nan_check
from ..core.traits import LayerPolicy
from ..core.types import Array, ClassConstant, Gradients
from ..rbm.context import CGContext, SGDContext

_FORWARD: Dict[Function, Callable[[Array], Array]] = {
    Function.IDENTITY: act.identity,
    Function.SIGMOID: act.sigmoid,
    Function.TANH: act.tanh,
    Function.RELU: act.relu,
    Function.SOFTMAX: act.softmax,
}

_DERIV: Dict[Function, Callable[[Array], Array]] = {
    Function.IDENTITY: np.ones_like,
    Function.SIGMOID: act.sigmoid_deriv,
    Function.TANH: act.tanh_deriv,
    Function.RELU: act.relu_deriv,
    # only valid when paired with the cross-entropy loss, which skips it
    Function.SOFTMAX: np.ones_like,
}


class DenseLayerBase:
    """``out = f(x . w + b)`` with ``w`` of shape ``(num_inputs, num_outputs)``."""

    policy: ClassVar[LayerPolicy] = LayerPolicy()
    kind: ClassVar[str] = "Dense"
    trainable: ClassVar[bool] = True
    pretrainable: ClassVar[bool] = False

    num_inputs: int
    num_outputs: int

    def __init__(self, seed: int | None = None) -> None:
        self.rng = np.random.default_rng(seed)
        self.dtype = self.policy.weight_type
        self.batch_size = self.policy.batch_size
        self._sgd_context: SGDContext | None = None
        self._cg_context: CGContext | None = None

    def _allocate(self) -> None:
        scale = np.sqrt(2.0 / (self.num_inputs + self.num_outputs))
        self.w = (self.rng.standard_normal((self.num_inputs, self.num_outputs)) * scale).astype(self.dtype)
        self.b = np.zeros(self.num_outputs, dtype=self.dtype)
        self._sgd_context = None
        self._cg_context = None

    @property
    def activation(self) -> Function:
        return self.policy.activation

    def input_size(self) -> int:
        return self.num_inputs

    def output_size(self) -> int:
        return self.num_outputs

    def parameters(self) -> int:
        return self.num_inputs * self.num_outputs

    def to_short_string(self) -> str:
        return f"{self.kind}: {self.num_inputs} -> {to_string(self.activation)} -> {self.num_outputs}"

    def display(self) -> None:
        print(self.to_short_string())

    def validate_input(self, x: Array) -> Array:
        x = np.asarray(x, dtype=self.dtype)
        if x.ndim == 1:
            x = x[None, :]
        x = x.reshape(x.shape[0], -1)
        if x.shape[1] != self.num_inputs:
            raise ShapeMismatchError(
                f"Dense input size mismatch: expected {self.num_inputs}, got {x.shape[1]}"
            )
        return x

    def prepare_input(self) -> Array:
        return np.zeros(self.num_inputs, dtype=self.dtype)

    def forward(self, x: Array) -> Array:
        x = self.validate_input(x)
        out = _FORWARD[self.activation](x @ self.w + self.b)
        nan_check(out, "dense activations")
        return out

    activation_probabilities = forward
    features = forward

    def backprop(
        self, x: Array, out: Array, errors: Array, *, apply_derivative: bool = True
    ) -> tuple[Gradients, Array]:
        x = self.validate_input(x)
        errors = np.asarray(errors).reshape(out.shape)
        delta = errors * _DERIV[self.activation](out) if apply_derivative else errors
        batch = x.shape[0]
        grads = Gradients(w=x.T @ delta / batch, b=delta.sum(axis=0) / batch, c=np.zeros(0))
        return grads, delta @ self.w.T

    def sgd_context(self) -> SGDContext:
        if self._sgd_context is None:
            self._sgd_context = SGDContext.for_shapes(self.w.shape, self.b.shape, self.dtype)
        return self._sgd_context

    def cg_context(self) -> CGContext:
        if self._cg_context is None:
            self._cg_context = CGContext.for_shapes(self.w.shape, self.b.shape)
        return self._cg_context

    def invalidate_contexts(self) -> None:
        self._sgd_context = None
        self._cg_context = None

    def store(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            np.savez_compressed(handle, w=self.w, b=self.b)

    def load(self, path: str | Path) -> None:
        with np.load(Path(path)) as payload:
            for name in ("w", "b"):
                if name not in payload:
                    raise KeyError(f"Missing {name} in stored layer")
                if payload[name].shape != getattr(self, name).shape:
                    raise ShapeMismatchError(f"Stored {name} has shape {payload[name].shape}")
                setattr(self, name, payload[name].astype(self.dtype))


class DenseLayer(DenseLayerBase):
    """Dense layer with dimensions fixed by :func:`dense_desc`."""

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self._allocate()

    @classmethod
    def dyn_init(cls, dyn: "DynDenseLayer") -> None:
        dyn.batch_size = cls.policy.batch_size
        dyn.init_layer(cls.num_inputs, cls.num_outputs)


class DynDenseLayer(DenseLayerBase):
    kind: ClassVar[str] = "Dense(dyn)"

    def __init__(
        self, num_inputs: int | None = None, num_outputs: int | None = None, *, seed: int | None = None
    ) -> None:
        super().__init__(seed)
        self.num_inputs = 0
        self.num_outputs = 0
        if num_inputs is not None and num_outputs is not None:
            self.init_layer(num_inputs, num_outputs)

    def init_layer(self, num_inputs: int, num_outputs: int) -> None:
        if num_inputs <= 0 or num_outputs <= 0:
            raise ValueError(f"Invalid dense dimensions {num_inputs} -> {num_outputs}")
        self.num_inputs = int(num_inputs)
        self.num_outputs = int(num_outputs)
        self._allocate()

    @staticmethod
    def dyn_init(dyn: "DynDenseLayer") -> None:
        """Dynamic layers are already configured."""


@dataclass(frozen=True)
class DenseDesc:
    num_inputs: int
    num_outputs: int
    markers: Tuple[ConfElement, ...] = ()

    def __post_init__(self) -> None:
        for name in ("num_inputs", "num_outputs"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        _ = self.policy

    @cached_property
    def policy(self) -> LayerPolicy:
        return LayerPolicy.from_conf(ConfSet(self.markers))

    @cached_property
    def layer_t(self) -> type:
        return type(
            "DenseLayer",
            (DenseLayer,),
            {
                "__module__": DenseLayer.__module__,
                "policy": self.policy,
                "num_inputs": ClassConstant(self.num_inputs),
                "num_outputs": ClassConstant(self.num_outputs),
            },
        )

    @cached_property
    def dyn_layer_t(self) -> type:
        return type(
            "DynDenseLayer",
            (DynDenseLayer,),
            {"__module__": DynDenseLayer.__module__, "policy": self.policy},
        )


def dense_desc(num_inputs: int, num_outputs: int, *markers: ConfElement) -> DenseDesc:
    return DenseDesc(num_inputs, num_outputs, tuple(markers))


__all__ = ["DenseLayerBase", "DenseLayer", "DynDenseLayer", "DenseDesc", "dense_desc"]

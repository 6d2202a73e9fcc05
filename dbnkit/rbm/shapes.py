"""Geometry of a layer: the interface the shared RBM engine calls into.

The engine never inspects whether it runs a dense or a convolutional RBM.
Every operation that depends on the geometry (products, reshapes, bias
broadcasting, statistics) goes through a :class:`LayerShape`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Tuple

import numpy as np

from ..core.conv import conv4_full, conv4_valid_filter, conv4_valid_flipped
from ..core.errors import ShapeMismatchError
from ..core.types import Array


class LayerShape(Protocol):
    """Operations the engine needs from a concrete RBM geometry."""

    visible_shape: Tuple[int, ...]
    hidden_shape: Tuple[int, ...]
    weight_shape: Tuple[int, ...]
    hidden_positions: int
    visible_positions: int

    def reshape_visible(self, v: Array) -> Array: ...

    def reshape_hidden(self, h: Array) -> Array: ...

    def broadcast_visible_bias(self, c: Array, batch_size: int | None = None) -> Array: ...

    def broadcast_hidden_bias(self, b: Array, batch_size: int | None = None) -> Array: ...

    def energy_scratch_buffer(self, dtype: type) -> Array: ...

    def hidden_input(self, v: Array, w: Array) -> Array: ...

    def visible_input(self, h: Array, w: Array) -> Array: ...

    def weight_statistics(self, v: Array, h: Array) -> Array: ...

    def hidden_bias_statistics(self, h: Array) -> Array: ...

    def visible_bias_statistics(self, v: Array) -> Array: ...

    def hidden_unit_means(self, h: Array) -> Array: ...

    def expand_hidden_to_weights(self, x: Array) -> Array: ...

    def spatial_sum_visible(self, v: Array) -> Array: ...

    def spatial_sum_hidden(self, h: Array) -> Array: ...


def _reshape_batch(x: Array, shape: Tuple[int, ...], what: str) -> Array:
    """Return ``x`` as a ``(batch,) + shape`` array, accepting flat samples."""

    x = np.asarray(x)
    expected = int(np.prod(shape))
    if x.shape == tuple(shape) or x.ndim == 1:
        x = x[None, ...]
    if x.ndim == 0 or x.shape[0] == 0:
        raise ShapeMismatchError(f"{what} is empty")
    per_sample = int(np.prod(x.shape[1:]))
    if per_sample != expected:
        raise ShapeMismatchError(
            f"{what} size mismatch: expected {expected} values {shape}, got {per_sample}"
        )
    return x.reshape((x.shape[0],) + tuple(shape))


@dataclass(frozen=True)
class DenseShape:
    """Fully connected RBM: ``w`` is ``(num_visible, num_hidden)``."""

    num_visible: int
    num_hidden: int

    @property
    def visible_shape(self) -> Tuple[int, ...]:
        return (self.num_visible,)

    @property
    def hidden_shape(self) -> Tuple[int, ...]:
        return (self.num_hidden,)

    @property
    def weight_shape(self) -> Tuple[int, ...]:
        return (self.num_visible, self.num_hidden)

    @property
    def hidden_positions(self) -> int:
        return 1

    @property
    def visible_positions(self) -> int:
        return 1

    def input_size(self) -> int:
        return self.num_visible

    def output_size(self) -> int:
        return self.num_hidden

    def parameters(self) -> int:
        return self.num_visible * self.num_hidden

    def init_weights(self, rng: np.random.Generator, dtype: type) -> Array:
        return (rng.standard_normal(self.weight_shape) * 0.1).astype(dtype)

    def initial_hidden_bias(self) -> float:
        return 0.0

    def reshape_visible(self, v: Array) -> Array:
        return _reshape_batch(v, self.visible_shape, "Visible input")

    def reshape_hidden(self, h: Array) -> Array:
        return _reshape_batch(h, self.hidden_shape, "Hidden input")

    def broadcast_visible_bias(self, c: Array, batch_size: int | None = None) -> Array:
        if batch_size is None:
            return c
        return np.broadcast_to(c, (batch_size, self.num_visible))

    def broadcast_hidden_bias(self, b: Array, batch_size: int | None = None) -> Array:
        if batch_size is None:
            return b
        return np.broadcast_to(b, (batch_size, self.num_hidden))

    def energy_scratch_buffer(self, dtype: type) -> Array:
        return np.zeros((1, self.num_hidden), dtype=dtype)

    def hidden_input(self, v: Array, w: Array) -> Array:
        return v @ w

    def visible_input(self, h: Array, w: Array) -> Array:
        return h @ w.T

    def weight_statistics(self, v: Array, h: Array) -> Array:
        return v.T @ h

    def hidden_bias_statistics(self, h: Array) -> Array:
        return h.sum(axis=0)

    def visible_bias_statistics(self, v: Array) -> Array:
        return v.sum(axis=0)

    def hidden_unit_means(self, h: Array) -> Array:
        return h.mean(axis=0)

    def expand_hidden_to_weights(self, x: Array) -> Array:
        return x[None, :]

    def spatial_sum_visible(self, v: Array) -> Array:
        return v

    def spatial_sum_hidden(self, h: Array) -> Array:
        return h

    def describe(self) -> str:
        return f"{self.num_visible} -> {self.num_hidden}"


@dataclass(frozen=True)
class ConvShape:
    """Convolutional RBM with ``k`` filters of ``nw1 x nw2`` over ``nc`` maps."""

    nc: int
    nv1: int
    nv2: int
    k: int
    nw1: int
    nw2: int

    def __post_init__(self) -> None:
        if self.nw1 > self.nv1 or self.nw2 > self.nv2:
            raise ValueError(
                f"Filters ({self.nw1}x{self.nw2}) larger than the input ({self.nv1}x{self.nv2})"
            )

    @property
    def nh1(self) -> int:
        return self.nv1 - self.nw1 + 1

    @property
    def nh2(self) -> int:
        return self.nv2 - self.nw2 + 1

    @property
    def visible_shape(self) -> Tuple[int, ...]:
        return (self.nc, self.nv1, self.nv2)

    @property
    def hidden_shape(self) -> Tuple[int, ...]:
        return (self.k, self.nh1, self.nh2)

    @property
    def weight_shape(self) -> Tuple[int, ...]:
        return (self.k, self.nc, self.nw1, self.nw2)

    @property
    def hidden_positions(self) -> int:
        return self.nh1 * self.nh2

    @property
    def visible_positions(self) -> int:
        return self.nv1 * self.nv2

    def input_size(self) -> int:
        return self.nc * self.nv1 * self.nv2

    def output_size(self) -> int:
        return self.k * self.nh1 * self.nh2

    def parameters(self) -> int:
        return self.k * self.nc * self.nw1 * self.nw2

    def init_weights(self, rng: np.random.Generator, dtype: type) -> Array:
        return (rng.standard_normal(self.weight_shape) * 0.01).astype(dtype)

    def initial_hidden_bias(self) -> float:
        return -0.1

    def reshape_visible(self, v: Array) -> Array:
        return _reshape_batch(v, self.visible_shape, "Visible input")

    def reshape_hidden(self, h: Array) -> Array:
        return _reshape_batch(h, self.hidden_shape, "Hidden input")

    def broadcast_visible_bias(self, c: Array, batch_size: int | None = None) -> Array:
        rep = np.broadcast_to(c[:, None, None], self.visible_shape)
        if batch_size is None:
            return rep
        return np.broadcast_to(rep, (batch_size,) + self.visible_shape)

    def broadcast_hidden_bias(self, b: Array, batch_size: int | None = None) -> Array:
        rep = np.broadcast_to(b[:, None, None], self.hidden_shape)
        if batch_size is None:
            return rep
        return np.broadcast_to(rep, (batch_size,) + self.hidden_shape)

    def energy_scratch_buffer(self, dtype: type) -> Array:
        return np.zeros((1,) + self.hidden_shape, dtype=dtype)

    def hidden_input(self, v: Array, w: Array) -> Array:
        return conv4_valid_flipped(v, w)

    def visible_input(self, h: Array, w: Array) -> Array:
        return conv4_full(h, w)

    def weight_statistics(self, v: Array, h: Array) -> Array:
        return conv4_valid_filter(v, h)

    def hidden_bias_statistics(self, h: Array) -> Array:
        return h.sum(axis=(0, 2, 3))

    def visible_bias_statistics(self, v: Array) -> Array:
        return v.sum(axis=(0, 2, 3))

    def hidden_unit_means(self, h: Array) -> Array:
        return h.mean(axis=(0, 2, 3))

    def expand_hidden_to_weights(self, x: Array) -> Array:
        return x[:, None, None, None]

    def spatial_sum_visible(self, v: Array) -> Array:
        return v.sum(axis=(-2, -1))

    def spatial_sum_hidden(self, h: Array) -> Array:
        return h.sum(axis=(-2, -1))

    def describe(self) -> str:
        return (
            f"{self.nc}x{self.nv1}x{self.nv2} -> "
            f"({self.k}x{self.nw1}x{self.nw2}) -> {self.k}x{self.nh1}x{self.nh2}"
        )


__all__ = ["LayerShape", "DenseShape", "ConvShape"]

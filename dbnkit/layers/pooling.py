"""Non-overlapping 3D pooling over ``(channels, height, width)`` blocks.

Pooling layers have no parameters: they are skipped by pretraining except to
transform the data handed to the next layer, and only route errors during
fine-tuning.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Callable, ClassVar, Tuple

import numpy as np

from ..core.conf import ConfElement, ConfSet
from ..core.conv import avg_pool_3d, max_pool_3d, upsample_3d
from ..core.errors import ConfigurationError, ShapeMismatchError
from ..core.traits import LayerPolicy
from ..core.types import Array, ClassConstant


class PoolingLayer3D:
    policy: ClassVar[LayerPolicy] = LayerPolicy()
    kind: ClassVar[str] = "Pool"
    trainable: ClassVar[bool] = False
    pretrainable: ClassVar[bool] = False
    pool: ClassVar[Callable[[Array, Tuple[int, int, int]], Array]]

    i1: int
    i2: int
    i3: int
    c1: int
    c2: int
    c3: int

    def __init__(self) -> None:
        self.dtype = self.policy.weight_type
        self.batch_size = self.policy.batch_size

    @property
    def input_shape(self) -> Tuple[int, int, int]:
        return (self.i1, self.i2, self.i3)

    @property
    def output_shape(self) -> Tuple[int, int, int]:
        return (self.i1 // self.c1, self.i2 // self.c2, self.i3 // self.c3)

    @property
    def factors(self) -> Tuple[int, int, int]:
        return (self.c1, self.c2, self.c3)

    def input_size(self) -> int:
        return self.i1 * self.i2 * self.i3

    def output_size(self) -> int:
        return int(np.prod(self.output_shape))

    def parameters(self) -> int:
        return 0

    def to_short_string(self) -> str:
        o1, o2, o3 = self.output_shape
        return (
            f"{self.kind}: {self.i1}x{self.i2}x{self.i3} -> "
            f"({self.c1}x{self.c2}x{self.c3}) -> {o1}x{o2}x{o3}"
        )

    def display(self) -> None:
        print(self.to_short_string())

    def validate_input(self, x: Array) -> Array:
        x = np.asarray(x, dtype=self.dtype)
        if x.shape == self.input_shape or x.ndim == 1:
            x = x[None, ...]
        if x[0].size != self.input_size():
            raise ShapeMismatchError(
                f"Pooling input size mismatch: expected {self.input_size()}, got {x[0].size}"
            )
        return x.reshape((x.shape[0],) + self.input_shape)

    def prepare_input(self) -> Array:
        return np.zeros(self.input_shape, dtype=self.dtype)

    def forward(self, x: Array) -> Array:
        return type(self).pool(self.validate_input(x), self.factors)

    activation_probabilities = forward
    features = forward

    def backprop(
        self, x: Array, out: Array, errors: Array, *, apply_derivative: bool = True
    ) -> tuple[None, Array]:
        errors = np.asarray(errors).reshape(out.shape)
        return None, self._route(self.validate_input(x), out, errors)

    def _route(self, x: Array, out: Array, errors: Array) -> Array:
        raise NotImplementedError


class AvgPoolLayerBase(PoolingLayer3D):
    kind: ClassVar[str] = "AVGP"
    pool = staticmethod(avg_pool_3d)

    def _route(self, x: Array, out: Array, errors: Array) -> Array:
        return upsample_3d(errors, self.factors) / (self.c1 * self.c2 * self.c3)


class MaxPoolLayerBase(PoolingLayer3D):
    kind: ClassVar[str] = "MP"
    pool = staticmethod(max_pool_3d)

    def _route(self, x: Array, out: Array, errors: Array) -> Array:
        # ties share the error of their block
        mask = (x == upsample_3d(out, self.factors)).astype(errors.dtype)
        return upsample_3d(errors, self.factors) * mask


class _StaticPooling:
    @classmethod
    def dyn_init(cls, dyn) -> None:
        dyn.batch_size = cls.policy.batch_size
        dyn.init_layer(cls.i1, cls.i2, cls.i3, cls.c1, cls.c2, cls.c3)


class _DynamicPooling:
    def _set_geometry(self, dims: Tuple[int | None, ...]) -> None:
        self.i1 = self.i2 = self.i3 = 0
        self.c1 = self.c2 = self.c3 = 1
        if all(d is not None for d in dims):
            self.init_layer(*dims)

    def init_layer(self, i1: int, i2: int, i3: int, c1: int, c2: int, c3: int) -> None:
        _check_geometry(i1, i2, i3, c1, c2, c3, error=ValueError)
        self.i1, self.i2, self.i3 = int(i1), int(i2), int(i3)
        self.c1, self.c2, self.c3 = int(c1), int(c2), int(c3)

    @staticmethod
    def dyn_init(dyn) -> None:
        """Dynamic layers are already configured."""


class AvgPoolLayer3D(_StaticPooling, AvgPoolLayerBase):
    pass


class MaxPoolLayer3D(_StaticPooling, MaxPoolLayerBase):
    pass


class DynAvgPoolLayer3D(_DynamicPooling, AvgPoolLayerBase):
    kind: ClassVar[str] = "AVGP(dyn)"

    def __init__(self, i1=None, i2=None, i3=None, c1=None, c2=None, c3=None) -> None:
        super().__init__()
        self._set_geometry((i1, i2, i3, c1, c2, c3))


class DynMaxPoolLayer3D(_DynamicPooling, MaxPoolLayerBase):
    kind: ClassVar[str] = "MP(dyn)"

    def __init__(self, i1=None, i2=None, i3=None, c1=None, c2=None, c3=None) -> None:
        super().__init__()
        self._set_geometry((i1, i2, i3, c1, c2, c3))


def _check_geometry(i1, i2, i3, c1, c2, c3, *, error: type = ConfigurationError) -> None:
    for value in (i1, i2, i3, c1, c2, c3):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise error(f"Pooling dimensions must be positive integers, got {value!r}")
    if i1 % c1 or i2 % c2 or i3 % c3:
        raise error(f"Pooling factors {c1}x{c2}x{c3} do not divide {i1}x{i2}x{i3}")


@dataclass(frozen=True)
class PoolingDesc:
    i1: int
    i2: int
    i3: int
    c1: int
    c2: int
    c3: int
    markers: Tuple[ConfElement, ...] = ()
    static_base: ClassVar[type] = AvgPoolLayer3D
    dynamic_base: ClassVar[type] = DynAvgPoolLayer3D

    def __post_init__(self) -> None:
        _check_geometry(self.i1, self.i2, self.i3, self.c1, self.c2, self.c3)
        _ = self.policy

    @cached_property
    def policy(self) -> LayerPolicy:
        return LayerPolicy.from_conf(ConfSet(self.markers))

    @cached_property
    def layer_t(self) -> type:
        base = self.static_base
        namespace = {"__module__": base.__module__, "policy": self.policy}
        for name in ("i1", "i2", "i3", "c1", "c2", "c3"):
            namespace[name] = ClassConstant(getattr(self, name))
        return type(base.__name__, (base,), namespace)

    @cached_property
    def dyn_layer_t(self) -> type:
        base = self.dynamic_base
        return type(base.__name__, (base,), {"__module__": base.__module__, "policy": self.policy})


@dataclass(frozen=True)
class AvgPoolDesc(PoolingDesc):
    pass


@dataclass(frozen=True)
class MaxPoolDesc(PoolingDesc):
    static_base: ClassVar[type] = MaxPoolLayer3D
    dynamic_base: ClassVar[type] = DynMaxPoolLayer3D


def avgp_layer_3d_desc(i1: int, i2: int, i3: int, c1: int, c2: int, c3: int, *markers: ConfElement) -> AvgPoolDesc:
    return AvgPoolDesc(i1, i2, i3, c1, c2, c3, tuple(markers))


def mp_layer_3d_desc(i1: int, i2: int, i3: int, c1: int, c2: int, c3: int, *markers: ConfElement) -> MaxPoolDesc:
    return MaxPoolDesc(i1, i2, i3, c1, c2, c3, tuple(markers))


__all__ = [
    "PoolingLayer3D",
    "AvgPoolLayer3D",
    "MaxPoolLayer3D",
    "DynAvgPoolLayer3D",
    "DynMaxPoolLayer3D",
    "AvgPoolDesc",
    "MaxPoolDesc",
    "avgp_layer_3d_desc",
    "mp_layer_3d_desc",
]

"""Layer descriptors: marker lists resolved into concrete layer classes.

Descriptors validate the unit combination when they are built, so an invalid
configuration fails before any layer is instantiated::

    desc = rbm_desc(784, 100, Momentum(), BatchSize(10))
    rbm = desc.layer_t()
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Tuple

from ..core.errors import ConfigurationError
from ..core.conf import ConfElement, ConfSet
from ..core.traits import LayerPolicy
from ..core.types import ClassConstant
from ..core.units import UnitStrategy, select_units
from .conv_rbm import ConvRBM, DynConvRBM
from .rbm import RBM, DynRBM


def _make_class(base: type, name: str, policy: LayerPolicy, units: UnitStrategy, **constants: int) -> type:
    namespace: Dict[str, object] = {
        "__module__": base.__module__,
        "policy": policy,
        "units": units,
    }
    for key, value in constants.items():
        namespace[key] = ClassConstant(value)
    return type(name, (base,), namespace)


def _require_positive(**dims: int) -> None:
    for name, value in dims.items():
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


class _LayerDesc:
    """Common policy resolution for RBM descriptors."""

    markers: Tuple[ConfElement, ...]
    convolutional = False

    def __post_init__(self) -> None:
        self._check_dims()
        # Unit combinations are validated when the descriptor is built
        _ = self.units

    def _check_dims(self) -> None:
        pass

    @cached_property
    def conf(self) -> ConfSet:
        return ConfSet(self.markers)

    @cached_property
    def policy(self) -> LayerPolicy:
        return LayerPolicy.from_conf(self.conf)

    @cached_property
    def units(self) -> UnitStrategy:
        return select_units(
            self.policy.visible_unit, self.policy.hidden_unit, convolutional=self.convolutional
        )

    @property
    def visible_unit(self):
        return self.policy.visible_unit

    @property
    def hidden_unit(self):
        return self.policy.hidden_unit

    @property
    def batch_size(self) -> int:
        return self.policy.batch_size


@dataclass(frozen=True)
class RBMDesc(_LayerDesc):
    """Descriptor of a dense RBM with ``num_visible -> num_hidden`` units."""

    num_visible: int
    num_hidden: int
    markers: Tuple[ConfElement, ...] = ()

    def _check_dims(self) -> None:
        _require_positive(num_visible=self.num_visible, num_hidden=self.num_hidden)

    @cached_property
    def layer_t(self) -> type:
        return _make_class(
            RBM,
            "RBM",
            self.policy,
            self.units,
            num_visible=self.num_visible,
            num_hidden=self.num_hidden,
        )

    @cached_property
    def dyn_layer_t(self) -> type:
        return _make_class(DynRBM, "DynRBM", self.policy, self.units)


@dataclass(frozen=True)
class DynRBMDesc(_LayerDesc):
    """Descriptor of a dense RBM whose dimensions are set at runtime."""

    markers: Tuple[ConfElement, ...] = ()

    @cached_property
    def layer_t(self) -> type:
        return _make_class(DynRBM, "DynRBM", self.policy, self.units)

    @property
    def dyn_layer_t(self) -> type:
        return self.layer_t


@dataclass(frozen=True)
class ConvRBMDesc(_LayerDesc):
    """Descriptor of a convolutional RBM.

    ``nc`` input channels of ``nv1 x nv2``, ``k`` filters of ``nw1 x nw2``;
    the hidden maps are ``(nv1 - nw1 + 1) x (nv2 - nw2 + 1)``.
    """

    nc: int
    nv1: int
    nv2: int
    k: int
    nw1: int
    nw2: int
    markers: Tuple[ConfElement, ...] = ()
    convolutional = True

    def _check_dims(self) -> None:
        _require_positive(nc=self.nc, nv1=self.nv1, nv2=self.nv2, k=self.k, nw1=self.nw1, nw2=self.nw2)
        if self.nw1 > self.nv1 or self.nw2 > self.nv2:
            raise ConfigurationError(
                f"Filters {self.nw1}x{self.nw2} do not fit inputs {self.nv1}x{self.nv2}"
            )

    @property
    def nh1(self) -> int:
        return self.nv1 - self.nw1 + 1

    @property
    def nh2(self) -> int:
        return self.nv2 - self.nw2 + 1

    @cached_property
    def layer_t(self) -> type:
        return _make_class(
            ConvRBM,
            "ConvRBM",
            self.policy,
            self.units,
            nc=self.nc,
            nv1=self.nv1,
            nv2=self.nv2,
            k=self.k,
            nw1=self.nw1,
            nw2=self.nw2,
        )

    @cached_property
    def dyn_layer_t(self) -> type:
        return _make_class(DynConvRBM, "DynConvRBM", self.policy, self.units)


@dataclass(frozen=True)
class DynConvRBMDesc(_LayerDesc):
    markers: Tuple[ConfElement, ...] = ()
    convolutional = True

    @cached_property
    def layer_t(self) -> type:
        return _make_class(DynConvRBM, "DynConvRBM", self.policy, self.units)

    @property
    def dyn_layer_t(self) -> type:
        return self.layer_t


def rbm_desc(num_visible: int, num_hidden: int, *markers: ConfElement) -> RBMDesc:
    return RBMDesc(num_visible, num_hidden, tuple(markers))


def dyn_rbm_desc(*markers: ConfElement) -> DynRBMDesc:
    return DynRBMDesc(tuple(markers))


def conv_rbm_desc(
    nc: int, nv1: int, nv2: int, k: int, nw1: int, nw2: int, *markers: ConfElement
) -> ConvRBMDesc:
    return ConvRBMDesc(nc, nv1, nv2, k, nw1, nw2, tuple(markers))


def conv_rbm_desc_square(nc: int, nv: int, k: int, nw: int, *markers: ConfElement) -> ConvRBMDesc:
    """Square inputs and filters: ``nv x nv`` images, ``nw x nw`` filters."""

    return ConvRBMDesc(nc, nv, nv, k, nw, nw, tuple(markers))


def dyn_conv_rbm_desc(*markers: ConfElement) -> DynConvRBMDesc:
    return DynConvRBMDesc(tuple(markers))


__all__ = [
    "RBMDesc",
    "DynRBMDesc",
    "ConvRBMDesc",
    "DynConvRBMDesc",
    "rbm_desc",
    "dyn_rbm_desc",
    "conv_rbm_desc",
    "conv_rbm_desc_square",
    "dyn_conv_rbm_desc",
]

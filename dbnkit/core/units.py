"""Unit strategies: activation, sampling and derivative per unit combination.

The visible x hidden combination of a layer is resolved once, when its
descriptor is built, into a :class:`UnitStrategy`. The engines then call the
selected functions without re-deriving the formulas at every step.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict

import numpy as np

from . import activations as act
from . import sampling
from .enums import UnitType, is_relu
from .errors import ConfigurationError
from .types import Array

# Variance of the Gaussian visible units; the hidden sigmoid of a convolutional
# layer is scaled by its inverse.
GAUSSIAN_VARIANCE = 0.1 * 0.1

Sampler = Callable[[Array, np.random.Generator], Array]


def _sample_binary(pre: Array, probs: Array, rng: np.random.Generator) -> Array:
    return sampling.bernoulli(probs, rng)


def _sample_relu(pre: Array, probs: Array, rng: np.random.Generator) -> Array:
    return act.relu(sampling.logistic_noise(pre, rng))


def _sample_bounded_relu(
    pre: Array, probs: Array, rng: np.random.Generator, *, top: float
) -> Array:
    return np.clip(sampling.ranged_noise(pre, top, rng), 0.0, top)


def _sample_softmax(pre: Array, probs: Array, rng: np.random.Generator) -> Array:
    return sampling.one_hot_sample(probs, rng, axis=-1)


def _sample_gaussian(pre: Array, probs: Array, rng: np.random.Generator) -> Array:
    return sampling.normal_noise(probs, rng)


def _sample_mean(pre: Array, probs: Array, rng: np.random.Generator) -> Array:
    return probs.copy()


def _scaled_sigmoid(x: Array) -> Array:
    return act.sigmoid(x / GAUSSIAN_VARIANCE)


def _scaled_sigmoid_deriv(a: Array) -> Array:
    return act.sigmoid_deriv(a) / GAUSSIAN_VARIANCE


def _ones(a: Array) -> Array:
    return np.ones_like(a)


_HIDDEN_PROBS: Dict[UnitType, Callable[[Array], Array]] = {
    UnitType.BINARY: act.sigmoid,
    UnitType.RELU: act.relu,
    UnitType.RELU1: act.relu1,
    UnitType.RELU6: act.relu6,
    UnitType.EXP: np.exp,
    UnitType.SOFTMAX: act.softmax,
    UnitType.GAUSSIAN: act.identity,
}

_HIDDEN_SAMPLE = {
    UnitType.BINARY: _sample_binary,
    UnitType.RELU: _sample_relu,
    UnitType.RELU1: partial(_sample_bounded_relu, top=1.0),
    UnitType.RELU6: partial(_sample_bounded_relu, top=6.0),
    UnitType.EXP: _sample_mean,
    UnitType.SOFTMAX: _sample_softmax,
    UnitType.GAUSSIAN: _sample_gaussian,
}

_HIDDEN_DERIV: Dict[UnitType, Callable[[Array], Array]] = {
    UnitType.BINARY: act.sigmoid_deriv,
    UnitType.RELU: act.relu_deriv,
    UnitType.RELU1: partial(act.bounded_relu_deriv, top=1.0),
    UnitType.RELU6: partial(act.bounded_relu_deriv, top=6.0),
    UnitType.EXP: act.identity,
    # diagonal of the Jacobian only, see UnitStrategy.hidden_delta
    UnitType.SOFTMAX: act.sigmoid_deriv,
    UnitType.GAUSSIAN: _ones,
}

_VISIBLE_PROBS: Dict[UnitType, Callable[[Array], Array]] = {
    UnitType.BINARY: act.sigmoid,
    UnitType.GAUSSIAN: act.identity,
    UnitType.SOFTMAX: act.softmax,
}

_VISIBLE_SAMPLE: Dict[UnitType, Sampler] = {
    UnitType.BINARY: sampling.bernoulli,
    UnitType.GAUSSIAN: sampling.normal_noise,
    UnitType.SOFTMAX: sampling.one_hot_sample,
}


@dataclass(frozen=True)
class UnitStrategy:
    """Functions selected for one visible x hidden unit combination."""

    visible: UnitType
    hidden: UnitType
    hidden_probs: Callable[[Array], Array]
    hidden_sample: Callable[[Array, Array, np.random.Generator], Array]
    hidden_deriv: Callable[[Array], Array]
    visible_probs: Callable[[Array], Array]
    visible_sample: Sampler

    def hidden_delta(self, a: Array, errors: Array) -> Array:
        """Errors w.r.t. the hidden pre-activation given errors w.r.t. ``a``."""

        if self.hidden is UnitType.SOFTMAX:
            return act.softmax_backward(a, errors)
        return errors * self.hidden_deriv(a)

    @property
    def has_energy(self) -> bool:
        """Energies are only defined for BINARY and GAUSSIAN/BINARY layers."""

        return self.hidden is UnitType.BINARY and self.visible in {
            UnitType.BINARY,
            UnitType.GAUSSIAN,
        }


def select_units(
    visible: UnitType, hidden: UnitType, *, convolutional: bool = False
) -> UnitStrategy:
    """Validate the combination and return its strategy."""

    if convolutional:
        if not (hidden is UnitType.BINARY or is_relu(hidden)):
            raise ConfigurationError(f"Invalid hidden unit type for a CRBM: {hidden.name}")
        if visible not in {UnitType.BINARY, UnitType.GAUSSIAN}:
            raise ConfigurationError(f"Invalid visible unit type for a CRBM: {visible.name}")
    elif visible not in _VISIBLE_PROBS:
        raise ConfigurationError(f"Invalid visible unit type: {visible.name}")

    hidden_probs = _HIDDEN_PROBS[hidden]
    hidden_deriv = _HIDDEN_DERIV[hidden]
    if hidden is UnitType.BINARY and visible is UnitType.GAUSSIAN:
        hidden_probs = _scaled_sigmoid
        hidden_deriv = _scaled_sigmoid_deriv

    return UnitStrategy(
        visible=visible,
        hidden=hidden,
        hidden_probs=hidden_probs,
        hidden_sample=_HIDDEN_SAMPLE[hidden],
        hidden_deriv=hidden_deriv,
        visible_probs=_VISIBLE_PROBS[visible],
        visible_sample=_VISIBLE_SAMPLE[visible],
    )


__all__ = ["GAUSSIAN_VARIANCE", "UnitStrategy", "select_units"]

"""Random sampling primitives used by the unit strategies."""

from __future__ import annotations

import numpy as np

from .activations import sigmoid
from .types import Array


def bernoulli(probs: Array, rng: np.random.Generator) -> Array:
    """Draw binary states with probability ``probs``."""

    return (rng.random(probs.shape) < probs).astype(probs.dtype)


def normal_noise(mean: Array, rng: np.random.Generator, std: float = 1.0) -> Array:
    """Add zero-mean Gaussian noise to ``mean``."""

    return mean + std * rng.standard_normal(mean.shape).astype(mean.dtype)


def logistic_noise(x: Array, rng: np.random.Generator) -> Array:
    """Perturb ``x`` with noise whose standard deviation is ``sigmoid(x)``.

    This is the noisy rectified linear unit of Nair and Hinton.
    """

    return x + sigmoid(x) * rng.standard_normal(x.shape)


def ranged_noise(x: Array, top: float, rng: np.random.Generator) -> Array:
    """Like :func:`logistic_noise` but only inside the open range ``(0, top)``."""

    noisy = logistic_noise(x, rng)
    inside = (x > 0.0) & (x < top)
    return np.where(inside, noisy, x)


def one_hot_sample(probs: Array, rng: np.random.Generator, axis: int = -1) -> Array:
    """Sample one active unit per row from a categorical distribution."""

    moved = np.moveaxis(probs, axis, -1)
    flat = moved.reshape(-1, moved.shape[-1])
    cumulative = np.cumsum(flat, axis=1)
    draws = rng.random((flat.shape[0], 1)) * cumulative[:, -1:]
    winners = np.minimum((cumulative < draws).sum(axis=1), flat.shape[1] - 1)
    out = np.zeros_like(flat)
    out[np.arange(flat.shape[0]), winners] = 1.0
    return np.moveaxis(out.reshape(moved.shape), -1, axis)


def spawn(rng: np.random.Generator, count: int) -> list[np.random.Generator]:
    """Derive ``count`` independent generators for worker threads."""

    seeds = rng.integers(0, 2**63 - 1, size=count)
    return [np.random.default_rng(int(seed)) for seed in seeds]


__all__ = [
    "bernoulli",
    "normal_noise",
    "logistic_noise",
    "ranged_noise",
    "one_hot_sample",
    "spawn",
]

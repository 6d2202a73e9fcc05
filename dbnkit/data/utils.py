"""Batching and preprocessing helpers."""

from __future__ import annotations

from typing import Iterator

import numpy as np

from ..core.types import Array, Batch


def batch_iterator(
    inputs: Array,
    targets: Array | None = None,
    *,
    batch_size: int,
    order: Array | None = None,
) -> Iterator[Batch]:
    """Yield consecutive mini-batches following ``order`` (identity by default).

    The last batch is smaller when ``batch_size`` does not divide the data.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    n = inputs.shape[0]
    if targets is not None and targets.shape[0] != n:
        raise ValueError(f"{n} inputs but {targets.shape[0]} targets")
    index = np.arange(n) if order is None else np.asarray(order)
    for start in range(0, index.size, batch_size):
        subset = index[start : start + batch_size]
        yield Batch(inputs=inputs[subset], targets=None if targets is None else targets[subset])


def binarize(array: Array, threshold: float = 0.5) -> Array:
    return (np.asarray(array) > threshold).astype(np.float64)


def normalize(array: Array) -> Array:
    """Scale every sample to zero mean and unit variance."""

    array = np.asarray(array, dtype=np.float64)
    flat = array.reshape(array.shape[0], -1)
    mean = flat.mean(axis=1, keepdims=True)
    std = flat.std(axis=1, keepdims=True)
    std = np.where(std == 0, 1.0, std)
    return ((flat - mean) / std).reshape(array.shape)


def add_gaussian_noise(array: Array, rng: np.random.Generator, std: float = 0.1) -> Array:
    return array + std * rng.standard_normal(array.shape)


def mask_noise(array: Array, rng: np.random.Generator, ratio: float = 0.2) -> Array:
    """Zero a random ``ratio`` of the entries of ``array``."""

    if not 0.0 <= ratio <= 1.0:
        raise ValueError("ratio must be in [0, 1]")
    keep = rng.random(array.shape) >= ratio
    return array * keep


__all__ = ["batch_iterator", "binarize", "normalize", "add_gaussian_noise", "mask_noise"]

"""4D convolutions and pooling on ``(batch, channel, height, width)`` arrays.

All three convolutions are built on ``sliding_window_view`` and contracted
with ``tensordot`` so the heavy lifting happens in BLAS.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .types import Array


def conv4_valid_flipped(v: Array, w: Array) -> Array:
    """Valid convolution with flipped filters (a cross-correlation).

    ``v`` is ``(B, C, H, W)`` and ``w`` is ``(K, C, p, q)``; the result is
    ``(B, K, H - p + 1, W - q + 1)``.
    """

    _, _, p, q = w.shape
    windows = sliding_window_view(v, (p, q), axis=(2, 3))
    out = np.tensordot(windows, w, axes=([1, 4, 5], [1, 2, 3]))
    return np.ascontiguousarray(out.transpose(0, 3, 1, 2))


def conv4_full(h: Array, w: Array) -> Array:
    """Full convolution mapping hidden maps back onto the visible grid.

    ``h`` is ``(B, K, h1, h2)`` and ``w`` is ``(K, C, p, q)``; the result is
    ``(B, C, h1 + p - 1, h2 + q - 1)``. This is the adjoint of
    :func:`conv4_valid_flipped`.
    """

    _, _, p, q = w.shape
    padded = np.pad(h, ((0, 0), (0, 0), (p - 1, p - 1), (q - 1, q - 1)))
    windows = sliding_window_view(padded, (p, q), axis=(2, 3))
    flipped = w[:, :, ::-1, ::-1]
    out = np.tensordot(windows, flipped, axes=([1, 4, 5], [0, 2, 3]))
    return np.ascontiguousarray(out.transpose(0, 3, 1, 2))


def conv4_valid_filter(v: Array, h: Array) -> Array:
    """Correlate visible maps with hidden maps, summed over the batch.

    Returns the ``(K, C, p, q)`` weight statistics ``sum_b v_c (*) h_k``.
    """

    nh1, nh2 = h.shape[2], h.shape[3]
    windows = sliding_window_view(v, (nh1, nh2), axis=(2, 3))
    return np.tensordot(h, windows, axes=([0, 2, 3], [0, 4, 5]))


def _blocks(x: Array, factors: Sequence[int]) -> Array:
    b, i1, i2, i3 = x.shape
    c1, c2, c3 = factors
    if i1 % c1 or i2 % c2 or i3 % c3:
        raise ValueError(f"Pooling factors {tuple(factors)} do not divide {x.shape[1:]}")
    return x.reshape(b, i1 // c1, c1, i2 // c2, c2, i3 // c3, c3)


def avg_pool_3d(x: Array, factors: Sequence[int]) -> Array:
    return _blocks(x, factors).mean(axis=(2, 4, 6))


def max_pool_3d(x: Array, factors: Sequence[int]) -> Array:
    return _blocks(x, factors).max(axis=(2, 4, 6))


def upsample_3d(x: Array, factors: Sequence[int]) -> Array:
    """Repeat each pooled value over its ``c1 x c2 x c3`` block."""

    c1, c2, c3 = factors
    return x.repeat(c1, axis=1).repeat(c2, axis=2).repeat(c3, axis=3)


__all__ = [
    "conv4_valid_flipped",
    "conv4_full",
    "conv4_valid_filter",
    "avg_pool_3d",
    "max_pool_3d",
    "upsample_3d",
]

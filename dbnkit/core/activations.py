"""Activation utilities for dbnkit."""

from __future__ import annotations

import numpy as np
from scipy.special import expit

from .types import Array


def sigmoid(x: Array) -> Array:
    """Return the logistic sigmoid of ``x``."""

    return expit(x)


def softplus(x: Array) -> Array:
    """Return ``log(1 + exp(x))`` without overflow."""

    return np.logaddexp(0.0, x)


def relu(x: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(x, 0.0)


def relu1(x: Array) -> Array:
    return np.clip(x, 0.0, 1.0)


def relu6(x: Array) -> Array:
    return np.clip(x, 0.0, 6.0)


def tanh(x: Array) -> Array:
    return np.tanh(x)


def identity(x: Array) -> Array:
    return x


def softmax(x: Array, axis: int = -1) -> Array:
    """Softmax along ``axis``, stabilised by subtracting the maximum."""

    shifted = x - np.max(x, axis=axis, keepdims=True)
    e = np.exp(shifted)
    return e / np.sum(e, axis=axis, keepdims=True)


def sigmoid_deriv(a: Array) -> Array:
    """Derivative of the sigmoid given its output ``a``."""

    return a * (1.0 - a)


def softmax_backward(a: Array, errors: Array, axis: int = -1) -> Array:
    """Errors pushed back through a softmax whose output is ``a``."""

    return a * (errors - np.sum(errors * a, axis=axis, keepdims=True))


def tanh_deriv(a: Array) -> Array:
    return 1.0 - a ** 2


def relu_deriv(a: Array) -> Array:
    return (a > 0.0).astype(a.dtype)


def bounded_relu_deriv(a: Array, top: float) -> Array:
    return ((a > 0.0) & (a < top)).astype(a.dtype)


__all__ = [
    "sigmoid",
    "softplus",
    "relu",
    "relu1",
    "relu6",
    "tanh",
    "identity",
    "softmax",
    "sigmoid_deriv",
    "softmax_backward",
    "tanh_deriv",
    "relu_deriv",
    "bounded_relu_deriv",
]

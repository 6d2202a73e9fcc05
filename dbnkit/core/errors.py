"""Error types and invariant checks shared by every layer."""

from __future__ import annotations

import numpy as np

from .types import Array


class ConfigurationError(TypeError):
    """Invalid marker payload or unsupported policy combination."""


class ShapeMismatchError(ValueError):
    """Input container does not match the layer's expected shape."""


def nan_check(array: Array, name: str) -> None:
    """Fail hard when ``array`` holds NaN or infinite values.

    Divergence is not recoverable: the caller has to lower the learning rate
    or rescale its inputs.
    """

    if not np.all(np.isfinite(array)):
        raise AssertionError(
            f"{name} contains NaN or infinite values (numerical divergence)"
        )


__all__ = ["ConfigurationError", "ShapeMismatchError", "nan_check"]

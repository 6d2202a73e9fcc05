"""Pure in-memory synthetic image datasets."""

from __future__ import annotations

import numpy as np

from ..core.types import Array


def _prototype(rng: np.random.Generator, size: int, strokes: int) -> Array:
    image = np.zeros((size, size))
    margin = max(1, size // 7)
    for _ in range(strokes):
        thickness = max(1, size // 14)
        start = rng.integers(margin, size - margin - thickness)
        lo, hi = sorted(rng.integers(margin, size - margin, size=2))
        hi = max(hi, lo + size // 4)
        if rng.random() < 0.5:
            image[start : start + thickness, lo:hi] = 1.0
        else:
            image[lo:hi, start : start + thickness] = 1.0
    return image


def make_prototypes(classes: int = 10, *, size: int = 28, strokes: int = 3, seed: int = 0) -> Array:
    """Return ``(classes, size, size)`` stroke images in ``[0, 1]``."""

    if classes < 1:
        raise ValueError("classes must be positive")
    rng = np.random.default_rng(seed)
    return np.stack([_prototype(rng, size, strokes) for _ in range(classes)])


def make_digits(
    n_samples: int,
    *,
    classes: int = 10,
    size: int = 28,
    noise: float = 0.05,
    max_shift: int = 1,
    seed: int = 0,
) -> tuple[Array, Array]:
    """Digit-like images: class prototypes, randomly shifted, plus noise.

    Returns ``(images, labels)`` with images of shape ``(n, 1, size, size)``
    clipped to ``[0, 1]`` and integer labels.
    """

    prototypes = make_prototypes(classes, size=size, seed=seed)
    rng = np.random.default_rng(seed + 1)
    labels = rng.integers(0, classes, size=n_samples)
    images = np.empty((n_samples, 1, size, size))
    for i, label in enumerate(labels):
        dy, dx = rng.integers(-max_shift, max_shift + 1, size=2)
        shifted = np.roll(prototypes[label], (int(dy), int(dx)), axis=(0, 1))
        images[i, 0] = shifted + noise * rng.standard_normal((size, size))
    return np.clip(images, 0.0, 1.0), labels


__all__ = ["make_prototypes", "make_digits"]

"""In-memory datasets and batching helpers."""

from .synthetic import make_digits, make_prototypes
from .utils import add_gaussian_noise, batch_iterator, binarize, mask_noise, normalize

__all__ = [
    "make_digits",
    "make_prototypes",
    "batch_iterator",
    "binarize",
    "normalize",
    "add_gaussian_noise",
    "mask_noise",
]

"""Configuration markers, traits and numerical primitives."""

from . import activations, conf, conv, enums, errors, parallel, sampling, traits, types, units

__all__ = [
    "activations",
    "conf",
    "conv",
    "enums",
    "errors",
    "parallel",
    "sampling",
    "traits",
    "types",
    "units",
]

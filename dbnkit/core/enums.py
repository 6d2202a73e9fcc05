"""Enumerations selecting the policies of a layer."""

from __future__ import annotations

from enum import Enum


class UnitType(Enum):
    """Type of the units of an RBM layer."""

    BINARY = "binary"
    GAUSSIAN = "gaussian"
    SOFTMAX = "softmax"
    RELU = "relu"
    RELU1 = "relu1"
    RELU6 = "relu6"
    EXP = "exp"


class Function(Enum):
    """Activation function of a dense layer."""

    IDENTITY = "identity"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    RELU = "relu"
    SOFTMAX = "softmax"


class DecayType(Enum):
    """Weight decay. The ``_FULL`` variants also decay the biases."""

    NONE = "none"
    L1 = "l1"
    L1_FULL = "l1_full"
    L2 = "l2"
    L2_FULL = "l2_full"
    L1L2 = "l1l2"
    L1L2_FULL = "l1l2_full"


class SparsityMethod(Enum):
    NONE = "none"
    GLOBAL_TARGET = "global_target"
    LOCAL_TARGET = "local_target"
    LEE = "lee"


class BiasMode(Enum):
    NONE = "none"
    SIMPLE = "simple"


class LrDriverType(Enum):
    """Learning-rate schedule applied between epochs."""

    FIXED = "fixed"
    BOLD = "bold"
    BARREL = "barrel"


def is_relu(unit: UnitType) -> bool:
    return unit in {UnitType.RELU, UnitType.RELU1, UnitType.RELU6}


def to_string(value: Enum) -> str:
    return value.name


__all__ = [
    "UnitType",
    "Function",
    "DecayType",
    "SparsityMethod",
    "BiasMode",
    "LrDriverType",
    "is_relu",
    "to_string",
]

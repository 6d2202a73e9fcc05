"""Dense RBM engine: energies over fully connected weights."""

from __future__ import annotations

from typing import ClassVar

import numpy as np

from ..core import activations as act
from ..core.enums import UnitType
from ..core.types import Array
from .base import RBMBase


class StandardRBM(RBMBase):
    """Fully connected RBM; ``w`` has shape ``(num_visible, num_hidden)``."""

    kind: ClassVar[str] = "RBM"

    def _visible_term(self, v: Array) -> float:
        if self.visible_unit is UnitType.GAUSSIAN:
            return float(np.sum((v - self.c) ** 2) / 2.0)
        return -float(np.dot(self.c, v))

    def _energy_terms(self, v: Array, h: Array, vw: Array) -> float:
        # E(v,h) = -sum(c.v) - sum(b.h) - sum(v.W.h), Gaussian visible units
        # replace the first term with sum((v - c)^2 / 2)
        return self._visible_term(v) - float(np.dot(self.b, h)) - float(np.dot(h, vw))

    def _free_energy_terms(self, v: Array, x: Array) -> float:
        return self._visible_term(v) - float(np.sum(act.softplus(x)))


__all__ = ["StandardRBM"]

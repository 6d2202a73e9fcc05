"""Convolutional RBM engine.

Visible maps are ``(nc, nv1, nv2)``, hidden maps ``(k, nh1, nh2)`` and
filters ``(k, nc, nw1, nw2)``. Energies follow Lee et al., "Convolutional
deep belief networks for scalable unsupervised learning of hierarchical
representations": every hidden bias is shared across the positions of its
map and every visible bias across the positions of its channel.
"""

from __future__ import annotations

from typing import ClassVar

import numpy as np

from ..core import activations as act
from ..core.enums import UnitType
from ..core.types import Array
from .base import RBMBase


class StandardCRBM(RBMBase):
    """Shared engine of the static and dynamic convolutional RBMs."""

    convolutional: ClassVar[bool] = True
    kind: ClassVar[str] = "CRBM"

    def _visible_term(self, v: Array) -> float:
        if self.visible_unit is UnitType.GAUSSIAN:
            c_rep = self.shape.broadcast_visible_bias(self.c)
            return float(np.sum((v - c_rep) ** 2) / 2.0)
        return -float(np.sum(self.c * self.shape.spatial_sum_visible(v)))

    def _energy_terms(self, v: Array, h: Array, vw: Array) -> float:
        hidden_bias = float(np.sum(self.b * self.shape.spatial_sum_hidden(h)))
        return self._visible_term(v) - hidden_bias - float(np.sum(h * vw))

    def _free_energy_terms(self, v: Array, x: Array) -> float:
        return self._visible_term(v) - float(np.sum(act.softplus(x)))


__all__ = ["StandardCRBM"]

"""Static and dynamic dense RBMs.

A static :class:`RBM` is produced by :func:`dbnkit.rbm.desc.rbm_desc`: its
dimensions are fixed on the class. A :class:`DynRBM` takes its dimensions at
construction time or from :meth:`DynRBM.init_layer`.
"""

from __future__ import annotations

from typing import ClassVar

from ..core.types import Array
from .shapes import DenseShape
from .standard import StandardRBM


class RBM(StandardRBM):
    """Dense RBM whose dimensions are class constants."""

    num_visible: ClassVar[int]
    num_hidden: ClassVar[int]

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.shape = DenseShape(self.num_visible, self.num_hidden)
        self._allocate()

    @classmethod
    def dyn_init(cls, dyn: "DynRBM") -> None:
        """Configure ``dyn`` with the dimensions and batch size of this layer."""

        dyn.batch_size = cls.policy.batch_size
        dyn.init_layer(cls.num_visible, cls.num_hidden)


class DynRBM(StandardRBM):
    """Dense RBM whose dimensions are chosen at runtime."""

    kind: ClassVar[str] = "RBM(dyn)"

    def __init__(
        self,
        num_visible: int | None = None,
        num_hidden: int | None = None,
        *,
        seed: int | None = None,
    ) -> None:
        super().__init__(seed)
        self.num_visible = 0
        self.num_hidden = 0
        if num_visible is not None and num_hidden is not None:
            self.init_layer(num_visible, num_hidden)

    def init_layer(self, num_visible: int, num_hidden: int) -> None:
        """Set the dimensions, reallocate every container and draw new weights."""

        self._check_not_training()
        if num_visible <= 0 or num_hidden <= 0:
            raise ValueError(f"Invalid RBM dimensions {num_visible} -> {num_hidden}")
        self.num_visible = int(num_visible)
        self.num_hidden = int(num_hidden)
        self.shape = DenseShape(self.num_visible, self.num_hidden)
        self._allocate()
        self.invalidate_contexts()

    @staticmethod
    def dyn_init(dyn: "DynRBM") -> None:
        """Dynamic layers are already configured."""

    def prepare_input(self) -> Array:
        if not self.num_visible:
            raise RuntimeError("init_layer() must be called before prepare_input()")
        return super().prepare_input()


__all__ = ["RBM", "DynRBM"]

"""Static and dynamic convolutional RBMs."""

from __future__ import annotations

from typing import ClassVar

from ..core.types import Array
from .conv import StandardCRBM
from .shapes import ConvShape


class ConvRBM(StandardCRBM):
    """Convolutional RBM whose geometry is fixed on the class."""

    nc: ClassVar[int]
    nv1: ClassVar[int]
    nv2: ClassVar[int]
    k: ClassVar[int]
    nw1: ClassVar[int]
    nw2: ClassVar[int]

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.shape = ConvShape(self.nc, self.nv1, self.nv2, self.k, self.nw1, self.nw2)
        self._allocate()

    @property
    def nh1(self) -> int:
        return self.shape.nh1

    @property
    def nh2(self) -> int:
        return self.shape.nh2

    @classmethod
    def dyn_init(cls, dyn: "DynConvRBM") -> None:
        dyn.batch_size = cls.policy.batch_size
        dyn.init_layer(cls.nc, cls.nv1, cls.nv2, cls.k, cls.nw1, cls.nw2)


class DynConvRBM(StandardCRBM):
    """Convolutional RBM configured at runtime."""

    kind: ClassVar[str] = "CRBM(dyn)"

    def __init__(
        self,
        nc: int | None = None,
        nv1: int | None = None,
        nv2: int | None = None,
        k: int | None = None,
        nw1: int | None = None,
        nw2: int | None = None,
        *,
        seed: int | None = None,
    ) -> None:
        super().__init__(seed)
        self.nc = self.nv1 = self.nv2 = self.k = self.nw1 = self.nw2 = 0
        dims = (nc, nv1, nv2, k, nw1, nw2)
        if all(d is not None for d in dims):
            self.init_layer(*dims)

    def init_layer(self, nc: int, nv1: int, nv2: int, k: int, nw1: int, nw2: int) -> None:
        """Set the geometry, reallocate every container and draw new weights."""

        self._check_not_training()
        dims = (nc, nv1, nv2, k, nw1, nw2)
        if any(d <= 0 for d in dims):
            raise ValueError(f"Invalid CRBM geometry {dims}")
        self.shape = ConvShape(*(int(d) for d in dims))
        self.nc, self.nv1, self.nv2, self.k, self.nw1, self.nw2 = (int(d) for d in dims)
        self._allocate()
        self.invalidate_contexts()

    @property
    def nh1(self) -> int:
        return self.nv1 - self.nw1 + 1

    @property
    def nh2(self) -> int:
        return self.nv2 - self.nw2 + 1

    @staticmethod
    def dyn_init(dyn: "DynConvRBM") -> None:
        """Dynamic layers are already configured."""

    def prepare_input(self) -> Array:
        if not self.nc:
            raise RuntimeError("init_layer() must be called before prepare_input()")
        return super().prepare_input()


__all__ = ["ConvRBM", "DynConvRBM"]

"""Standard and convolutional Restricted Boltzmann Machines."""

from .base import RBMBase
from .context import CGContext, SGDContext
from .conv import StandardCRBM
from .conv_rbm import ConvRBM, DynConvRBM
from .desc import (
    ConvRBMDesc,
    DynConvRBMDesc,
    DynRBMDesc,
    RBMDesc,
    conv_rbm_desc,
    conv_rbm_desc_square,
    dyn_conv_rbm_desc,
    dyn_rbm_desc,
    rbm_desc,
)
from .rbm import RBM, DynRBM
from .shapes import ConvShape, DenseShape
from .standard import StandardRBM

__all__ = [
    "RBMBase",
    "StandardRBM",
    "StandardCRBM",
    "RBM",
    "DynRBM",
    "ConvRBM",
    "DynConvRBM",
    "RBMDesc",
    "DynRBMDesc",
    "ConvRBMDesc",
    "DynConvRBMDesc",
    "rbm_desc",
    "dyn_rbm_desc",
    "conv_rbm_desc",
    "conv_rbm_desc_square",
    "dyn_conv_rbm_desc",
    "SGDContext",
    "CGContext",
    "DenseShape",
    "ConvShape",
]

"""Non-RBM layers that can be stacked inside a DBN."""

from .dense import DenseLayer, DynDenseLayer, dense_desc
from .pooling import (
    AvgPoolLayer3D,
    DynAvgPoolLayer3D,
    DynMaxPoolLayer3D,
    MaxPoolLayer3D,
    avgp_layer_3d_desc,
    mp_layer_3d_desc,
)

__all__ = [
    "DenseLayer",
    "DynDenseLayer",
    "dense_desc",
    "AvgPoolLayer3D",
    "MaxPoolLayer3D",
    "DynAvgPoolLayer3D",
    "DynMaxPoolLayer3D",
    "avgp_layer_3d_desc",
    "mp_layer_3d_desc",
]

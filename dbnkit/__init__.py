"""dbnkit public API."""

from .core import conf, enums
from .core.conf import (
    Activation,
    BatchMode,
    BatchSize,
    Bias,
    BigBatchSize,
    ClipGradients,
    ConfSet,
    Copy,
    DBNOnly,
    FreeEnergy,
    Hidden,
    InitWeights,
    LrDriver,
    Momentum,
    Nop,
    ParallelMode,
    Pooling,
    Serial,
    Shuffle,
    ShufflePre,
    Sparsity,
    Trainer,
    TrainerRBM,
    Verbose,
    Visible,
    Watcher,
    WeightDecay,
    WeightType,
    clipping_cond,
    shuffle_cond,
)
from .core.enums import BiasMode, DecayType, Function, LrDriverType, SparsityMethod, UnitType
from .core.errors import ConfigurationError, ShapeMismatchError
from .dbn import DBN, dbn_desc
from .layers import avgp_layer_3d_desc, dense_desc, mp_layer_3d_desc
from .rbm import conv_rbm_desc, conv_rbm_desc_square, dyn_conv_rbm_desc, dyn_rbm_desc, rbm_desc
from .training import CGTrainer, ContrastiveDivergence, PersistentContrastiveDivergence, SGDTrainer

__all__ = [
    "conf",
    "enums",
    "UnitType",
    "Function",
    "DecayType",
    "SparsityMethod",
    "BiasMode",
    "LrDriverType",
    "ConfigurationError",
    "ShapeMismatchError",
    "DBN",
    "dbn_desc",
    "rbm_desc",
    "dyn_rbm_desc",
    "conv_rbm_desc",
    "conv_rbm_desc_square",
    "dyn_conv_rbm_desc",
    "dense_desc",
    "avgp_layer_3d_desc",
    "mp_layer_3d_desc",
    "ContrastiveDivergence",
    "PersistentContrastiveDivergence",
    "SGDTrainer",
    "CGTrainer",
]

__all__ += [name for name in conf.__all__ if name in globals()]

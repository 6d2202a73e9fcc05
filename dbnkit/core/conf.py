"""Composable configuration markers.

A layer (or a DBN) is configured by an unordered list of markers. Each marker
carries a unique ``tag`` and, depending on its kind, nothing (a flag), a
scalar value, a type, or a factory. Markers validate their payload when they
are built so that a mismatch is reported before any layer exists::

    rbm_desc(784, 100, BatchSize(10), Momentum(), WeightDecay(DecayType.L2))

:class:`ConfSet` answers presence and value queries by tag. Lookups are
first-occurrence-wins; duplicated tags are tolerated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, Iterable, Iterator, List, Type, TypeVar

from .enums import BiasMode, DecayType, Function, LrDriverType, SparsityMethod, UnitType
from .errors import ConfigurationError


class ConfElement:
    """Base of every configuration marker."""

    tag: ClassVar[str] = ""


@dataclass(frozen=True)
class BasicConf(ConfElement):
    """Marker without payload."""


@dataclass(frozen=True)
class ValueConf(ConfElement):
    """Marker carrying a single scalar of type ``value_type``."""

    value: object
    value_type: ClassVar[type] = object

    def __post_init__(self) -> None:
        value = self.value
        if self.value_type is int and isinstance(value, bool):
            raise ConfigurationError(f"{type(self).__name__} expects an int, got {value!r}")
        if not isinstance(value, self.value_type):
            raise ConfigurationError(
                f"{type(self).__name__} expects a {self.value_type.__name__} value, "
                f"got {type(value).__name__}"
            )


@dataclass(frozen=True)
class TypeConf(ConfElement):
    """Marker carrying a type (for instance the weight dtype)."""

    value: type

    def __post_init__(self) -> None:
        if not isinstance(self.value, type):
            raise ConfigurationError(
                f"{type(self).__name__} expects a type, got {self.value!r}"
            )


@dataclass(frozen=True)
class TemplateConf(ConfElement):
    """Marker carrying a factory instantiated later with the layer."""

    value: Callable[..., object]

    def __post_init__(self) -> None:
        if not callable(self.value) or isinstance(self.value, ConfElement):
            raise ConfigurationError(
                f"{type(self).__name__} expects a factory, got {self.value!r}"
            )


# ----------------------------------------------------------------------
# Value markers


@dataclass(frozen=True)
class _PositiveInt(ValueConf):
    value_type: ClassVar[type] = int

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.value <= 0:  # type: ignore[operator]
            raise ConfigurationError(f"{type(self).__name__} must be positive")


@dataclass(frozen=True)
class BatchSize(_PositiveInt):
    """Mini-batch size."""

    tag: ClassVar[str] = "batch_size"


@dataclass(frozen=True)
class BigBatchSize(_PositiveInt):
    """Number of mini-batches a DBN propagates through its layers at once."""

    tag: ClassVar[str] = "big_batch_size"


@dataclass(frozen=True)
class Copy(_PositiveInt):
    """Number of copies of each sample used during DBN pretraining."""

    tag: ClassVar[str] = "copy"


@dataclass(frozen=True)
class Visible(ValueConf):
    value: UnitType = UnitType.BINARY
    tag: ClassVar[str] = "visible"
    value_type: ClassVar[type] = UnitType


@dataclass(frozen=True)
class Hidden(ValueConf):
    value: UnitType = UnitType.BINARY
    tag: ClassVar[str] = "hidden"
    value_type: ClassVar[type] = UnitType


@dataclass(frozen=True)
class Pooling(ValueConf):
    """Pooling unit type. Only recorded in the policy: no layer samples pooling units."""

    value: UnitType = UnitType.BINARY
    tag: ClassVar[str] = "pooling"
    value_type: ClassVar[type] = UnitType


@dataclass(frozen=True)
class Activation(ValueConf):
    value: Function = Function.SIGMOID
    tag: ClassVar[str] = "activation"
    value_type: ClassVar[type] = Function


@dataclass(frozen=True)
class WeightDecay(ValueConf):
    value: DecayType = DecayType.L2
    tag: ClassVar[str] = "weight_decay"
    value_type: ClassVar[type] = DecayType


@dataclass(frozen=True)
class LrDriver(ValueConf):
    value: LrDriverType = LrDriverType.FIXED
    tag: ClassVar[str] = "lr_driver"
    value_type: ClassVar[type] = LrDriverType


@dataclass(frozen=True)
class Sparsity(ValueConf):
    value: SparsityMethod = SparsityMethod.GLOBAL_TARGET
    tag: ClassVar[str] = "sparsity"
    value_type: ClassVar[type] = SparsityMethod


@dataclass(frozen=True)
class Bias(ValueConf):
    value: BiasMode = BiasMode.SIMPLE
    tag: ClassVar[str] = "bias"
    value_type: ClassVar[type] = BiasMode


# ----------------------------------------------------------------------
# Type and factory markers


@dataclass(frozen=True)
class WeightType(TypeConf):
    """Floating point type used to store and compute the weights."""

    tag: ClassVar[str] = "weight_type"


@dataclass(frozen=True)
class Trainer(TemplateConf):
    """Fine-tuning trainer of a DBN (``SGDTrainer`` or ``CGTrainer``)."""

    tag: ClassVar[str] = "trainer"


@dataclass(frozen=True)
class TrainerRBM(TemplateConf):
    """Pretraining algorithm of an RBM (CD-k or PCD-k factory)."""

    tag: ClassVar[str] = "trainer_rbm"


@dataclass(frozen=True)
class Watcher(TemplateConf):
    """Factory of the callback notified at each epoch."""

    tag: ClassVar[str] = "watcher"


# ----------------------------------------------------------------------
# Flags


@dataclass(frozen=True)
class Momentum(BasicConf):
    tag: ClassVar[str] = "momentum"


@dataclass(frozen=True)
class ParallelMode(BasicConf):
    """Process the samples of a batch on worker threads."""

    tag: ClassVar[str] = "parallel_mode"


@dataclass(frozen=True)
class Serial(BasicConf):
    """Disable every form of threading."""

    tag: ClassVar[str] = "serial"


@dataclass(frozen=True)
class Verbose(BasicConf):
    tag: ClassVar[str] = "verbose"


@dataclass(frozen=True)
class InitWeights(BasicConf):
    """Initialise the visible biases from the training data."""

    tag: ClassVar[str] = "init_weights"


@dataclass(frozen=True)
class Shuffle(BasicConf):
    """Shuffle the inputs before each epoch."""

    tag: ClassVar[str] = "shuffle"


@dataclass(frozen=True)
class ShufflePre(BasicConf):
    """DBN: shuffle the inputs once before pretraining."""

    tag: ClassVar[str] = "shuffle_pre"


@dataclass(frozen=True)
class FreeEnergy(BasicConf):
    """Track the mean free energy of the training set at each epoch."""

    tag: ClassVar[str] = "free_energy"


@dataclass(frozen=True)
class ClipGradients(BasicConf):
    tag: ClassVar[str] = "clip_gradients"


@dataclass(frozen=True)
class DBNOnly(BasicConf):
    """The layer only lives inside a DBN: no standalone training buffers."""

    tag: ClassVar[str] = "dbn_only"


@dataclass(frozen=True)
class BatchMode(BasicConf):
    """DBN: never propagate the complete dataset through the layers at once."""

    tag: ClassVar[str] = "batch_mode"


@dataclass(frozen=True)
class Nop(BasicConf):
    """Marker that does nothing."""

    tag: ClassVar[str] = "nop"


def shuffle_cond(cond: bool) -> BasicConf:
    return Shuffle() if cond else Nop()


def clipping_cond(cond: bool) -> BasicConf:
    return ClipGradients() if cond else Nop()


# ----------------------------------------------------------------------
# Lookup

M = TypeVar("M", bound=ConfElement)


class ConfSet:
    """Read-only view over a list of markers, indexed by tag."""

    def __init__(self, markers: Iterable[ConfElement] = ()) -> None:
        self._markers: List[ConfElement] = []
        self._by_tag: Dict[str, ConfElement] = {}
        for marker in markers:
            if isinstance(marker, type) and issubclass(marker, ConfElement):
                raise ConfigurationError(
                    f"{marker.__name__} must be instantiated, e.g. {marker.__name__}()"
                )
            if not isinstance(marker, ConfElement):
                raise ConfigurationError(f"Not a configuration marker: {marker!r}")
            self._markers.append(marker)
            self._by_tag.setdefault(marker.tag, marker)

    def has(self, marker_cls: Type[ConfElement]) -> bool:
        return marker_cls.tag in self._by_tag

    def get(self, marker_cls: Type[M], default: M | None = None) -> M | None:
        return self._by_tag.get(marker_cls.tag, default)  # type: ignore[return-value]

    def value(self, marker_cls: Type[ConfElement], default: object = None) -> object:
        marker = self._by_tag.get(marker_cls.tag)
        if marker is None:
            return default
        return getattr(marker, "value", default)

    def __iter__(self) -> Iterator[ConfElement]:
        return iter(self._markers)

    def __len__(self) -> int:
        return len(self._markers)

    def __repr__(self) -> str:
        return f"ConfSet({self._markers!r})"


__all__ = [
    "ConfElement",
    "BasicConf",
    "ValueConf",
    "TypeConf",
    "TemplateConf",
    "BatchSize",
    "BigBatchSize",
    "Copy",
    "Visible",
    "Hidden",
    "Pooling",
    "Activation",
    "WeightDecay",
    "LrDriver",
    "Sparsity",
    "Bias",
    "WeightType",
    "Trainer",
    "TrainerRBM",
    "Watcher",
    "Momentum",
    "ParallelMode",
    "Serial",
    "Verbose",
    "InitWeights",
    "Shuffle",
    "ShufflePre",
    "FreeEnergy",
    "ClipGradients",
    "DBNOnly",
    "BatchMode",
    "Nop",
    "shuffle_cond",
    "clipping_cond",
    "ConfSet",
]

"""Resolve a marker list into the effective policy of a layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

import numpy as np

from . import conf
from .enums import BiasMode, DecayType, Function, LrDriverType, SparsityMethod, UnitType, is_relu

DEFAULT_BATCH_SIZE = 25
DEFAULT_BIG_BATCH_SIZE = 1


@dataclass(frozen=True)
class LayerPolicy:
    """Immutable projection of a :class:`~dbnkit.core.conf.ConfSet`."""

    visible_unit: UnitType = UnitType.BINARY
    hidden_unit: UnitType = UnitType.BINARY
    pooling_unit: UnitType = UnitType.BINARY
    activation: Function = Function.SIGMOID
    decay: DecayType = DecayType.NONE
    lr_driver: LrDriverType = LrDriverType.FIXED
    sparsity: SparsityMethod = SparsityMethod.NONE
    bias: BiasMode = BiasMode.SIMPLE
    batch_size: int = DEFAULT_BATCH_SIZE
    big_batch_size: int = DEFAULT_BIG_BATCH_SIZE
    copy: int = 1
    weight_type: type = np.float64
    trainer: Callable[..., object] | None = None
    trainer_rbm: Callable[..., object] | None = None
    watcher: Callable[..., object] | None = None
    momentum: bool = False
    parallel_mode: bool = False
    serial: bool = False
    verbose: bool = False
    shuffle: bool = False
    shuffle_pre: bool = False
    clip_gradients: bool = False
    free_energy: bool = False
    dbn_only: bool = False
    init_weights: bool = False
    batch_mode: bool = False

    @classmethod
    def from_conf(cls, markers: conf.ConfSet | Iterable[conf.ConfElement]) -> "LayerPolicy":
        conf_set = markers if isinstance(markers, conf.ConfSet) else conf.ConfSet(markers)
        return cls(
            visible_unit=conf_set.value(conf.Visible, UnitType.BINARY),
            hidden_unit=conf_set.value(conf.Hidden, UnitType.BINARY),
            pooling_unit=conf_set.value(conf.Pooling, UnitType.BINARY),
            activation=conf_set.value(conf.Activation, Function.SIGMOID),
            decay=conf_set.value(conf.WeightDecay, DecayType.NONE),
            lr_driver=conf_set.value(conf.LrDriver, LrDriverType.FIXED),
            sparsity=conf_set.value(conf.Sparsity, SparsityMethod.NONE),
            bias=conf_set.value(conf.Bias, BiasMode.SIMPLE),
            batch_size=conf_set.value(conf.BatchSize, DEFAULT_BATCH_SIZE),
            big_batch_size=conf_set.value(conf.BigBatchSize, DEFAULT_BIG_BATCH_SIZE),
            copy=conf_set.value(conf.Copy, 1),
            weight_type=conf_set.value(conf.WeightType, np.float64),
            trainer=conf_set.value(conf.Trainer),
            trainer_rbm=conf_set.value(conf.TrainerRBM),
            watcher=conf_set.value(conf.Watcher),
            momentum=conf_set.has(conf.Momentum),
            parallel_mode=conf_set.has(conf.ParallelMode),
            serial=conf_set.has(conf.Serial),
            verbose=conf_set.has(conf.Verbose),
            shuffle=conf_set.has(conf.Shuffle),
            shuffle_pre=conf_set.has(conf.ShufflePre),
            clip_gradients=conf_set.has(conf.ClipGradients),
            free_energy=conf_set.has(conf.FreeEnergy),
            dbn_only=conf_set.has(conf.DBNOnly),
            init_weights=conf_set.has(conf.InitWeights),
            batch_mode=conf_set.has(conf.BatchMode),
        )

    # ------------------------------------------------------------------
    # Derived queries

    @property
    def is_parallel(self) -> bool:
        return self.parallel_mode and not self.serial

    @property
    def has_momentum(self) -> bool:
        return self.momentum

    @property
    def has_sparsity(self) -> bool:
        return self.sparsity is not SparsityMethod.NONE

    @property
    def has_l1(self) -> bool:
        return self.decay in {DecayType.L1, DecayType.L1_FULL, DecayType.L1L2, DecayType.L1L2_FULL}

    @property
    def has_l2(self) -> bool:
        return self.decay in {DecayType.L2, DecayType.L2_FULL, DecayType.L1L2, DecayType.L1L2_FULL}

    @property
    def decay_applies_to_bias(self) -> bool:
        return self.decay in {DecayType.L1_FULL, DecayType.L2_FULL, DecayType.L1L2_FULL}

    @property
    def has_bias(self) -> bool:
        return self.bias is not BiasMode.NONE

    @property
    def is_relu_hidden(self) -> bool:
        return is_relu(self.hidden_unit)


__all__ = ["LayerPolicy", "DEFAULT_BATCH_SIZE", "DEFAULT_BIG_BATCH_SIZE"]

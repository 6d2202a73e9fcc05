"""Contrastive divergence training of a single RBM layer.

One mini-batch goes through four strictly ordered phases: the positive
phase ``v1 -> h1``, ``k`` alternating Gibbs steps ``h -> v2 -> h2``, the
accumulation of the batch-averaged gradients and the parameter update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, List, Sequence

import numpy as np

from ..core.enums import LrDriverType, SparsityMethod
from ..core.errors import nan_check
from ..core.parallel import WorkerPool
from ..core.sampling import spawn
from ..core.types import Array, Gradients, PhaseState, TrainingResult
from ..data.utils import batch_iterator
from ..reporting.console import ConsoleWatcher


@dataclass
class _Increments:
    w: Array
    b: Array
    c: Array

    @classmethod
    def zeros_like(cls, layer) -> "_Increments":
        return cls(np.zeros_like(layer.w), np.zeros_like(layer.b), np.zeros_like(layer.c))


@dataclass
class _TrainingState:
    """Values carried from one mini-batch to the next."""

    increments: _Increments
    q_global: float = 0.0
    q_local: Array | None = None
    chains: Dict[int, Array] = field(default_factory=dict)
    activation_sum: float = 0.0
    activation_count: int = 0


def emit_callbacks(callbacks: Sequence[object], hook: str, *args: object) -> None:
    """Call ``hook`` on every callback; plain callables only receive ``on_epoch``."""

    for callback in callbacks:
        method = getattr(callback, hook, None)
        if method is not None:
            method(*args)
        elif hook == "on_epoch" and callable(callback):
            callback(*args)


def clip_gradient(grad: Array, threshold: float) -> Array:
    """Rescale ``grad`` so that its L2 norm does not exceed ``threshold``."""

    norm = float(np.sqrt(np.sum(grad * grad)))
    if norm > threshold > 0.0:
        return grad * (threshold / norm)
    return grad


@dataclass
class ContrastiveDivergence:
    """CD-k: the negative chain restarts from the data at every mini-batch."""

    k: int = 1
    persistent: ClassVar[bool] = False

    def __post_init__(self) -> None:
        if self.k < 1:
            raise ValueError("k must be at least 1")

    # ------------------------------------------------------------------
    # Epoch loop

    def train(
        self,
        layer,
        inputs: Array,
        epochs: int,
        *,
        targets: Array | None = None,
        callbacks: Sequence[object] = (),
    ) -> TrainingResult:
        if epochs < 1:
            raise ValueError("epochs must be at least 1")
        policy = layer.policy
        callbacks = self._resolve_callbacks(policy, callbacks)
        samples = inputs.shape[0]

        if policy.init_weights:
            layer.init_weights(inputs if targets is None else targets)

        emit_callbacks(callbacks, "on_train_begin", layer, epochs, samples)

        state = _TrainingState(increments=_Increments.zeros_like(layer))
        history: List[Dict[str, float]] = []
        last_error = float("inf")
        error = float("inf")
        if policy.lr_driver is LrDriverType.BOLD:
            layer.backup_weights()

        with WorkerPool(policy.is_parallel) as pool:
            for epoch in range(epochs):
                layer.momentum = layer.initial_momentum
                if policy.has_momentum and epoch >= layer.final_momentum_epoch:
                    layer.momentum = layer.final_momentum

                order = layer.rng.permutation(samples) if policy.shuffle else np.arange(samples)
                state.activation_sum = 0.0
                state.activation_count = 0
                batches = batch_iterator(inputs, targets, batch_size=layer.batch_size, order=order)
                errors = [
                    self.train_batch(layer, batch.inputs, batch.targets, state, pool, key=key)
                    for key, batch in enumerate(batches)
                ]
                error = float(np.mean(errors))

                metrics: Dict[str, float] = {
                    "error": error,
                    "learning_rate": float(layer.learning_rate),
                    "momentum": float(layer.momentum),
                    "sparsity": state.activation_sum / max(1, state.activation_count),
                }
                if policy.free_energy:
                    metrics["free_energy"] = float(np.mean(layer.batch_free_energy(inputs)))
                history.append(metrics)
                emit_callbacks(callbacks, "on_epoch", epoch + 1, metrics)

                last_error = self._drive_learning_rate(layer, policy.lr_driver, error, last_error)

        emit_callbacks(callbacks, "on_train_end", layer, error)
        return TrainingResult(epochs=epochs, error=error, history=history)

    def _drive_learning_rate(
        self, layer, driver: LrDriverType, error: float, last_error: float
    ) -> float:
        """Adapt the learning rate; return the error the next epoch compares to."""

        if driver is LrDriverType.BOLD:
            if error > last_error:
                layer.learning_rate *= layer.lr_bold_dec
                layer.restore_weights()
                return last_error
            if error < last_error < float("inf"):
                layer.learning_rate *= layer.lr_bold_inc
            layer.backup_weights()
        elif driver is LrDriverType.BARREL and error > last_error:
            layer.learning_rate *= layer.lr_barrel_decay
        return error

    @staticmethod
    def _resolve_callbacks(policy, callbacks: Sequence[object]) -> list[object]:
        resolved = list(callbacks)
        if policy.watcher is not None:
            resolved.insert(0, policy.watcher())
        elif policy.verbose:
            resolved.insert(0, ConsoleWatcher())
        return resolved

    # ------------------------------------------------------------------
    # Mini-batch

    def train_batch(
        self,
        layer,
        v1: Array,
        clean: Array | None,
        state: _TrainingState,
        pool: WorkerPool,
        *,
        key: int = 0,
    ) -> float:
        """Run one CD step on ``v1``; return its reconstruction error."""

        phase = self.gibbs(layer, v1, state, pool, key=key)
        if not layer.policy.dbn_only:
            layer.record_phase(phase)
        target = v1 if clean is None else layer.validate_input(clean)
        grads = self.gradients(layer, phase, target)
        self.apply_corrections(layer, phase, grads, state)
        self.update(layer, grads, state.increments)

        state.activation_sum += float(np.sum(phase.h1_a))
        state.activation_count += int(phase.h1_a.size)
        return float(np.mean((target - phase.v2_a) ** 2))

    def gibbs(
        self, layer, v1: Array, state: _TrainingState, pool: WorkerPool, *, key: int = 0
    ) -> PhaseState:
        v1 = layer.validate_input(v1)
        h1_a, h1_s = self._activate(layer.batch_activate_hidden, v1, layer, pool)

        h_s = h1_s
        if self.persistent:
            chain = state.chains.get(key)
            if chain is not None and chain.shape == h1_s.shape:
                h_s = chain

        for _ in range(self.k):
            v2_a, v2_s = self._activate(layer.batch_activate_visible, h_s, layer, pool)
            h2_a, h2_s = self._activate(layer.batch_activate_hidden, v2_a, layer, pool)
            h_s = h2_s

        if self.persistent:
            state.chains[key] = h2_s
        return PhaseState(v1=v1, h1_a=h1_a, h1_s=h1_s, v2_a=v2_a, v2_s=v2_s, h2_a=h2_a, h2_s=h2_s)

    @staticmethod
    def _activate(
        fn: Callable[..., tuple[Array, Array | None]], x: Array, layer, pool: WorkerPool
    ) -> tuple[Array, Array]:
        if not pool.enabled:
            return fn(x)
        # one generator per sample keeps the threads independent
        rngs = spawn(layer.rng, x.shape[0])
        results = pool.map(lambda row, rng: fn(row[None], rng=rng), list(x), rngs)
        probs = np.concatenate([a for a, _ in results], axis=0)
        samples = np.concatenate([s for _, s in results], axis=0)
        return probs, samples

    @staticmethod
    def gradients(layer, phase: PhaseState, target: Array) -> Gradients:
        """Batch-averaged positive minus negative statistics."""

        shape = layer.shape
        batch = target.shape[0]
        hidden_norm = batch * shape.hidden_positions
        visible_norm = batch * shape.visible_positions

        w = shape.weight_statistics(target, phase.h1_a) - shape.weight_statistics(phase.v2_a, phase.h2_a)
        b = shape.hidden_bias_statistics(phase.h1_a) - shape.hidden_bias_statistics(phase.h2_a)
        c = shape.visible_bias_statistics(target) - shape.visible_bias_statistics(phase.v2_a)
        return Gradients(w=w / hidden_norm, b=b / hidden_norm, c=c / visible_norm)

    @staticmethod
    def apply_corrections(layer, phase: PhaseState, grads: Gradients, state: _TrainingState) -> None:
        """Sparsity, weight decay and clipping, in that order."""

        policy = layer.policy
        shape = layer.shape

        if policy.sparsity is SparsityMethod.GLOBAL_TARGET:
            state.q_global = (
                layer.decay_rate * state.q_global
                + (1.0 - layer.decay_rate) * float(np.mean(phase.h2_a))
            )
            penalty = layer.sparsity_cost * (state.q_global - layer.sparsity_target)
            grads.w -= penalty
            grads.b -= penalty
        elif policy.sparsity is SparsityMethod.LOCAL_TARGET:
            means = shape.hidden_unit_means(phase.h2_a)
            if state.q_local is None:
                state.q_local = np.zeros_like(means)
            state.q_local = layer.decay_rate * state.q_local + (1.0 - layer.decay_rate) * means
            penalty = layer.sparsity_cost * (state.q_local - layer.sparsity_target)
            grads.w -= shape.expand_hidden_to_weights(penalty)
            grads.b -= penalty
        elif policy.sparsity is SparsityMethod.LEE:
            grads.b += layer.pbias_lambda * (layer.pbias - shape.hidden_unit_means(phase.h2_a))

        if policy.has_l1:
            grads.w -= layer.l1_weight_cost * np.sign(layer.w)
            if policy.decay_applies_to_bias:
                grads.b -= layer.l1_weight_cost * np.sign(layer.b)
                grads.c -= layer.l1_weight_cost * np.sign(layer.c)
        if policy.has_l2:
            grads.w -= layer.l2_weight_cost * layer.w
            if policy.decay_applies_to_bias:
                grads.b -= layer.l2_weight_cost * layer.b
                grads.c -= layer.l2_weight_cost * layer.c

        if policy.clip_gradients:
            grads.w = clip_gradient(grads.w, layer.gradient_clip)
            grads.b = clip_gradient(grads.b, layer.gradient_clip)
            grads.c = clip_gradient(grads.c, layer.gradient_clip)

    @staticmethod
    def update(layer, grads: Gradients, inc: _Increments) -> None:
        policy = layer.policy
        lr = layer.learning_rate
        names = ("w", "b", "c") if policy.has_bias else ("w",)
        for name in names:
            grad = getattr(grads, name)
            if policy.has_momentum:
                step = layer.momentum * getattr(inc, name) + lr * grad
                setattr(inc, name, step)
            else:
                step = lr * grad
            setattr(layer, name, (getattr(layer, name) + step).astype(layer.dtype, copy=False))
        nan_check(layer.w, "weights")
        nan_check(layer.b, "hidden biases")
        nan_check(layer.c, "visible biases")


@dataclass
class PersistentContrastiveDivergence(ContrastiveDivergence):
    """PCD-k: negative chains persist across epochs, one per mini-batch slot."""

    persistent: ClassVar[bool] = True


def cd_k(k: int) -> Callable[[], ContrastiveDivergence]:
    """Factory for a ``TrainerRBM`` marker running CD-k."""

    def factory() -> ContrastiveDivergence:
        return ContrastiveDivergence(k)

    factory.__name__ = f"cd_{k}"
    return factory


def pcd_k(k: int) -> Callable[[], PersistentContrastiveDivergence]:
    def factory() -> PersistentContrastiveDivergence:
        return PersistentContrastiveDivergence(k)

    factory.__name__ = f"pcd_{k}"
    return factory


__all__ = [
    "ContrastiveDivergence",
    "PersistentContrastiveDivergence",
    "clip_gradient",
    "emit_callbacks",
    "cd_k",
    "pcd_k",
]

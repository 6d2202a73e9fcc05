"""Behaviour shared by every RBM: state, activations, training entry points.

Concrete layers provide a :class:`~dbnkit.rbm.shapes.LayerShape` in
``self.shape``; all geometry-dependent work is delegated to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Iterable, Sequence

import numpy as np

from ..core.enums import UnitType, is_relu, to_string
from ..core.errors import ConfigurationError, ShapeMismatchError, nan_check
from ..core.traits import LayerPolicy
from ..core.types import Array, Gradients, PhaseState, TrainingResult
from ..core.units import UnitStrategy, select_units
from .context import CGContext, SGDContext
from .shapes import LayerShape


class RBMBase:
    """Restricted Boltzmann Machine state and operations.

    Instances hold the weights ``w``, hidden biases ``b`` and visible biases
    ``c``. Single-sample reconstruction buffers (``v1``, ``h1_a``, ``h1_s``,
    ``v2_a``, ``v2_s``, ``h2_a``, ``h2_s``) are kept unless the layer is
    configured with :class:`~dbnkit.core.conf.DBNOnly`.
    """

    policy: ClassVar[LayerPolicy] = LayerPolicy()
    units: ClassVar[UnitStrategy] = select_units(UnitType.BINARY, UnitType.BINARY)
    convolutional: ClassVar[bool] = False
    kind: ClassVar[str] = "RBM"
    trainable: ClassVar[bool] = True
    pretrainable: ClassVar[bool] = True

    shape: LayerShape

    def __init__(self, seed: int | None = None) -> None:
        self.rng = np.random.default_rng(seed)
        self.dtype = self.policy.weight_type
        self.batch_size = self.policy.batch_size
        self._init_hyperparameters()
        self._sgd_context: SGDContext | None = None
        self._cg_context: CGContext | None = None
        self._training = False
        self.bak_w: Array | None = None
        self.bak_b: Array | None = None
        self.bak_c: Array | None = None
        self.training_history: list = []

    def _init_hyperparameters(self) -> None:
        self.learning_rate = 1e-1
        if self.policy.visible_unit is UnitType.GAUSSIAN:
            self.learning_rate = 1e-3
        elif is_relu(self.policy.hidden_unit):
            self.learning_rate = 1e-4

        self.initial_momentum = 0.5
        self.final_momentum = 0.9
        self.final_momentum_epoch = 6
        self.momentum = self.initial_momentum

        self.l1_weight_cost = 0.0002
        self.l2_weight_cost = 0.0002

        self.sparsity_target = 0.01
        self.sparsity_cost = 1.0
        self.decay_rate = 0.99

        self.pbias = 0.002
        self.pbias_lambda = 5.0

        self.gradient_clip = 5.0

        self.lr_bold_inc = 1.05
        self.lr_bold_dec = 0.5
        self.lr_barrel_decay = 0.5

    def _allocate(self) -> None:
        """(Re)create every container for the current ``self.shape``."""

        shape = self.shape
        self.w = shape.init_weights(self.rng, self.dtype)
        self.b = np.full(shape.hidden_shape[0], shape.initial_hidden_bias(), dtype=self.dtype)
        self.c = np.zeros(shape.visible_shape[0], dtype=self.dtype)
        self.bak_w = self.bak_b = self.bak_c = None
        if self.policy.dbn_only:
            return
        self.v1 = np.zeros(shape.visible_shape, dtype=self.dtype)
        self.h1_a = np.zeros(shape.hidden_shape, dtype=self.dtype)
        self.h1_s = np.zeros(shape.hidden_shape, dtype=self.dtype)
        self.v2_a = np.zeros(shape.visible_shape, dtype=self.dtype)
        self.v2_s = np.zeros(shape.visible_shape, dtype=self.dtype)
        self.h2_a = np.zeros(shape.hidden_shape, dtype=self.dtype)
        self.h2_s = np.zeros(shape.hidden_shape, dtype=self.dtype)

    # ------------------------------------------------------------------
    # Sizes

    @property
    def visible_unit(self) -> UnitType:
        return self.policy.visible_unit

    @property
    def hidden_unit(self) -> UnitType:
        return self.policy.hidden_unit

    def input_size(self) -> int:
        return self.shape.input_size()

    def output_size(self) -> int:
        return self.shape.output_size()

    def parameters(self) -> int:
        return self.shape.parameters()

    def to_short_string(self) -> str:
        return f"{self.kind}({to_string(self.hidden_unit)}): {self.shape.describe()}"

    def display(self) -> None:
        print(self.to_short_string())

    # ------------------------------------------------------------------
    # Inputs

    def prepare_input(self) -> Array:
        """Return an empty container shaped like one visible sample."""

        return np.zeros(self.shape.visible_shape, dtype=self.dtype)

    def prepare_output(self) -> Array:
        return np.zeros(self.shape.hidden_shape, dtype=self.dtype)

    def validate_input(self, v: Array) -> Array:
        """Return ``v`` as a visible batch, failing fast on a size mismatch."""

        return self.shape.reshape_visible(np.asarray(v, dtype=self.dtype))

    # ------------------------------------------------------------------
    # Activations

    def batch_activate_hidden(
        self,
        v: Array,
        *,
        probs: bool = True,
        samples: bool = True,
        rng: np.random.Generator | None = None,
    ) -> tuple[Array, Array | None]:
        """Compute ``p(h|v)`` and optionally a sample for a batch."""

        if not probs:
            raise ConfigurationError("Computing samples without probabilities is not implemented")
        v = self.validate_input(v)
        b_rep = self.shape.broadcast_hidden_bias(self.b, v.shape[0])
        pre = b_rep + self.shape.hidden_input(v, self.w)
        h_a = self.units.hidden_probs(pre)
        nan_check(h_a, "hidden activations")
        h_s = None
        if samples:
            h_s = self.units.hidden_sample(pre, h_a, rng or self.rng)
            nan_check(h_s, "hidden samples")
        return h_a, h_s

    def batch_activate_visible(
        self,
        h: Array,
        *,
        probs: bool = True,
        samples: bool = True,
        rng: np.random.Generator | None = None,
    ) -> tuple[Array, Array | None]:
        """Compute ``p(v|h)`` and optionally a sample for a batch of hidden states."""

        if not probs:
            raise ConfigurationError("Computing samples without probabilities is not implemented")
        h = self.shape.reshape_hidden(np.asarray(h, dtype=self.dtype))
        c_rep = self.shape.broadcast_visible_bias(self.c, h.shape[0])
        v_a = self.units.visible_probs(c_rep + self.shape.visible_input(h, self.w))
        nan_check(v_a, "visible activations")
        v_s = None
        if samples:
            v_s = self.units.visible_sample(v_a, rng or self.rng)
            nan_check(v_s, "visible samples")
        return v_a, v_s

    def activate_hidden(
        self,
        v: Array,
        *,
        probs: bool = True,
        samples: bool = True,
        rng: np.random.Generator | None = None,
    ) -> tuple[Array, Array | None]:
        """Single-sample version of :meth:`batch_activate_hidden`."""

        h_a, h_s = self.batch_activate_hidden(
            self._single(v, self.shape.visible_shape), probs=probs, samples=samples, rng=rng
        )
        return h_a[0], None if h_s is None else h_s[0]

    def activate_visible(
        self,
        h: Array,
        *,
        probs: bool = True,
        samples: bool = True,
        rng: np.random.Generator | None = None,
    ) -> tuple[Array, Array | None]:
        v_a, v_s = self.batch_activate_visible(
            self._single(h, self.shape.hidden_shape), probs=probs, samples=samples, rng=rng
        )
        return v_a[0], None if v_s is None else v_s[0]

    @staticmethod
    def _single(x: Array, shape: Sequence[int]) -> Array:
        x = np.asarray(x)
        if x.size != int(np.prod(shape)):
            raise ShapeMismatchError(
                f"Expected one sample of {int(np.prod(shape))} values, got {x.size}"
            )
        return x.reshape((1,) + tuple(shape))

    def activation_probabilities(self, v: Array) -> Array:
        """Deterministic hidden activations of a batch (no sampling)."""

        h_a, _ = self.batch_activate_hidden(v, samples=False)
        return h_a

    features = activation_probabilities

    def reconstruct(self, v: Array) -> Array:
        """One Gibbs step ``v -> h_s -> p(v|h_s)`` for a batch."""

        _, h_s = self.batch_activate_hidden(v)
        v_a, _ = self.batch_activate_visible(h_s, samples=False)
        return v_a

    def reconstruction_error(self, v: Array) -> float:
        v = self.validate_input(v)
        return float(np.mean((v - self.reconstruct(v)) ** 2))

    # ------------------------------------------------------------------
    # Energies

    def energy(self, v: Array, h: Array) -> float:
        """Energy of the joint configuration ``(v, h)``; 0.0 when undefined."""

        if not self.units.has_energy:
            return 0.0
        v = self._single(v, self.shape.visible_shape).astype(self.dtype)
        h = self._single(h, self.shape.hidden_shape).astype(self.dtype)
        tmp = self.shape.energy_scratch_buffer(self.dtype)
        tmp[...] = self.shape.hidden_input(v, self.w)
        return float(self._energy_terms(v[0], h[0], tmp[0]))

    def record_phase(self, phase: PhaseState) -> None:
        """Keep the last sample of a CD step in the reconstruction buffers."""

        for name in ("v1", "h1_a", "h1_s", "v2_a", "v2_s", "h2_a", "h2_s"):
            getattr(self, name)[...] = getattr(phase, name)[-1]

    def free_energy(self, v: Array | None = None) -> float:
        """Free energy of one visible sample (defaults to the ``v1`` buffer)."""

        if v is None:
            v = self.v1
        return float(self.batch_free_energy(self._single(v, self.shape.visible_shape))[0])

    def batch_free_energy(self, v: Array) -> Array:
        """Free energy of every sample of a batch; zeros when undefined."""

        v = self.validate_input(v)
        if not self.units.has_energy:
            return np.zeros(v.shape[0], dtype=self.dtype)
        x = self.shape.broadcast_hidden_bias(self.b, v.shape[0]) + self.shape.hidden_input(v, self.w)
        return np.array(
            [self._free_energy_terms(v[i], x[i]) for i in range(v.shape[0])], dtype=self.dtype
        )

    def _energy_terms(self, v: Array, h: Array, vw: Array) -> float:
        raise NotImplementedError

    def _free_energy_terms(self, v: Array, x: Array) -> float:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Weights management

    def init_weights(self, data: Array) -> None:
        """Initialise the visible biases from the data statistics.

        Binary units get ``log(p / (1 - p))`` where ``p`` is the proportion of
        active inputs; Gaussian units get the data mean.
        """

        v = self.validate_input(data)
        count = v.shape[0] * self.shape.visible_positions
        mean = self.shape.visible_bias_statistics(v) / count
        if self.visible_unit is UnitType.BINARY:
            p = np.clip(mean, 1e-3, 1.0 - 1e-3)
            self.c = np.log(p / (1.0 - p)).astype(self.dtype)
        else:
            self.c = mean.astype(self.dtype)

    def backup_weights(self) -> None:
        self.bak_w = self.w.copy()
        self.bak_b = self.b.copy()
        self.bak_c = self.c.copy()

    def restore_weights(self) -> None:
        if self.bak_w is None or self.bak_b is None or self.bak_c is None:
            raise RuntimeError("restore_weights() called without a backup")
        self.w = self.bak_w.copy()
        self.b = self.bak_b.copy()
        self.c = self.bak_c.copy()

    def store(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            np.savez_compressed(handle, w=self.w, b=self.b, c=self.c)

    def load(self, path: str | Path) -> None:
        with np.load(Path(path)) as payload:
            for name in ("w", "b", "c"):
                if name not in payload:
                    raise KeyError(f"Missing {name} in stored layer")
                current = getattr(self, name)
                if payload[name].shape != current.shape:
                    raise ShapeMismatchError(
                        f"Stored {name} has shape {payload[name].shape}, "
                        f"layer expects {current.shape}"
                    )
                setattr(self, name, payload[name].astype(self.dtype))

    # ------------------------------------------------------------------
    # Optimisation contexts

    def sgd_context(self) -> SGDContext:
        if self._sgd_context is None:
            self._sgd_context = SGDContext.for_shapes(
                self.shape.weight_shape, self.b.shape, self.dtype
            )
        return self._sgd_context

    def cg_context(self) -> CGContext:
        if self._cg_context is None:
            self._cg_context = CGContext.for_shapes(self.shape.weight_shape, self.b.shape)
        return self._cg_context

    def invalidate_contexts(self) -> None:
        self._sgd_context = None
        self._cg_context = None

    # ------------------------------------------------------------------
    # Fine-tuning

    def forward(self, x: Array) -> Array:
        return self.activation_probabilities(x)

    def backprop(
        self, x: Array, out: Array, errors: Array, *, apply_derivative: bool = True
    ) -> tuple[Gradients, Array]:
        """Gradients of the batch-mean loss and the errors of the layer inputs.

        ``errors`` is the derivative of the loss with respect to ``out``; with
        ``apply_derivative=False`` it is taken as the derivative with respect
        to the pre-activation instead.
        """

        x = self.validate_input(x)
        errors = self.shape.reshape_hidden(errors)
        delta = self.units.hidden_delta(out, errors) if apply_derivative else errors
        batch = x.shape[0]
        grads = Gradients(
            w=self.shape.weight_statistics(x, delta) / batch,
            b=self.shape.hidden_bias_statistics(delta) / batch,
            c=np.zeros_like(self.c),
        )
        return grads, self.shape.visible_input(delta, self.w)

    # ------------------------------------------------------------------
    # Training

    def make_trainer(self):
        from ..training.trainer import ContrastiveDivergence

        factory = self.policy.trainer_rbm or ContrastiveDivergence
        return factory()

    def train(
        self, data: Array | Iterable[Array], epochs: int, *, callbacks: Sequence[object] = ()
    ) -> float:
        """Train with contrastive divergence; return the final reconstruction error."""

        result = self._run_training(data, None, epochs, callbacks)
        return result.error

    def train_denoising(
        self,
        noisy: Array | Iterable[Array],
        clean: Array | Iterable[Array],
        epochs: int,
        *,
        callbacks: Sequence[object] = (),
    ) -> float:
        """Train to reconstruct ``clean`` from ``noisy``."""

        result = self._run_training(noisy, clean, epochs, callbacks)
        return result.error

    def _run_training(self, data, clean, epochs: int, callbacks) -> TrainingResult:
        inputs = self.validate_input(_as_array(data, self.dtype))
        targets = None
        if clean is not None:
            targets = self.validate_input(_as_array(clean, self.dtype))
            if targets.shape[0] != inputs.shape[0]:
                raise ValueError(
                    f"{inputs.shape[0]} noisy samples but {targets.shape[0]} clean samples"
                )
        trainer = self.make_trainer()
        self._training = True
        try:
            result = trainer.train(self, inputs, epochs, targets=targets, callbacks=callbacks)
        finally:
            self._training = False
        self.training_history = list(result.history)
        return result

    def _check_not_training(self) -> None:
        if self._training:
            raise RuntimeError("Cannot re-initialise a layer while it is being trained")


def _as_array(data: Array | Iterable[Array], dtype: type) -> Array:
    if isinstance(data, np.ndarray):
        return data.astype(dtype, copy=False)
    return np.asarray([np.asarray(sample, dtype=dtype) for sample in data], dtype=dtype)


__all__ = ["RBMBase"]

"""Deep Belief Network: a stack of layers pretrained greedily, then fine-tuned.

Layers are given as descriptors; the network owns one instance of each::

    net = dbn_desc(
        [
            rbm_desc(784, 300, Momentum()),
            rbm_desc(300, 100, Momentum()),
            dense_desc(100, 10, Activation(Function.SOFTMAX)),
        ],
        BatchSize(50),
    ).dbn_t()
    net.pretrain(images, 10)
    net.fine_tune(images, labels, 20)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import ClassVar, List, Sequence, Tuple

import numpy as np

from .core.conf import ConfElement, ConfSet
from .core.enums import Function, UnitType
from .core.errors import ConfigurationError, ShapeMismatchError
from .core.traits import LayerPolicy
from .core.types import Array, Gradients, TrainingResult
from .layers.dense import DenseLayerBase
from .rbm.base import RBMBase
from .reporting.console import ConsoleWatcher
from .training.finetune import SGDTrainer

_EPS = 1e-12


class DBN:
    """Network built by :func:`dbn_desc`."""

    desc: ClassVar["DBNDesc"]

    def __init__(self, seed: int | None = None) -> None:
        self.policy: LayerPolicy = self.desc.policy
        self.rng = np.random.default_rng(seed)
        seeds = self.rng.integers(0, 2**31 - 1, size=len(self.desc.layers))
        self.layers = [self._instantiate(d, int(s)) for d, s in zip(self.desc.layers, seeds)]
        self.batch_size = self.policy.batch_size

        self.learning_rate = 0.1
        self.momentum = 0.9
        self.l1_weight_cost = 0.0002
        self.l2_weight_cost = 0.0002
        self.gradient_clip = 5.0
        self.fine_tune_history: list = []

        if all(_is_configured(layer) for layer in self.layers):
            self.check_chain()

    @staticmethod
    def _instantiate(desc, seed: int):
        layer_t = desc.layer_t
        if issubclass(layer_t, (RBMBase, DenseLayerBase)):
            return layer_t(seed=seed)
        return layer_t()

    # ------------------------------------------------------------------
    # Structure

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, index: int):
        return self.layers[index]

    def check_chain(self) -> None:
        """Ensure every layer consumes exactly what the previous one produces."""

        for i, (lower, upper) in enumerate(zip(self.layers[:-1], self.layers[1:])):
            if lower.output_size() != upper.input_size():
                raise ShapeMismatchError(
                    f"Layer {i} outputs {lower.output_size()} values "
                    f"but layer {i + 1} expects {upper.input_size()}"
                )

    def input_size(self) -> int:
        return self.layers[0].input_size()

    def output_size(self) -> int:
        return self.layers[-1].output_size()

    def parameters(self) -> int:
        return int(sum(layer.parameters() for layer in self.layers))

    def trainable_layers(self) -> list:
        return [layer for layer in self.layers if layer.trainable]

    def to_short_string(self) -> str:
        return "DBN with {} layers ({} parameters)".format(len(self.layers), self.parameters())

    def display(self) -> None:
        print(self.to_short_string())
        for i, layer in enumerate(self.layers):
            print(f"  Layer {i}: {layer.to_short_string()}")

    # ------------------------------------------------------------------
    # Pretraining

    def pretrain(
        self, data: Array, epochs: int, *, callbacks: Sequence[object] = ()
    ) -> List[float]:
        """Train every RBM greedily on the outputs of the layers below it.

        Returns the final reconstruction error of each pretrained layer.
        """

        self.check_chain()
        current = self._copies(self._prepare(data))
        if self.policy.shuffle_pre:
            current = current[self.rng.permutation(current.shape[0])]
        watcher = self._banner("pretraining", epochs, current.shape[0])
        callbacks = self._with_watcher(watcher, callbacks)

        errors: List[float] = []
        last = len(self.layers) - 1
        for i, layer in enumerate(self.layers):
            if layer.pretrainable:
                errors.append(layer.train(current, epochs, callbacks=self._layer_callbacks(callbacks, i)))
            if i < last:
                current = self._propagate(layer, current)
        return errors

    def pretrain_denoising(
        self, noisy: Array, clean: Array, epochs: int, *, callbacks: Sequence[object] = ()
    ) -> List[float]:
        """Greedy denoising pretraining: each RBM learns to map noisy to clean."""

        self.check_chain()
        noisy = self._copies(self._prepare(noisy))
        clean = self._copies(self._prepare(clean))
        if noisy.shape != clean.shape:
            raise ShapeMismatchError(f"noisy {noisy.shape} and clean {clean.shape} differ")
        if self.policy.shuffle_pre:
            order = self.rng.permutation(noisy.shape[0])
            noisy, clean = noisy[order], clean[order]
        watcher = self._banner("denoising pretraining", epochs, noisy.shape[0])
        callbacks = self._with_watcher(watcher, callbacks)

        errors: List[float] = []
        last = len(self.layers) - 1
        for i, layer in enumerate(self.layers):
            if layer.pretrainable:
                errors.append(
                    layer.train_denoising(
                        noisy, clean, epochs, callbacks=self._layer_callbacks(callbacks, i)
                    )
                )
            if i < last:
                noisy = self._propagate(layer, noisy)
                clean = self._propagate(layer, clean)
        return errors

    def _copies(self, data: Array) -> Array:
        """Repeat every sample ``Copy(n)`` times, keeping copies adjacent."""

        if self.policy.copy > 1:
            return np.repeat(data, self.policy.copy, axis=0)
        return data

    def _propagate(self, layer, data: Array) -> Array:
        """Activations of ``layer``, one big batch at a time in batch mode."""

        if not self.policy.batch_mode:
            return layer.forward(data)
        step = self.batch_size * self.policy.big_batch_size
        chunks = [layer.forward(data[start : start + step]) for start in range(0, data.shape[0], step)]
        return np.concatenate(chunks, axis=0)

    @staticmethod
    def _with_watcher(watcher, callbacks: Sequence[object]) -> list:
        resolved = list(callbacks)
        if watcher is not None:
            resolved.insert(0, watcher)
        return resolved

    @staticmethod
    def _layer_callbacks(callbacks: Sequence[object], index: int) -> list:
        resolved = []
        for callback in callbacks:
            for_layer = getattr(callback, "for_layer", None)
            resolved.append(for_layer(index) if for_layer is not None else callback)
        return resolved

    def _banner(self, phase: str, epochs: int, samples: int):
        """Create the network watcher, if any, and announce ``phase``."""

        watcher = self._watcher()
        if watcher is not None and hasattr(watcher, "on_train_begin"):
            print(f"DBN {phase}")
            watcher.on_train_begin(self, epochs, samples)
        return watcher

    def _watcher(self):
        if self.policy.watcher is not None:
            return self.policy.watcher()
        if self.policy.verbose:
            return ConsoleWatcher()
        return None

    # ------------------------------------------------------------------
    # Inference

    def _prepare(self, data: Array) -> Array:
        data = np.asarray(data, dtype=np.float64)
        if data.ndim == 0 or data.shape[0] == 0:
            raise ShapeMismatchError("Input data is empty")
        return self.layers[0].validate_input(data)

    def forward_all(self, x: Array) -> List[Array]:
        """Outputs of every layer for the batch ``x``."""

        outputs = []
        current = self._prepare(x)
        for layer in self.layers:
            current = layer.forward(current)
            outputs.append(current)
        return outputs

    def activation_probabilities(self, x: Array) -> Array:
        return self.forward_all(x)[-1]

    def features(self, x: Array) -> Array:
        """Flattened activations of the last layer."""

        out = self.activation_probabilities(x)
        return out.reshape(out.shape[0], -1)

    def predict(self, x: Array) -> Array:
        return np.argmax(self.features(x), axis=1)

    def evaluate_error(self, samples: Array, labels: Array) -> float:
        """Fraction of misclassified samples."""

        predicted = self.predict(samples)
        labels = np.asarray(labels)
        if labels.ndim > 1:
            labels = np.argmax(labels.reshape(labels.shape[0], -1), axis=1)
        if labels.shape[0] != predicted.shape[0]:
            raise ShapeMismatchError(
                f"{predicted.shape[0]} samples but {labels.shape[0]} labels"
            )
        return float(np.mean(predicted != labels))

    # ------------------------------------------------------------------
    # Fine-tuning

    @property
    def is_classifier(self) -> bool:
        top = self.layers[-1]
        if isinstance(top, DenseLayerBase):
            return top.activation is Function.SOFTMAX
        return getattr(top, "hidden_unit", None) is UnitType.SOFTMAX

    def targets_for(self, labels: Array) -> Array:
        """One-hot encode integer labels; reshape target matrices."""

        labels = np.asarray(labels)
        size = self.output_size()
        if labels.ndim == 1 and np.issubdtype(labels.dtype, np.integer):
            if labels.size and (labels.min() < 0 or labels.max() >= size):
                raise ValueError(f"Labels must lie in [0, {size})")
            targets = np.zeros((labels.shape[0], size))
            targets[np.arange(labels.shape[0]), labels] = 1.0
            return targets
        targets = labels.reshape(labels.shape[0], -1).astype(np.float64)
        if targets.shape[1] != size:
            raise ShapeMismatchError(f"Targets have {targets.shape[1]} values, network outputs {size}")
        return targets

    def backpropagate(
        self, x: Array, targets: Array
    ) -> Tuple[float, List[Tuple[object, Gradients, Array, Array]]]:
        """Loss of the batch and, for each trainable layer, its gradients.

        Softmax outputs use the cross-entropy loss, anything else the
        squared error.
        """

        inputs = self._prepare(x)
        outputs = self.forward_all(inputs)
        out = outputs[-1].reshape(outputs[-1].shape[0], -1)
        batch = out.shape[0]
        if self.is_classifier:
            loss = float(-np.sum(targets * np.log(out + _EPS)) / batch)
            apply_top = False
        else:
            loss = float(0.5 * np.sum((out - targets) ** 2) / batch)
            apply_top = True
        errors = out - targets

        steps = []
        last = len(self.layers) - 1
        for i in range(last, -1, -1):
            layer = self.layers[i]
            layer_in = inputs if i == 0 else outputs[i - 1]
            grads, errors_in = layer.backprop(
                layer_in, outputs[i], errors, apply_derivative=(i != last or apply_top)
            )
            if grads is not None:
                steps.append((layer, grads, outputs[i], errors))
            errors = errors_in
        steps.reverse()
        return loss, steps

    def make_trainer(self):
        factory = self.policy.trainer or SGDTrainer
        return factory()

    def fine_tune(
        self, samples: Array, labels: Array, epochs: int, *, callbacks: Sequence[object] = ()
    ) -> float:
        """Backpropagation over the whole network; returns the final mean loss."""

        self.check_chain()
        inputs = self._prepare(samples)
        targets = self.targets_for(labels)
        if targets.shape[0] != inputs.shape[0]:
            raise ShapeMismatchError(f"{inputs.shape[0]} samples but {targets.shape[0]} labels")
        watcher = self._banner("fine-tuning", epochs, inputs.shape[0])
        callbacks = self._with_watcher(watcher, callbacks)
        result: TrainingResult = self.make_trainer().train(
            self, inputs, targets, epochs, callbacks=callbacks
        )
        self.fine_tune_history = list(result.history)
        return result.error

    # ------------------------------------------------------------------
    # Persistence

    def store(self, path: str | Path) -> None:
        payload = {}
        for i, layer in enumerate(self.layers):
            for name in ("w", "b", "c"):
                if hasattr(layer, name):
                    payload[f"layer{i}_{name}"] = getattr(layer, name)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            np.savez_compressed(handle, **payload)

    def load(self, path: str | Path) -> None:
        with np.load(Path(path)) as payload:
            for i, layer in enumerate(self.layers):
                for name in ("w", "b", "c"):
                    if not hasattr(layer, name):
                        continue
                    key = f"layer{i}_{name}"
                    if key not in payload:
                        raise KeyError(f"Missing {key} in stored network")
                    current = getattr(layer, name)
                    if payload[key].shape != current.shape:
                        raise ShapeMismatchError(
                            f"Stored {key} has shape {payload[key].shape}, expected {current.shape}"
                        )
                    setattr(layer, name, payload[key].astype(current.dtype))


def _is_configured(layer) -> bool:
    if isinstance(layer, RBMBase):
        return hasattr(layer, "shape")
    return layer.input_size() > 0


@dataclass(frozen=True)
class DBNDesc:
    layers: Tuple[object, ...]
    markers: Tuple[ConfElement, ...] = ()

    def __post_init__(self) -> None:
        if not self.layers:
            raise ConfigurationError("A DBN needs at least one layer")
        for desc in self.layers:
            if not hasattr(desc, "layer_t"):
                raise ConfigurationError(f"{desc!r} is not a layer descriptor")
        _ = self.policy

    @cached_property
    def policy(self) -> LayerPolicy:
        return LayerPolicy.from_conf(ConfSet(self.markers))

    @cached_property
    def dbn_t(self) -> type:
        return type("DBN", (DBN,), {"__module__": DBN.__module__, "desc": self})


def dbn_desc(layers: Sequence[object], *markers: ConfElement) -> DBNDesc:
    return DBNDesc(tuple(layers), tuple(markers))


__all__ = ["DBN", "DBNDesc", "dbn_desc"]

"""Supervised fine-tuning of a whole network by backpropagation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
from scipy.optimize import minimize

from ..core.errors import nan_check
from ..core.types import Array, TrainingResult
from ..data.utils import batch_iterator
from .trainer import clip_gradient, emit_callbacks


class _FineTuner:
    """Epoch loop shared by the fine-tuning trainers."""

    def train(
        self,
        dbn,
        inputs: Array,
        targets: Array,
        epochs: int,
        *,
        callbacks: Sequence[object] = (),
    ) -> TrainingResult:
        if epochs < 1:
            raise ValueError("epochs must be at least 1")
        policy = dbn.policy
        history: List[Dict[str, float]] = []
        loss = float("inf")
        samples = inputs.shape[0]
        for epoch in range(epochs):
            order = dbn.rng.permutation(samples) if policy.shuffle else np.arange(samples)
            batches = batch_iterator(inputs, targets, batch_size=self.batch_size(dbn), order=order)
            losses = [self.train_batch(dbn, batch.inputs, batch.targets) for batch in batches]
            loss = float(np.mean(losses))
            metrics = {"loss": loss, "error": dbn.evaluate_error(inputs, targets)}
            history.append(metrics)
            emit_callbacks(callbacks, "on_epoch", epoch + 1, metrics)
        emit_callbacks(callbacks, "on_train_end", dbn, loss)
        return TrainingResult(epochs=epochs, error=loss, history=history)

    def batch_size(self, dbn) -> int:
        return dbn.batch_size

    def train_batch(self, dbn, x: Array, y: Array) -> float:
        raise NotImplementedError


@dataclass
class SGDTrainer(_FineTuner):
    """Mini-batch gradient descent, with momentum when the network has it.

    Gradients, increments, outputs and errors of each layer live in the
    layer's :class:`~dbnkit.rbm.context.SGDContext`.
    """

    def train_batch(self, dbn, x: Array, y: Array) -> float:
        loss, steps = dbn.backpropagate(x, y)
        policy = dbn.policy
        momentum = dbn.momentum if policy.has_momentum else 0.0
        for layer, grads, output, errors in steps:
            context = layer.sgd_context()
            context.output = output
            context.errors = errors
            for name in ("w", "b"):
                grad = getattr(grads, name)
                value = getattr(layer, name)
                if policy.has_l1:
                    grad = grad + dbn.l1_weight_cost * np.sign(value)
                if policy.has_l2:
                    grad = grad + dbn.l2_weight_cost * value
                if policy.clip_gradients:
                    grad = clip_gradient(grad, dbn.gradient_clip)
                getattr(context, f"{name}_grad")[...] = grad
                inc = getattr(context, f"{name}_inc")
                inc *= momentum
                inc -= dbn.learning_rate * grad
                setattr(layer, name, value + inc)
            nan_check(layer.w, "weights")
            nan_check(layer.b, "biases")
        return loss


@dataclass
class CGTrainer(_FineTuner):
    """Conjugate gradient (scipy ``minimize(method="CG")``) on big mini-batches.

    Every mini-batch runs at most ``max_iterations`` CG iterations over the
    flattened parameters of all trainable layers.
    """

    max_iterations: int = 3
    batch_factor: int = 4

    def batch_size(self, dbn) -> int:
        return dbn.batch_size * self.batch_factor

    def train_batch(self, dbn, x: Array, y: Array) -> float:
        layers = dbn.trainable_layers()
        shapes = [(layer.w.shape, layer.b.shape) for layer in layers]

        def unpack(theta: Array) -> None:
            offset = 0
            for layer, (w_shape, b_shape) in zip(layers, shapes):
                w_size = int(np.prod(w_shape))
                b_size = int(np.prod(b_shape))
                layer.w = theta[offset : offset + w_size].reshape(w_shape).astype(layer.dtype)
                offset += w_size
                layer.b = theta[offset : offset + b_size].reshape(b_shape).astype(layer.dtype)
                offset += b_size

        def objective(theta: Array) -> tuple[float, Array]:
            unpack(theta)
            loss, steps = dbn.backpropagate(x, y)
            by_layer = {id(layer): grads for layer, grads, _, _ in steps}
            flat = []
            for layer in layers:
                grads = by_layer[id(layer)]
                flat.extend([grads.w.ravel(), grads.b.ravel()])
            return loss, np.concatenate(flat).astype(np.float64)

        start = np.concatenate([np.concatenate([layer.w.ravel(), layer.b.ravel()]) for layer in layers])
        result = minimize(
            objective,
            start.astype(np.float64),
            jac=True,
            method="CG",
            options={"maxiter": self.max_iterations},
        )
        unpack(result.x)
        for layer in layers:
            nan_check(layer.w, "weights")
            nan_check(layer.b, "biases")
            context = layer.cg_context()
            context.iterations += int(result.nit)
            context.last_message = str(result.message)
            context.record(layer.w, layer.b, float(result.fun))
        return float(result.fun)


__all__ = ["SGDTrainer", "CGTrainer"]

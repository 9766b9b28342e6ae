"""Output-layer losses.

Each loss maps column-major ``(predictions, targets)`` to the batch loss and
dL/d(predictions).  Losses are averaged over the batch (columns) and summed
over the rows, so a full-dataset objective is the sum of per-sample losses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

import numpy as np

from ..core.activations import sigmoid, softmax
from ..core.types import Array

LossFn = Callable[[Array, Array], tuple[float, Array]]


@dataclass(frozen=True)
class Loss:
    """Loss wrapper returning both the scalar loss and dL/dy."""

    name: str
    fn: LossFn

    def __call__(self, predictions: Array, targets: Array) -> tuple[float, Array]:
        return self.fn(predictions, targets)

    def forward(self, predictions: Array, targets: Array) -> float:
        return self.fn(predictions, targets)[0]

    def backward(self, predictions: Array, targets: Array) -> Array:
        return self.fn(predictions, targets)[1]

    def config(self) -> Dict[str, object]:
        return {"name": self.name}


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Loss] = {}

    def register(self, name: str, fn: LossFn) -> None:
        self._registry[name] = Loss(name, fn)

    def get(self, name: str) -> Loss:
        try:
            return self._registry[name]
        except KeyError as exc:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}") from exc

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, name: str, *, task_type: str) -> Loss:
        if name == "auto":
            if task_type == "regression":
                name = "mse"
            elif task_type == "multiclass":
                name = "ce"
            elif task_type in {"binary", "multilabel"}:
                name = "bce"
            else:
                raise ValueError(f"Unknown task type: {task_type}")
        return self.get(name)


REGISTRY = LossRegistry()


def _mse(pred: Array, target: Array) -> tuple[float, Array]:
    batch = pred.shape[1]
    diff = pred - target
    loss = float(np.sum(np.square(diff)) / batch)
    return loss, 2.0 * diff / batch


def _mae(pred: Array, target: Array) -> tuple[float, Array]:
    batch = pred.shape[1]
    diff = pred - target
    loss = float(np.sum(np.abs(diff)) / batch)
    return loss, np.sign(diff) / batch


def _ensure_one_hot(target: Array, num_classes: int) -> Array:
    if target.shape[0] == num_classes and num_classes > 1:
        return target.astype(np.float64)
    indices = target.reshape(-1).astype(int)
    return np.eye(num_classes, dtype=np.float64)[:, indices]


def _cross_entropy(logits: Array, target: Array) -> tuple[float, Array]:
    batch = logits.shape[1]
    one_hot = _ensure_one_hot(target, logits.shape[0])
    probs = softmax(logits)
    eps = 1e-12
    loss = float(-np.sum(one_hot * np.log(probs + eps)) / batch)
    return loss, (probs - one_hot) / batch


def _bce_with_logits(logits: Array, target: Array) -> tuple[float, Array]:
    batch = logits.shape[1]
    target = target.astype(np.float64)
    probs = sigmoid(logits)
    eps = 1e-12
    loss = float(
        -np.sum(target * np.log(probs + eps) + (1 - target) * np.log(1 - probs + eps))
        / batch
    )
    return loss, (probs - target) / batch


REGISTRY.register("mse", _mse)
REGISTRY.register("mae", _mae)
REGISTRY.register("ce", _cross_entropy)
REGISTRY.register("bce", _bce_with_logits)

__all__ = ["Loss", "LossRegistry", "REGISTRY"]

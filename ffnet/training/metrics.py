"""Evaluation metrics over column-major predictions and targets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np

from ..core.activations import sigmoid
from ..core.types import Array


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def default_metrics(task_type: str) -> List[str]:
    if task_type == "regression":
        return ["mae", "rmse", "r2"]
    if task_type in {"multiclass", "binary"}:
        return ["accuracy"]
    raise ValueError(f"Unknown task type: {task_type}")


def _class_indices(targets: Array) -> Array:
    if targets.shape[0] > 1:
        return np.argmax(targets, axis=0)
    return targets.reshape(-1).astype(int)


def compute_metric(name: str, predictions: Array, targets: Array, *, task_type: str) -> MetricResult:
    key = name.lower()
    preds = np.asarray(predictions, dtype=np.float64)
    targs = np.asarray(targets, dtype=np.float64)
    if key == "mae":
        value = float(np.mean(np.abs(preds - targs)))
    elif key == "rmse":
        value = float(np.sqrt(np.mean((preds - targs) ** 2)))
    elif key == "r2":
        mean = np.mean(targs, axis=1, keepdims=True)
        ss_res = float(np.sum((targs - preds) ** 2))
        ss_tot = float(np.sum((targs - mean) ** 2))
        value = 1.0 if ss_tot == 0 else float(1 - ss_res / (ss_tot + 1e-9))
    elif key == "accuracy":
        if task_type == "multiclass":
            pred_idx = np.argmax(preds, axis=0)
            targ_idx = _class_indices(targs)
        else:
            pred_idx = (sigmoid(preds) >= 0.5).astype(int)
            targ_idx = targs.astype(int)
        value = float(np.mean(pred_idx == targ_idx))
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str], predictions: Array, targets: Array, *, task_type: str
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, predictions, targets, task_type=task_type)
        results[metric.name] = metric.value
    return results


__all__ = ["MetricResult", "compute_metric", "compute_metrics", "default_metrics"]

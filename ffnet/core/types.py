"""Core typing contracts for ffnet."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple

import numpy as np

Array = np.ndarray
Shape = Tuple[int, ...]


class Mode(str, Enum):
    """Behaviour switch for stochastic and running-statistics layers."""

    TRAIN = "train"
    INFERENCE = "inference"

    @property
    def deterministic(self) -> bool:
        return self is Mode.INFERENCE


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`ffnet.training.pipelines.run_pipeline`."""

    final_objective: float
    metrics_path: str
    model_path: str = ""
    test_metrics: Dict[str, float] = field(default_factory=dict)


def as_columns(values) -> Array:
    """Coerce ``values`` to a float ``(rows, samples)`` matrix.

    A 1-D array is one row holding a single feature per sample, so ``n``
    values become ``n`` samples of a one-dimensional input.  Pass a
    ``(features, 1)`` array to run a single multi-feature sample.
    """

    matrix = np.asarray(values, dtype=np.float64)
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    return matrix


def shape_size(shape: Shape) -> int:
    """Number of elements described by ``shape``; ``0`` for an empty shape."""

    if len(shape) == 0:
        return 0
    return int(np.prod(shape, dtype=np.int64))

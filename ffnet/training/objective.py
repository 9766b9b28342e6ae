"""Objective-function contract exposed to generic optimizers.

An optimizer sees the network only through this adapter: a flat parameter
vector, a number of separable functions (one per sample), and the
``evaluate`` / ``evaluate_with_gradient`` / ``gradient`` entry points.
"""

from __future__ import annotations

import numpy as np

from ..core.errors import OutOfRange, ShapeMismatch, SizeMismatch
from ..core.pipeline import NetworkPipeline
from ..core.types import Array, Mode, as_columns
from .losses import Loss


class ObjectiveAdapter:
    """Evaluate a :class:`NetworkPipeline` plus output loss over a dataset."""

    def __init__(
        self,
        pipeline: NetworkPipeline,
        loss: Loss,
        predictors: Array | None = None,
        responses: Array | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.loss = loss
        self.predictors: Array | None = None
        self.responses: Array | None = None
        if predictors is not None:
            self.bind(predictors, responses)

    # ------------------------------------------------------------------
    # Dataset

    def bind(self, predictors: Array, responses: Array) -> None:
        predictors = as_columns(predictors)
        responses = as_columns(responses)
        if predictors.shape[1] != responses.shape[1]:
            raise ShapeMismatch(
                f"{predictors.shape[1]} predictor columns but "
                f"{responses.shape[1]} response columns"
            )
        self.predictors = predictors
        self.responses = responses

    def clear(self) -> None:
        self.predictors = None
        self.responses = None

    @property
    def num_functions(self) -> int:
        return 0 if self.predictors is None else int(self.predictors.shape[1])

    def shuffle(self, rng: np.random.Generator | None = None) -> None:
        """Permute predictor and response columns jointly."""

        self._require_data()
        rng = rng or np.random.default_rng()
        order = rng.permutation(self.num_functions)
        self.predictors = self.predictors[:, order]
        self.responses = self.responses[:, order]

    def _require_data(self) -> None:
        if self.predictors is None:
            raise ValueError("no dataset bound to the objective; call bind() first")

    def _batch(self, begin: int, batch_size: int) -> tuple[Array, Array]:
        self._require_data()
        if begin < 0 or batch_size < 1 or begin + batch_size > self.num_functions:
            raise OutOfRange(
                f"batch [{begin}, {begin + batch_size}) outside a dataset of "
                f"{self.num_functions} samples"
            )
        stop = begin + batch_size
        return self.predictors[:, begin:stop], self.responses[:, begin:stop]

    def _sync(self, parameters: Array) -> None:
        """Make sure the pipeline computes with ``parameters``."""

        self.pipeline.ensure_parameters(self.predictors.shape[0])
        own = self.pipeline.parameters
        if parameters is own:
            return
        parameters = np.asarray(parameters)
        if parameters.size != own.size:
            raise SizeMismatch(
                f"optimizer passed {parameters.size} parameters, network has {own.size}"
            )
        own[...] = parameters.reshape(-1)

    # ------------------------------------------------------------------
    # Optimizer entry points

    def evaluate(
        self,
        parameters: Array,
        begin: int | None = None,
        batch_size: int = 1,
        deterministic: bool = True,
    ) -> float:
        """Loss of one batch, or the summed loss of every sample if ``begin`` is None."""

        self._require_data()
        if begin is None:
            return float(
                sum(
                    self.evaluate(parameters, i, 1, True)
                    for i in range(self.num_functions)
                )
            )
        self._sync(parameters)
        self.pipeline.set_mode(Mode.INFERENCE if deterministic else Mode.TRAIN)
        inputs, targets = self._batch(begin, batch_size)
        outputs = self.pipeline.forward(inputs)
        return self.loss.forward(outputs, targets) + self.pipeline.loss()

    def evaluate_with_gradient(
        self, parameters: Array, begin: int, gradient: Array, batch_size: int
    ) -> float:
        """Train-mode loss of one batch; ``gradient`` is overwritten in place."""

        self._require_data()
        self._sync(parameters)
        self.pipeline.set_mode(Mode.TRAIN)
        inputs, targets = self._batch(begin, batch_size)
        outputs = self.pipeline.forward(inputs)
        loss, error = self.loss(outputs, targets)
        loss += self.pipeline.loss()
        self.pipeline.backward(error)
        self.pipeline.gradient(inputs, error, gradient)
        return float(loss)

    def gradient(
        self, parameters: Array, begin: int, gradient: Array, batch_size: int
    ) -> None:
        self.evaluate_with_gradient(parameters, begin, gradient, batch_size)

    def full_gradient(self, parameters: Array, gradient: Array) -> float:
        """Summed loss and gradient over every sample, one sample per pass."""

        self._require_data()
        gradient[...] = 0.0
        scratch = np.zeros_like(gradient)
        total = 0.0
        for i in range(self.num_functions):
            total += self.evaluate_with_gradient(parameters, i, scratch, 1)
            gradient += scratch
        return total


__all__ = ["ObjectiveAdapter"]

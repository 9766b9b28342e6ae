"""Training session: a network, its output loss and the dataset it trains on."""

from __future__ import annotations

import logging
import time
import warnings
from pathlib import Path
from typing import Sequence

import numpy as np

from ..core.init_rules import InitializationRule
from ..core.layers import Layer
from ..core.pipeline import NetworkPipeline
from ..core.types import Array, Mode, as_columns
from .losses import REGISTRY as LOSS_REGISTRY
from .losses import Loss
from .objective import ObjectiveAdapter
from .optimizers import Optimizer, iteration_budget

LOGGER = logging.getLogger(__name__)


class TrainingSession:
    """Feed-forward network trained by an external optimizer.

    Parameters
    ----------
    loss:
        Output loss, either a :class:`Loss` or a registered loss name.
    rule:
        Weight-initialization rule used the first time weights are needed.
    layers:
        Optional initial layers, added in order.
    input_dimensions:
        Shape of one input sample; defaults to the number of predictor rows.
    """

    def __init__(
        self,
        loss: Loss | str = "mse",
        rule: InitializationRule | None = None,
        layers: Sequence[Layer] = (),
        input_dimensions: Sequence[int] = (),
    ) -> None:
        if isinstance(loss, str):
            loss = LOSS_REGISTRY.get(loss)
        self.pipeline = NetworkPipeline(rule, input_dimensions, layers)
        self.objective = ObjectiveAdapter(self.pipeline, loss)

    # ------------------------------------------------------------------
    # Structure

    def add(self, layer: Layer) -> "TrainingSession":
        self.pipeline.add(layer)
        return self

    @property
    def loss(self) -> Loss:
        return self.objective.loss

    @property
    def layers(self) -> list[Layer]:
        return self.pipeline.layers

    @property
    def parameters(self) -> Array:
        return self.pipeline.parameters

    @parameters.setter
    def parameters(self, values: Array) -> None:
        self.pipeline.parameters = values

    @property
    def input_dimensions(self):
        return self.pipeline.input_dimensions

    @input_dimensions.setter
    def input_dimensions(self, dims: Sequence[int]) -> None:
        self.pipeline.input_dimensions = dims

    @property
    def mode(self) -> Mode:
        return self.pipeline.mode

    def set_mode(self, mode: Mode | str) -> None:
        self.pipeline.set_mode(mode)

    # ------------------------------------------------------------------
    # Dataset

    @property
    def predictors(self) -> Array | None:
        return self.objective.predictors

    @property
    def responses(self) -> Array | None:
        return self.objective.responses

    @property
    def num_functions(self) -> int:
        return self.objective.num_functions

    def reset_data(self, predictors: Array, responses: Array) -> None:
        """Bind a dataset, switch to train mode and make sure weights exist."""

        self.objective.bind(predictors, responses)
        self.pipeline.set_mode(Mode.TRAIN)
        self.pipeline.ensure_parameters(self.objective.predictors.shape[0])

    def shuffle(self, rng: np.random.Generator | None = None) -> None:
        self.objective.shuffle(rng)

    def reset_parameters(self) -> None:
        """Reinitialize every weight with the initialization rule."""

        rows = None if self.predictors is None else self.predictors.shape[0]
        self.pipeline.initialize_weights(rows)

    # ------------------------------------------------------------------
    # Training and inference

    def train(
        self,
        predictors: Array,
        responses: Array,
        optimizer: Optimizer,
        *callbacks: object,
    ) -> float:
        """Train on ``predictors``/``responses``; return the final objective."""

        self.reset_data(predictors, responses)
        budget = iteration_budget(optimizer)
        if budget is not None and budget != 0 and budget < self.num_functions:
            warnings.warn(
                "The optimizer's maximum number of iterations is less than the size "
                "of the dataset; the optimizer will not pass over the entire dataset. "
                "Set the maximum number of iterations to at least the number of "
                f"points in the dataset ({self.num_functions}).",
                UserWarning,
                stacklevel=2,
            )

        LOGGER.info(
            "training %d parameters on %d samples", self.parameters.size, self.num_functions
        )
        start = time.perf_counter()
        result = float(optimizer.optimize(self.objective, self.parameters, *callbacks))
        LOGGER.info(
            "final objective of trained model is %s (%.2fs)",
            result,
            time.perf_counter() - start,
        )
        return result

    def predict(self, predictors: Array, batch_size: int = 1) -> Array:
        """Run the network in inference mode; one output column per sample."""

        predictors = as_columns(predictors)
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.pipeline.ensure_parameters(predictors.shape[0])
        self.pipeline.set_mode(Mode.INFERENCE)

        n_samples = predictors.shape[1]
        results = np.empty(
            (self.pipeline.layers[-1].output_size(), n_samples), order="F"
        )
        for start in range(0, n_samples, batch_size):
            stop = min(start + batch_size, n_samples)
            self.pipeline.forward(predictors[:, start:stop], results[:, start:stop])
        return results

    def evaluate(self, predictors: Array, responses: Array) -> float:
        """Inference-mode loss of the whole matrix in one pass."""

        predictors = as_columns(predictors)
        responses = as_columns(responses)
        self.pipeline.ensure_parameters(predictors.shape[0])
        self.pipeline.set_mode(Mode.INFERENCE)
        outputs = self.pipeline.forward(predictors)
        return self.loss.forward(outputs, responses) + self.pipeline.loss()

    def forward(
        self,
        inputs: Array,
        results: Array | None = None,
        begin: int = 0,
        end: int | None = None,
    ) -> Array | None:
        return self.pipeline.forward(inputs, results, begin, end)

    def backward(self, inputs: Array, targets: Array, gradient: Array) -> float:
        """Loss of the last forward pass; fills ``gradient`` for it.

        ``forward(inputs)`` must have been called over the whole network.
        """

        outputs = self.pipeline.last_output
        targets = as_columns(targets)
        loss, error = self.loss(outputs, targets)
        loss += self.pipeline.loss()
        self.pipeline.backward(error)
        self.pipeline.gradient(inputs, error, gradient)
        return float(loss)

    # ------------------------------------------------------------------
    # Copy and persistence

    def clone(self) -> "TrainingSession":
        """Independent copy; the dataset binding is shared, buffers are not."""

        other = TrainingSession.__new__(TrainingSession)
        other.pipeline = self.pipeline.clone()
        other.objective = ObjectiveAdapter(
            other.pipeline, self.loss, self.predictors, self.responses
        )
        return other

    __copy__ = clone

    def __deepcopy__(self, memo) -> "TrainingSession":
        return self.clone()

    def save(self, path: str | Path, metadata: dict | None = None) -> str:
        from ..serialization import save

        return save(self, path, metadata)

    @classmethod
    def load(cls, path: str | Path) -> "TrainingSession":
        from ..serialization import load

        return load(path)


__all__ = ["TrainingSession"]

"""Mini-batch optimizers driving an :class:`~ffnet.training.objective.ObjectiveAdapter`.

Any object with ``optimize(objective, parameters, *callbacks) -> float`` can
train a network; the classes here are the reference implementations.  The
iteration budget counts samples, so one epoch costs ``num_functions``
iterations.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Mapping, Protocol

import numpy as np

from ..core.types import Array


class Optimizer(Protocol):
    def optimize(self, objective, parameters: Array, *callbacks: object) -> float:
        """Minimise ``objective`` in place over ``parameters``; return the final objective."""


def iteration_budget(optimizer: object) -> int | None:
    """Return the optimizer's iteration limit, or ``None`` if it exposes none."""

    value = getattr(optimizer, "max_iterations", None)
    if value is None:
        return None
    return int(value)


def _emit(callbacks, hook: str, index: int, metrics: Mapping[str, float]) -> None:
    for callback in callbacks:
        if hasattr(callback, hook):
            getattr(callback, hook)(index, metrics)
        elif hook == "on_epoch" and callable(callback):
            callback(index, metrics)


@dataclass
class _BatchOptimizer:
    """Shared epoch loop; subclasses supply :meth:`_update`."""

    step_size: float = 0.01
    batch_size: int = 32
    max_iterations: int = 100000
    tolerance: float = 1e-5
    shuffle: bool = True
    seed: int | None = None

    def _reset(self, parameters: Array) -> None:
        pass

    def _update(self, parameters: Array, gradient: Array) -> None:
        raise NotImplementedError

    def optimize(self, objective, parameters: Array, *callbacks: object) -> float:
        n = objective.num_functions
        if n == 0:
            raise ValueError("objective has no samples to optimize over")
        rng = np.random.default_rng(self.seed)
        gradient = np.zeros_like(parameters)
        self._reset(parameters)
        if self.shuffle:
            objective.shuffle(rng)

        iterations = 0
        steps = 0
        epoch = 0
        current = 0
        overall = 0.0
        last_objective = np.inf
        while self.max_iterations == 0 or iterations < self.max_iterations:
            size = min(self.batch_size, n - current)
            if self.max_iterations:
                size = min(size, self.max_iterations - iterations)
            loss = objective.evaluate_with_gradient(parameters, current, gradient, size)
            self._update(parameters, gradient)
            overall += loss
            steps += 1
            _emit(callbacks, "on_step", steps, {"loss": loss})
            current += size
            iterations += size

            if current < n:
                continue
            epoch += 1
            _emit(callbacks, "on_epoch", epoch, {"loss": overall})
            if not np.isfinite(overall):
                warnings.warn(
                    f"objective diverged to {overall} in epoch {epoch}; stopping",
                    RuntimeWarning,
                    stacklevel=2,
                )
                return float(overall)
            if abs(last_objective - overall) < self.tolerance:
                break
            last_objective = overall
            overall = 0.0
            current = 0
            if self.shuffle:
                objective.shuffle(rng)

        return objective.evaluate(parameters)


@dataclass
class SGD(_BatchOptimizer):
    """Mini-batch SGD with optional momentum."""

    momentum: float = 0.0
    _velocity: Array | None = field(default=None, init=False, repr=False)

    def _reset(self, parameters: Array) -> None:
        self._velocity = np.zeros_like(parameters)

    def _update(self, parameters: Array, gradient: Array) -> None:
        if self.momentum == 0.0:
            parameters -= self.step_size * gradient
            return
        self._velocity *= self.momentum
        self._velocity -= self.step_size * gradient
        parameters += self._velocity


@dataclass
class Adam(_BatchOptimizer):
    """Adam with bias-corrected moments."""

    step_size: float = 0.001
    beta1: float = 0.9
    beta2: float = 0.999
    eps: float = 1e-8
    _m: Array | None = field(default=None, init=False, repr=False)
    _v: Array | None = field(default=None, init=False, repr=False)
    _t: int = field(default=0, init=False, repr=False)

    def _reset(self, parameters: Array) -> None:
        self._m = np.zeros_like(parameters)
        self._v = np.zeros_like(parameters)
        self._t = 0

    def _update(self, parameters: Array, gradient: Array) -> None:
        self._t += 1
        self._m[...] = self.beta1 * self._m + (1.0 - self.beta1) * gradient
        self._v[...] = self.beta2 * self._v + (1.0 - self.beta2) * gradient * gradient
        m_hat = self._m / (1.0 - self.beta1**self._t)
        v_hat = self._v / (1.0 - self.beta2**self._t)
        parameters -= self.step_size * m_hat / (np.sqrt(v_hat) + self.eps)


OPTIMIZERS = {"sgd": SGD, "adam": Adam}


def build_optimizer(config: Mapping[str, object]) -> _BatchOptimizer:
    options = dict(config)
    name = str(options.pop("name", "sgd"))
    if name not in OPTIMIZERS:
        available = ", ".join(sorted(OPTIMIZERS))
        raise KeyError(f"Unknown optimizer {name!r}. Available optimizers: {available}")
    return OPTIMIZERS[name](**options)


__all__ = ["Optimizer", "SGD", "Adam", "build_optimizer", "iteration_budget"]

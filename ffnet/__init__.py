"""ffnet public API."""

from .core import activations, types  # noqa: F401
from .core.errors import FFNetError, OutOfRange, ShapeMismatch, SizeMismatch
from .core.init_rules import (
    ConstInitialization,
    GaussianInitialization,
    RandomInitialization,
)
from .core.layers import Dropout, Identity, Layer, Linear, ReLU, Sigmoid, Tanh
from .core.pipeline import NetworkPipeline
from .core.types import Mode
from .serialization import load, save
from .training.optimizers import SGD, Adam
from .training.pipelines import load_preset, presets, run_pipeline
from .training.session import TrainingSession

__all__ = [
    "Adam",
    "ConstInitialization",
    "Dropout",
    "FFNetError",
    "GaussianInitialization",
    "Identity",
    "Layer",
    "Linear",
    "Mode",
    "NetworkPipeline",
    "OutOfRange",
    "RandomInitialization",
    "ReLU",
    "SGD",
    "ShapeMismatch",
    "Sigmoid",
    "SizeMismatch",
    "Tanh",
    "TrainingSession",
    "activations",
    "load",
    "load_preset",
    "presets",
    "run_pipeline",
    "save",
    "types",
]

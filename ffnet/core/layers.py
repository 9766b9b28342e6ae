"""Layer capability contract and the reference layers shipped with ffnet.

The engine only ever talks to a layer through the methods of :class:`Layer`.
Every array handed to a layer is column-major: ``(features, batch)``.  Layers
never allocate their own weight storage; they read and write the
:class:`~ffnet.core.views.LayerView` given to :meth:`Layer.set_weights`.
"""

from __future__ import annotations

import copy
from typing import Callable, Dict, Mapping, Type

import numpy as np

from .activations import relu, sigmoid
from .errors import SizeMismatch
from .types import Array, Shape, shape_size
from .views import LayerView


class Layer:
    """Abstract unit of computation."""

    kind = "layer"

    def __init__(self) -> None:
        self._input_dimensions: Shape = ()
        self.deterministic = True
        self.weights: LayerView | None = None

    # ------------------------------------------------------------------
    # Shapes

    @property
    def input_dimensions(self) -> Shape:
        return self._input_dimensions

    @input_dimensions.setter
    def input_dimensions(self, dims: Shape) -> None:
        self._input_dimensions = tuple(int(d) for d in dims)

    @property
    def output_dimensions(self) -> Shape:
        return self._input_dimensions

    def input_size(self) -> int:
        return shape_size(self.input_dimensions)

    def output_size(self) -> int:
        return shape_size(self.output_dimensions)

    def weight_size(self) -> int:
        return 0

    # ------------------------------------------------------------------
    # Memory

    def set_weights(self, view: LayerView) -> None:
        if view.size != self.weight_size():
            raise SizeMismatch(
                f"{self.kind}: weight view holds {view.size} elements, "
                f"layer needs {self.weight_size()}"
            )
        self.weights = view

    # ------------------------------------------------------------------
    # Passes

    def forward(self, inputs: Array, outputs: Array) -> None:
        """Write the layer output for ``inputs`` into ``outputs``."""

        raise NotImplementedError

    def backward(self, outputs: Array, delta: Array, g: Array) -> None:
        """Write dL/d(input) into ``g`` given this layer's ``outputs`` and dL/d(output)."""

        raise NotImplementedError

    def gradient(self, inputs: Array, error: Array, gradient: Array) -> None:
        """Write dL/d(weights) into ``gradient``; parameter-free layers do nothing."""

    def loss(self) -> float:
        return 0.0

    def set_deterministic(self, deterministic: bool) -> None:
        self.deterministic = bool(deterministic)

    # ------------------------------------------------------------------
    # Copy and persistence

    def clone(self) -> "Layer":
        """Return an independent copy without a weight view.

        The owner of the clone must issue it a view into its own buffer.
        """

        state = {key: value for key, value in vars(self).items() if key != "weights"}
        other = object.__new__(type(self))
        other.__dict__.update(copy.deepcopy(state))
        other.weights = None
        return other

    def config(self) -> Dict[str, object]:
        return {}

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> "Layer":
        return cls(**config)

    def __repr__(self) -> str:
        options = ", ".join(f"{k}={v!r}" for k, v in self.config().items())
        return f"{type(self).__name__}({options})"


_LAYERS: Dict[str, Type[Layer]] = {}


def register_layer(kind: str) -> Callable[[Type[Layer]], Type[Layer]]:
    """Class decorator registering a layer under ``kind`` for serialization."""

    def decorator(cls: Type[Layer]) -> Type[Layer]:
        cls.kind = kind
        _LAYERS[kind] = cls
        return cls

    return decorator


def build_layer(spec: Mapping[str, object]) -> Layer:
    """Instantiate a layer from ``{"kind": ..., **options}``."""

    options = dict(spec)
    kind = str(options.pop("kind"))
    if kind not in _LAYERS:
        available = ", ".join(sorted(_LAYERS))
        raise KeyError(f"Unknown layer kind {kind!r}. Available layers: {available}")
    return _LAYERS[kind].from_config(options)


def layer_config(layer: Layer) -> Dict[str, object]:
    return {"kind": layer.kind, **layer.config()}


def layer_kinds() -> list[str]:
    return sorted(_LAYERS)


@register_layer("linear")
class Linear(Layer):
    """Dense layer ``W x + b``.

    The weight view is laid out as ``W`` (``out_size x in_size``, column-major)
    followed by the bias.
    """

    def __init__(self, out_size: int) -> None:
        super().__init__()
        self.out_size = int(out_size)

    @property
    def output_dimensions(self) -> Shape:
        return (self.out_size,)

    def weight_size(self) -> int:
        return self.out_size * self.input_size() + self.out_size

    def _split(self, flat: Array) -> tuple[Array, Array]:
        n_weights = self.out_size * self.input_size()
        W = flat[:n_weights].reshape((self.out_size, self.input_size()), order="F")
        b = flat[n_weights:].reshape((self.out_size, 1))
        return W, b

    def forward(self, inputs: Array, outputs: Array) -> None:
        W, b = self._split(self.weights.array[:, 0])
        outputs[...] = W @ inputs + b

    def backward(self, outputs: Array, delta: Array, g: Array) -> None:
        W, _ = self._split(self.weights.array[:, 0])
        g[...] = W.T @ delta

    def gradient(self, inputs: Array, error: Array, gradient: Array) -> None:
        gW, gb = self._split(gradient[:, 0])
        gW[...] = error @ inputs.T
        gb[...] = error.sum(axis=1, keepdims=True)

    def config(self) -> Dict[str, object]:
        return {"out_size": self.out_size}


class _Elementwise(Layer):
    """Parameter-free, shape-preserving layer."""

    def _apply(self, x: Array) -> Array:
        raise NotImplementedError

    def _derivative(self, y: Array) -> Array:
        """Derivative expressed through the layer's own output ``y``."""

        raise NotImplementedError

    def forward(self, inputs: Array, outputs: Array) -> None:
        outputs[...] = self._apply(inputs)

    def backward(self, outputs: Array, delta: Array, g: Array) -> None:
        g[...] = delta * self._derivative(outputs)


@register_layer("identity")
class Identity(_Elementwise):
    def _apply(self, x: Array) -> Array:
        return x

    def _derivative(self, y: Array) -> Array:
        return np.ones_like(y)


@register_layer("sigmoid")
class Sigmoid(_Elementwise):
    def _apply(self, x: Array) -> Array:
        return sigmoid(x)

    def _derivative(self, y: Array) -> Array:
        return y * (1.0 - y)


@register_layer("tanh")
class Tanh(_Elementwise):
    def _apply(self, x: Array) -> Array:
        return np.tanh(x)

    def _derivative(self, y: Array) -> Array:
        return 1.0 - y**2


@register_layer("relu")
class ReLU(_Elementwise):
    def _apply(self, x: Array) -> Array:
        return relu(x)

    def _derivative(self, y: Array) -> Array:
        return (y > 0).astype(y.dtype)


@register_layer("dropout")
class Dropout(Layer):
    """Inverted dropout; the identity in inference mode."""

    def __init__(self, ratio: float = 0.5, seed: int | None = None) -> None:
        super().__init__()
        if not 0.0 <= ratio < 1.0:
            raise ValueError("ratio must be in [0, 1)")
        self.ratio = float(ratio)
        self.seed = seed
        self._rng = np.random.default_rng(seed)
        self._mask: Array | None = None

    @property
    def scale(self) -> float:
        return 1.0 / (1.0 - self.ratio)

    def forward(self, inputs: Array, outputs: Array) -> None:
        if self.deterministic:
            self._mask = None
            outputs[...] = inputs
            return
        self._mask = (self._rng.random(inputs.shape) >= self.ratio).astype(inputs.dtype)
        outputs[...] = inputs * self._mask * self.scale

    def backward(self, outputs: Array, delta: Array, g: Array) -> None:
        # Follows the mode forward ran in, not the current one.
        if self._mask is None:
            g[...] = delta
            return
        g[...] = delta * self._mask * self.scale

    def config(self) -> Dict[str, object]:
        return {"ratio": self.ratio, "seed": self.seed}


__all__ = [
    "Layer",
    "Linear",
    "Identity",
    "Sigmoid",
    "Tanh",
    "ReLU",
    "Dropout",
    "register_layer",
    "build_layer",
    "layer_config",
    "layer_kinds",
]

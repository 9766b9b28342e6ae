"""Ordered layer pipeline: forward, backward and gradient traversal.

All per-layer buffers live in three arenas.  The output arena holds one
``(output_size, batch)`` view per layer, the delta arena one
``(input_size, batch)`` view per layer, and the gradient arena aliases the
optimizer's flat gradient vector with the same layout as the parameter
buffer.  Views are reissued at the start of every pass.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Sequence, Tuple

import numpy as np

from .errors import OutOfRange, ShapeMismatch, SizeMismatch
from .init_rules import InitializationRule
from .layers import Layer
from .parameters import ParameterStore
from .types import Array, Mode, Shape, as_columns, shape_size
from .views import Arena, LayerView

LOGGER = logging.getLogger(__name__)


class NetworkPipeline:
    """Own a list of layers and the buffers they compute through."""

    def __init__(
        self,
        rule: InitializationRule | None = None,
        input_dimensions: Sequence[int] = (),
        layers: Sequence[Layer] = (),
    ) -> None:
        self.layers: List[Layer] = []
        self.store = ParameterStore(rule)
        self._input_dimensions: Shape = tuple(int(d) for d in input_dimensions)
        self._dims_resolved = False
        self._mode = Mode.INFERENCE

        self._outputs = Arena("outputs")
        self._deltas = Arena("deltas")
        self._gradients = Arena("gradients")
        self.layer_outputs: List[LayerView] = []
        self.layer_deltas: List[LayerView] = []
        self.layer_gradients: List[LayerView] = []
        self.total_input_size = 0
        self.total_output_size = 0

        self._batch_size: int | None = None
        self._forward_range: Tuple[int, int] | None = None
        self._backward_range: Tuple[int, int] | None = None
        self._last_output: Array | None = None

        for layer in layers:
            self.add(layer)

    # ------------------------------------------------------------------
    # Structure

    def add(self, layer: Layer) -> "NetworkPipeline":
        layer.set_deterministic(self._mode.deterministic)
        self.layers.append(layer)
        self._structure_changed()
        return self

    def pop(self, index: int = -1) -> Layer:
        layer = self.layers.pop(index)
        layer.weights = None
        self._structure_changed()
        return layer

    def _structure_changed(self) -> None:
        self._dims_resolved = False
        self.store.reset()
        self.reset_arenas()

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, index: int) -> Layer:
        return self.layers[index]

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    @property
    def input_dimensions(self) -> Shape:
        return self._input_dimensions

    @input_dimensions.setter
    def input_dimensions(self, dims: Sequence[int]) -> None:
        self._input_dimensions = tuple(int(d) for d in dims)
        self._dims_resolved = False

    @property
    def parameters(self) -> Array:
        return self.store.parameters

    @parameters.setter
    def parameters(self, values: Array) -> None:
        self.resolve_dimensions()
        self.store.load(self.layers, values)

    @property
    def batch_size(self) -> int | None:
        return self._batch_size

    @property
    def last_output(self) -> Array:
        """Array the last layer of the most recent forward pass wrote into."""

        if self._last_output is None:
            raise OutOfRange("no forward pass has been run")
        return self._last_output

    # ------------------------------------------------------------------
    # Mode

    @property
    def mode(self) -> Mode:
        return self._mode

    def set_mode(self, mode: Mode | str) -> bool:
        """Switch mode; return ``True`` if it changed and was broadcast."""

        mode = Mode(mode)
        if mode is self._mode:
            return False
        self._mode = mode
        self.broadcast_mode()
        return True

    def broadcast_mode(self) -> None:
        for layer in self.layers:
            layer.set_deterministic(self._mode.deterministic)

    # ------------------------------------------------------------------
    # Shapes and parameters

    def resolve_dimensions(self, input_rows: int | None = None) -> None:
        """Propagate input dimensions through the layers if they changed.

        Unset network dimensions default to ``(input_rows,)``.
        """

        if not self.layers:
            raise OutOfRange("network has no layers")
        if not self._input_dimensions:
            if input_rows is None:
                raise ShapeMismatch("input dimensions are unset and no input was given")
            self._input_dimensions = (int(input_rows),)
        input_size = shape_size(self._input_dimensions)
        if input_rows is not None and input_size != input_rows:
            raise ShapeMismatch(
                f"input has {input_rows} rows but the declared input dimensions "
                f"{self._input_dimensions} describe {input_size} elements"
            )
        if self._dims_resolved and self.layers[0].input_dimensions == self._input_dimensions:
            return

        self.layers[0].input_dimensions = self._input_dimensions
        for previous, layer in zip(self.layers[:-1], self.layers[1:]):
            layer.input_dimensions = previous.output_dimensions
        # Each delta has the shape of its layer's input, so the final layer's
        # output is excluded from the input total.
        self.total_input_size = input_size + sum(
            layer.output_size() for layer in self.layers[:-1]
        )
        self.total_output_size = sum(layer.output_size() for layer in self.layers)
        self._dims_resolved = True

        if self.store.allocated:
            required = self.store.total_weight_size(self.layers)
            if required != self.store.parameters.size:
                raise SizeMismatch(
                    f"input dimensions {self._input_dimensions} require {required} "
                    f"parameters, buffer holds {self.store.parameters.size}; "
                    "reset the parameters first"
                )
            self.store.dirty = True

    def ensure_parameters(self, input_rows: int | None = None) -> None:
        self.resolve_dimensions(input_rows)
        self.store.ensure_allocated(self.layers)
        self.store.ensure_views(self.layers)

    def initialize_weights(self, input_rows: int | None = None) -> None:
        """Reallocate the parameter buffer and apply the initialization rule."""

        self.resolve_dimensions(input_rows)
        self.store.initialize(self.layers)

    def loss(self) -> float:
        return float(sum(layer.loss() for layer in self.layers))

    # ------------------------------------------------------------------
    # Arenas

    @property
    def output_arena(self) -> Arena:
        return self._outputs

    @property
    def delta_arena(self) -> Arena:
        return self._deltas

    def reset_arenas(self) -> None:
        self._outputs.clear()
        self._deltas.clear()
        self._gradients.clear()
        self.layer_outputs = []
        self.layer_deltas = []
        self.layer_gradients = []
        self._batch_size = None
        self._forward_range = None
        self._backward_range = None
        self._last_output = None

    def _issue_output_views(self, batch: int) -> None:
        self._outputs.reserve(batch * self.total_output_size)
        offset = 0
        views = []
        for layer in self.layers:
            size = layer.output_size()
            views.append(self._outputs.view(offset, size, batch))
            offset += size * batch
        self.layer_outputs = views

    def _issue_delta_views(self, batch: int) -> None:
        self._deltas.reserve(batch * self.total_input_size)
        offset = 0
        views = []
        for layer in self.layers:
            size = layer.input_size()
            views.append(self._deltas.view(offset, size, batch))
            offset += size * batch
        self.layer_deltas = views

    def _output_of(self, index: int) -> Array:
        if self._forward_range is not None and index == self._forward_range[1]:
            return self._last_output
        return self.layer_outputs[index].array

    def _check_range(self, begin: int, end: int) -> None:
        if not self.layers:
            raise OutOfRange("cannot run a pass over an empty network")
        if begin < 0 or end >= len(self.layers):
            raise OutOfRange(
                f"layer range [{begin}, {end}] outside a network of {len(self.layers)} layers"
            )

    # ------------------------------------------------------------------
    # Passes

    def forward(
        self,
        inputs: Array,
        results: Array | None = None,
        begin: int = 0,
        end: int | None = None,
    ) -> Array | None:
        """Run layers ``[begin, end]`` over ``inputs``.

        The last layer writes into ``results`` when given, otherwise into its
        own output view.  Returns the array holding the result, or ``None``
        when ``end < begin``.
        """

        if not self.layers:
            raise OutOfRange("cannot run a pass over an empty network")
        if end is None:
            end = len(self.layers) - 1
        if end < begin:
            return None
        self._check_range(begin, end)

        inputs = as_columns(inputs)
        if inputs.ndim != 2:
            raise ShapeMismatch(f"inputs must be (features, samples), got shape {inputs.shape}")
        batch = inputs.shape[1]

        if begin == 0:
            self.resolve_dimensions(inputs.shape[0])
        elif not self._dims_resolved:
            raise ShapeMismatch("run a full forward pass before a partial one")
        elif inputs.shape[0] != self.layers[begin].input_size():
            raise ShapeMismatch(
                f"layer {begin} expects {self.layers[begin].input_size()} input rows, "
                f"got {inputs.shape[0]}"
            )
        self.store.ensure_allocated(self.layers)
        self.store.ensure_views(self.layers)

        expected = (self.layers[end].output_size(), batch)
        if results is not None and results.shape != expected:
            raise ShapeMismatch(f"results must have shape {expected}, got {results.shape}")

        self._issue_output_views(batch)
        if results is None:
            results = self.layer_outputs[end].array

        layers = self.layers
        outputs = self.layer_outputs
        if end > begin:
            layers[begin].forward(inputs, outputs[begin].array)
            for i in range(begin + 1, end):
                layers[i].forward(outputs[i - 1].array, outputs[i].array)
            layers[end].forward(outputs[end - 1].array, results)
        else:
            layers[end].forward(inputs, results)

        self._batch_size = batch
        self._forward_range = (begin, end)
        self._backward_range = None
        self._last_output = results
        return results

    def backward(self, error: Array, begin: int = 0, end: int | None = None) -> None:
        """Propagate ``error`` (dL/d output of layer ``end``) back to ``begin``."""

        if end is None:
            end = len(self.layers) - 1
        self._check_range(begin, end)
        if end < begin:
            raise OutOfRange(f"empty layer range [{begin}, {end}]")
        if (
            self._forward_range is None
            or self._forward_range[0] > begin
            or self._forward_range[1] < end
        ):
            raise OutOfRange(
                f"backward over [{begin}, {end}] needs a forward pass covering those layers"
            )

        batch = self._batch_size
        error = np.asarray(error, dtype=np.float64)
        expected = (self.layers[end].output_size(), batch)
        if error.shape != expected:
            raise ShapeMismatch(f"error must have shape {expected}, got {error.shape}")

        self._issue_delta_views(batch)
        layers = self.layers
        deltas = self.layer_deltas
        layers[end].backward(self._output_of(end), error, deltas[end].array)
        for i in range(end - 1, begin - 1, -1):
            layers[i].backward(self._output_of(i), deltas[i + 1].array, deltas[i].array)
        self._backward_range = (begin, end)

    def gradient(self, inputs: Array, error: Array, gradient: Array) -> None:
        """Overwrite ``gradient`` with dL/d(parameters) for the last batch."""

        n_layers = len(self.layers)
        self._check_range(0, n_layers - 1)
        if self._backward_range != (0, n_layers - 1):
            raise OutOfRange("gradient needs a full backward pass for the same batch")
        if gradient.size != self.store.parameters.size:
            raise SizeMismatch(
                f"gradient holds {gradient.size} elements, parameters hold "
                f"{self.store.parameters.size}"
            )
        batch = self._batch_size
        inputs = as_columns(inputs)
        if inputs.shape != (self.layers[0].input_size(), batch):
            raise ShapeMismatch(f"inputs of shape {inputs.shape} do not match the last batch")
        error = np.asarray(error, dtype=np.float64)
        if error.shape != (self.layers[-1].output_size(), batch):
            raise ShapeMismatch(f"error of shape {error.shape} does not match the last batch")

        self._gradients.adopt(gradient)
        self._gradients.buffer[...] = 0.0
        self.layer_gradients = self.store.gradient_views(self._gradients)
        grads = self.layer_gradients
        layers = self.layers
        deltas = self.layer_deltas

        if n_layers == 1:
            layers[0].gradient(inputs, error, grads[0].array)
            return
        layers[0].gradient(inputs, deltas[1].array, grads[0].array)
        for i in range(1, n_layers - 1):
            layers[i].gradient(
                self._output_of(i - 1), deltas[i + 1].array, grads[i].array
            )
        layers[-1].gradient(self._output_of(n_layers - 2), error, grads[-1].array)

    # ------------------------------------------------------------------
    # Copy

    def clone(self) -> "NetworkPipeline":
        """Deep copy with independent layers, parameters and arenas."""

        other = NetworkPipeline(input_dimensions=self._input_dimensions)
        other.store = self.store.copy()
        other.layers = [layer.clone() for layer in self.layers]
        other._mode = self._mode
        other.broadcast_mode()
        if other.layers and other._input_dimensions:
            other.resolve_dimensions()
        if other.store.allocated:
            other.store.assign_views(other.layers)
        return other

    __copy__ = clone

    def __deepcopy__(self, memo) -> "NetworkPipeline":
        return self.clone()

    def __repr__(self) -> str:
        inner = ", ".join(repr(layer) for layer in self.layers)
        return f"NetworkPipeline([{inner}], input_dimensions={self._input_dimensions})"


__all__ = ["NetworkPipeline"]

"""The flat parameter buffer shared by every layer of a pipeline."""

from __future__ import annotations

import copy
import logging
from typing import List, Sequence

import numpy as np

from .errors import SizeMismatch
from .init_rules import GaussianInitialization, InitializationRule
from .layers import Layer
from .types import Array
from .views import Arena, LayerView

LOGGER = logging.getLogger(__name__)


class ParameterStore:
    """Own one contiguous weight buffer and hand out per-layer views.

    Views are assigned in layer order, back to back, and cover the whole
    buffer.  They are rebuilt whenever the buffer moves or the layer list
    changes; :attr:`dirty` records that a reassignment is pending.
    """

    def __init__(self, rule: InitializationRule | None = None) -> None:
        self.rule = rule if rule is not None else GaussianInitialization()
        self.initialized = False
        self.dirty = True
        self._arena = Arena("parameters")
        self._allocated = False
        self._views: List[LayerView] = []

    @property
    def parameters(self) -> Array:
        return self._arena.buffer

    @property
    def allocated(self) -> bool:
        return self._allocated

    @property
    def views(self) -> List[LayerView]:
        return list(self._views)

    @staticmethod
    def total_weight_size(layers: Sequence[Layer]) -> int:
        return int(sum(layer.weight_size() for layer in layers))

    def ensure_allocated(self, layers: Sequence[Layer]) -> bool:
        """Allocate and initialize the buffer on first use."""

        if self._allocated:
            return False
        self.initialize(layers)
        return True

    def initialize(self, layers: Sequence[Layer]) -> None:
        """(Re)allocate the buffer and fill it with the initialization rule."""

        total = self.total_weight_size(layers)
        self._arena.clear()
        self._arena.reserve(total)
        self._allocated = True
        self.dirty = True
        self.assign_views(layers)
        for view in self._views:
            if view.size:
                self.rule.initialize(view.array[:, 0])
        self.initialized = True
        LOGGER.debug("initialized %d parameters across %d layers", total, len(layers))

    def load(self, layers: Sequence[Layer], parameters: Array) -> None:
        """Adopt ``parameters`` (copied) as the buffer for ``layers``."""

        total = self.total_weight_size(layers)
        parameters = np.asarray(parameters, dtype=np.float64).reshape(-1)
        if parameters.size != total:
            raise SizeMismatch(
                f"parameter buffer holds {parameters.size} elements, "
                f"layers require {total}"
            )
        self._arena.clear()
        self._arena.reserve(total)
        self._arena.buffer[...] = parameters
        self._allocated = True
        self.initialized = True
        self.dirty = True
        self.assign_views(layers)

    def assign_views(self, layers: Sequence[Layer]) -> None:
        capacity = self._arena.capacity
        offset = 0
        views: List[LayerView] = []
        for index, layer in enumerate(layers):
            size = layer.weight_size()
            if offset + size > capacity:
                raise SizeMismatch(
                    f"layer {index} ({layer.kind}) needs weights past the end of "
                    f"the parameter buffer ({offset + size} > {capacity})"
                )
            view = self._arena.view(offset, size, 1)
            layer.set_weights(view)
            views.append(view)
            offset += size
        if offset != capacity:
            raise SizeMismatch(
                f"total layer weight size {offset} does not match parameter size {capacity}"
            )
        self._views = views
        self.dirty = False

    def ensure_views(self, layers: Sequence[Layer]) -> None:
        if self.dirty or any(view.stale for view in self._views):
            self.assign_views(layers)

    def gradient_views(self, arena: Arena) -> List[LayerView]:
        """Issue views into ``arena`` with exactly the weight-view layout."""

        return [arena.view(view.offset, view.rows, view.cols) for view in self._views]

    def reset(self) -> None:
        """Drop the buffer; the next pass reallocates and reinitializes it."""

        self._arena.clear()
        self._allocated = False
        self.initialized = False
        self._views = []
        self.dirty = True

    def copy(self) -> "ParameterStore":
        """Independent store with a copied buffer and no views assigned yet."""

        other = ParameterStore(copy.deepcopy(self.rule))
        other.initialized = self.initialized
        if self._allocated:
            other._arena.reserve(self._arena.capacity)
            other._arena.buffer[...] = self._arena.buffer
            other._allocated = True
        return other


__all__ = ["ParameterStore"]

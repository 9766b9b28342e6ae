"""Owning arenas and the non-owning views handed out to layers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from .errors import ShapeMismatch
from .types import Array

LOGGER = logging.getLogger(__name__)

SHRINK_RATIO = 0.1


class Arena:
    """One contiguous buffer shared by every view issued against it.

    The arena either owns its buffer (allocated by :meth:`reserve`) or aliases
    memory supplied from outside (:meth:`adopt`).  Each reallocation bumps
    :attr:`generation`; views stamped with an older generation are stale and
    must be reissued before use.
    """

    def __init__(
        self,
        name: str = "arena",
        *,
        shrink_ratio: float = SHRINK_RATIO,
        dtype: np.dtype = np.float64,
    ) -> None:
        self.name = name
        self.shrink_ratio = shrink_ratio
        self.dtype = np.dtype(dtype)
        self._buffer: Array = np.zeros(0, dtype=self.dtype)
        self._source: Array | None = None
        self._generation = 0

    @property
    def buffer(self) -> Array:
        return self._buffer

    @property
    def capacity(self) -> int:
        return int(self._buffer.size)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def owned(self) -> bool:
        return self._source is None

    def reserve(self, size: int) -> bool:
        """Make room for ``size`` elements; return ``True`` if the buffer moved.

        Grows when ``size`` exceeds the capacity and shrinks only when
        ``size`` drops below ``floor(shrink_ratio * capacity)``.  Anything in
        between reuses the existing allocation.
        """

        size = int(size)
        capacity = self.capacity
        if (
            self.owned
            and size <= capacity
            and size >= math.floor(self.shrink_ratio * capacity)
        ):
            return False
        LOGGER.debug("%s: reallocating %d -> %d elements", self.name, capacity, size)
        self._buffer = np.zeros(size, dtype=self.dtype)
        self._source = None
        self._generation += 1
        return True

    def adopt(self, buffer: Array) -> None:
        """Alias ``buffer`` without copying it."""

        if buffer is self._source:
            return
        flat = buffer.reshape(-1, order="A")
        if flat.size and not np.shares_memory(flat, buffer):
            raise ShapeMismatch(f"{self.name}: external buffer must be contiguous")
        self._buffer = flat
        self._source = buffer
        self._generation += 1

    def clear(self) -> None:
        self._buffer = np.zeros(0, dtype=self.dtype)
        self._source = None
        self._generation += 1

    def view(self, offset: int, rows: int, cols: int) -> "LayerView":
        end = offset + rows * cols
        if offset < 0 or end > self.capacity:
            raise AssertionError(
                f"{self.name}: view [{offset}, {end}) lies outside a buffer of "
                f"{self.capacity} elements"
            )
        return LayerView(self, int(offset), int(rows), int(cols), self._generation)

    def __repr__(self) -> str:
        return (
            f"Arena(name={self.name!r}, capacity={self.capacity}, "
            f"generation={self._generation}, owned={self.owned})"
        )


@dataclass(frozen=True, eq=False)
class LayerView:
    """Non-owning ``(offset, rows, cols)`` window into an :class:`Arena`."""

    arena: Arena = field(repr=False)
    offset: int
    rows: int
    cols: int
    generation: int

    @property
    def size(self) -> int:
        return self.rows * self.cols

    @property
    def stale(self) -> bool:
        return self.generation != self.arena.generation

    @property
    def array(self) -> Array:
        """Column-major numpy view of the window; never a copy."""

        if self.stale:
            raise AssertionError(
                f"stale view into {self.arena.name}: issued at generation "
                f"{self.generation}, arena is at {self.arena.generation}"
            )
        flat = self.arena.buffer[self.offset : self.offset + self.size]
        return flat.reshape((self.rows, self.cols), order="F")


__all__ = ["Arena", "LayerView", "SHRINK_RATIO"]

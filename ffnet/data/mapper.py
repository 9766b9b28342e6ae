"""Bidirectional string/number mapping for categorical dataset columns.

Each dimension starts out numeric.  The first time a value in a dimension
fails to parse as a number during :meth:`DatasetMapper.map_first_pass`, that
dimension becomes categorical and every distinct string seen in it is given
the next integer code (increment policy).  Mappings are per dimension and
codes start at zero.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping


class Datatype(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


def _is_numeric(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


class DatasetMapper:
    """Per-dimension datatype plus string <-> code tables."""

    def __init__(self, dimensionality: int = 0) -> None:
        self._types: List[Datatype] = [Datatype.NUMERIC] * int(dimensionality)
        self._forward: Dict[int, Dict[str, float]] = {}
        self._reverse: Dict[int, Dict[float, List[str]]] = {}

    @property
    def dimensionality(self) -> int:
        return len(self._types)

    def _check_dimension(self, dimension: int) -> None:
        if not 0 <= dimension < len(self._types):
            raise IndexError(
                f"dimension {dimension} out of range for mapper with "
                f"{len(self._types)} dimensions"
            )

    def type(self, dimension: int) -> Datatype:
        self._check_dimension(dimension)
        return self._types[dimension]

    def set_type(self, dimension: int, datatype: Datatype | str) -> None:
        self._check_dimension(dimension)
        self._types[dimension] = Datatype(datatype)

    # ------------------------------------------------------------------
    # Mapping

    def map_first_pass(self, value: str, dimension: int) -> None:
        """Inspect ``value`` and switch ``dimension`` to categorical if needed."""

        self._check_dimension(dimension)
        if self._types[dimension] is Datatype.NUMERIC and _is_numeric(value):
            return
        self._types[dimension] = Datatype.CATEGORICAL
        self.map_string(value, dimension)

    def map_string(self, value: str, dimension: int) -> float:
        """Return the code of ``value``; numeric dimensions parse it instead."""

        self._check_dimension(dimension)
        if self._types[dimension] is Datatype.NUMERIC:
            return float(value)
        table = self._forward.setdefault(dimension, {})
        if value not in table:
            code = float(len(table))
            table[value] = code
            self._reverse.setdefault(dimension, {}).setdefault(code, []).append(value)
        return table[value]

    def unmap_string(self, value: float, dimension: int, index: int = 0) -> str:
        """Return the ``index``-th string mapped to ``value`` in ``dimension``."""

        self._check_dimension(dimension)
        strings = self._reverse.get(dimension, {}).get(float(value))
        if strings is None:
            raise KeyError(f"value {value} is not mapped in dimension {dimension}")
        if not 0 <= index < len(strings):
            raise IndexError(
                f"value {value} in dimension {dimension} has only "
                f"{len(strings)} unmappings"
            )
        return strings[index]

    def unmap_value(self, value: str, dimension: int) -> float:
        self._check_dimension(dimension)
        try:
            return self._forward.get(dimension, {})[value]
        except KeyError:
            raise KeyError(
                f"string {value!r} is not mapped in dimension {dimension}"
            ) from None

    def num_mappings(self, dimension: int) -> int:
        self._check_dimension(dimension)
        return len(self._forward.get(dimension, {}))

    def num_unmappings(self, value: float, dimension: int) -> int:
        self._check_dimension(dimension)
        return len(self._reverse.get(dimension, {}).get(float(value), ()))

    # ------------------------------------------------------------------
    # Persistence

    def to_dict(self) -> Dict[str, object]:
        """JSON-ready state: per-dimension types plus the string -> code tables."""

        return {
            "types": [t.value for t in self._types],
            "mappings": {
                str(dim): dict(table) for dim, table in sorted(self._forward.items())
            },
        }

    @classmethod
    def from_dict(cls, state: Mapping[str, object]) -> "DatasetMapper":
        types = list(state["types"])
        mapper = cls(len(types))
        for dim, datatype in enumerate(types):
            mapper.set_type(dim, datatype)
        for key, table in state.get("mappings", {}).items():
            dim = int(key)
            mapper._check_dimension(dim)
            for value, code in sorted(table.items(), key=lambda item: item[1]):
                code = float(code)
                mapper._forward.setdefault(dim, {})[value] = code
                mapper._reverse.setdefault(dim, {}).setdefault(code, []).append(value)
        return mapper

    def __repr__(self) -> str:
        kinds = ", ".join(t.value for t in self._types)
        return f"DatasetMapper([{kinds}])"


__all__ = ["Datatype", "DatasetMapper"]

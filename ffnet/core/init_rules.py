"""Weight-initialization rules.

A rule fills one layer's flat weight view in place.  Rules are registered by
``kind`` so that a persisted network can name the rule it was built with.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, Dict, Mapping, Protocol, Type

import numpy as np

from .types import Array


class InitializationRule(Protocol):
    kind: str

    def initialize(self, weights: Array) -> None:
        """Fill ``weights`` in place."""

    def config(self) -> Dict[str, object]:
        """Constructor options, used for persistence."""


_RULES: Dict[str, Type] = {}


def register_rule(kind: str) -> Callable[[Type], Type]:
    def decorator(cls: Type) -> Type:
        cls.kind = kind
        _RULES[kind] = cls
        return cls

    return decorator


def build_rule(spec: Mapping[str, object] | str) -> InitializationRule:
    """Instantiate a rule from ``"kind"`` or ``{"kind": ..., **options}``."""

    if isinstance(spec, str):
        spec = {"kind": spec}
    options = dict(spec)
    kind = str(options.pop("kind"))
    if kind not in _RULES:
        available = ", ".join(sorted(_RULES))
        raise KeyError(f"Unknown initialization rule {kind!r}. Available rules: {available}")
    return _RULES[kind](**options)


def rule_config(rule: InitializationRule) -> Dict[str, object]:
    return {"kind": rule.kind, **rule.config()}


class _SeededRule:
    seed: int | None

    def __post_init__(self) -> None:
        self._rng = np.random.default_rng(self.seed)

    def config(self) -> Dict[str, object]:
        return asdict(self)


@register_rule("gaussian")
@dataclass
class GaussianInitialization(_SeededRule):
    """Draw weights from ``N(mean, std**2)``."""

    mean: float = 0.0
    std: float = 0.05
    seed: int | None = None

    def initialize(self, weights: Array) -> None:
        weights[...] = self._rng.normal(self.mean, self.std, size=weights.shape)


@register_rule("uniform")
@dataclass
class RandomInitialization(_SeededRule):
    """Draw weights uniformly from ``[low, high)``."""

    low: float = -1.0
    high: float = 1.0
    seed: int | None = None

    def initialize(self, weights: Array) -> None:
        weights[...] = self._rng.uniform(self.low, self.high, size=weights.shape)


@register_rule("const")
@dataclass
class ConstInitialization:
    """Fill every weight with ``value``."""

    value: float = 0.0

    def initialize(self, weights: Array) -> None:
        weights[...] = self.value

    def config(self) -> Dict[str, object]:
        return asdict(self)


__all__ = [
    "InitializationRule",
    "GaussianInitialization",
    "RandomInitialization",
    "ConstInitialization",
    "build_rule",
    "register_rule",
    "rule_config",
]

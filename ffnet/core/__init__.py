"""Core numerical primitives for ffnet."""

from . import activations, errors, init_rules, layers, types, views

__all__ = ["activations", "errors", "init_rules", "layers", "types", "views"]

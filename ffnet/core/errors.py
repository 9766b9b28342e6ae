"""Exception taxonomy for the network engine."""

from __future__ import annotations


class FFNetError(Exception):
    """Base class for errors raised by ffnet."""


class ShapeMismatch(FFNetError, ValueError):
    """Declared and actual dimensions or element counts disagree."""


class SizeMismatch(FFNetError, ValueError):
    """A parameter or gradient buffer disagrees with the layers' requirements."""


class OutOfRange(FFNetError, IndexError):
    """A pass was requested over an empty or malformed layer range."""


__all__ = ["FFNetError", "ShapeMismatch", "SizeMismatch", "OutOfRange"]

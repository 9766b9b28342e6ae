"""Helpers shared by dataset loaders.  Matrices are ``(features, samples)``."""

from __future__ import annotations

import random
from dataclasses import dataclass

import numpy as np


def seed_everything(seed: int) -> np.random.Generator:
    """Seed Python and NumPy RNGs and return a generator."""

    random.seed(seed)
    np.random.seed(seed % (2**32 - 1))
    return np.random.default_rng(seed)


@dataclass(frozen=True)
class SplitIndices:
    """Column indices of the train and test partitions."""

    train: np.ndarray
    test: np.ndarray


def holdout_split(n_samples: int, *, test_split: float = 0.2, seed: int = 0) -> SplitIndices:
    """Deterministically shuffle ``n_samples`` columns into train/test."""

    if not 0 <= test_split < 1:
        raise ValueError("test_split must be in [0, 1)")
    rng = np.random.default_rng(seed)
    indices = np.arange(n_samples)
    rng.shuffle(indices)

    test_size = int(round(n_samples * test_split))
    # Keep one held-out column whenever a test split is requested
    test_size = min(max(test_size, 1 if test_split > 0 else 0), n_samples)
    if n_samples - test_size <= 0:
        raise ValueError("Not enough samples for the requested split")
    return SplitIndices(train=indices[test_size:], test=indices[:test_size])


def standardize(
    array: np.ndarray,
    *,
    mean: np.ndarray | None = None,
    std: np.ndarray | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Scale every row to zero mean / unit variance across samples."""

    if mean is None or std is None:
        mean = array.mean(axis=1, keepdims=True)
        std = array.std(axis=1, keepdims=True)
        std = np.where(std == 0, 1.0, std)
    return (array - mean) / std, mean, std


__all__ = ["SplitIndices", "holdout_split", "seed_everything", "standardize"]

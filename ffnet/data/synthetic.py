"""Pure in-memory synthetic datasets."""

from __future__ import annotations

import numpy as np

from .registry import Dataset, register_dataset
from .utils import holdout_split


def synthetic_regression(
    freq: int = 3, n_points: int = 512, seed: int = 0, noise: float = 0.05
) -> tuple[np.ndarray, np.ndarray]:
    """Noisy ``sin(freq * pi * x)`` on ``[-1, 1]`` as two ``(1, n_points)`` rows."""

    rng = np.random.default_rng(seed)
    x = np.linspace(-1.0, 1.0, n_points).reshape(1, -1)
    y = np.sin(freq * np.pi * x) + noise * rng.standard_normal(size=x.shape)
    return x, y


@register_dataset("synthetic")
def _factory(
    freq: int = 3,
    n_points: int = 512,
    seed: int = 0,
    noise: float = 0.05,
    test_split: float = 0.2,
) -> Dataset:
    x, y = synthetic_regression(freq=freq, n_points=n_points, seed=seed, noise=noise)
    splits = holdout_split(n_points, test_split=test_split, seed=seed)
    return Dataset(
        name="synthetic",
        predictors=x[:, splits.train],
        responses=y[:, splits.train],
        test_predictors=x[:, splits.test],
        test_responses=y[:, splits.test],
        provenance={
            "type": "synthetic",
            "freq": freq,
            "n_points": n_points,
            "seed": seed,
            "noise": noise,
            "test_split": test_split,
        },
    )


__all__ = ["synthetic_regression"]

"""Dataset registry.

Datasets are column-major: ``predictors`` has one column per sample, and so
do ``responses``.  Factories are registered by name and return a
:class:`Dataset` with a train/test holdout already applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, MutableMapping

import numpy as np

TASK_TYPES = {"regression", "multiclass", "binary"}


@dataclass(frozen=True)
class Dataset:
    """Train/test matrices plus the metadata needed to reproduce them."""

    name: str
    predictors: np.ndarray
    responses: np.ndarray
    test_predictors: np.ndarray
    test_responses: np.ndarray
    task_type: str = "regression"
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def d_in(self) -> int:
        return int(self.predictors.shape[0])

    @property
    def d_out(self) -> int:
        return int(self.responses.shape[0])


DatasetFactory = Callable[..., Dataset]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a dataset factory, as a decorator or directly."""

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(name: str, **options: Any) -> Dataset:
    if name not in _REGISTRY:
        available = ", ".join(available_datasets())
        raise KeyError(f"Unknown dataset {name!r}. Available datasets: {available}")
    dataset = _REGISTRY[name](**options)
    _validate(dataset)
    return dataset


def available_datasets() -> Iterable[str]:
    return sorted(_REGISTRY)


def _validate(dataset: Dataset) -> None:
    if dataset.task_type not in TASK_TYPES:
        raise ValueError(f"Invalid task type: {dataset.task_type}")
    if dataset.predictors.shape[1] != dataset.responses.shape[1]:
        raise ValueError("predictors and responses must have the same number of columns")
    if dataset.test_predictors.shape[1] != dataset.test_responses.shape[1]:
        raise ValueError(
            "test predictors and responses must have the same number of columns"
        )


__all__ = ["Dataset", "available_datasets", "get_dataset", "register_dataset"]

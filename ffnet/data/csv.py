"""CSV loading for regression and classification datasets."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

from .mapper import DatasetMapper
from .registry import Dataset, register_dataset
from .utils import holdout_split, standardize


@dataclass
class CsvTable:
    """A CSV file mapped to a ``(features, samples)`` matrix."""

    matrix: np.ndarray
    targets: np.ndarray | None
    mapper: DatasetMapper
    columns: List[str]


def load_csv(
    path: str | Path,
    *,
    target_col: str | None = None,
    mapper: DatasetMapper | None = None,
) -> CsvTable:
    """Read ``path``; non-numeric feature columns become categorical codes.

    A fresh mapper is built with one dimension per feature column.  When a
    mapper is passed in (for example the one returned while loading the
    training file) its existing codes are reused and new strings extend them.
    """

    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    targets = None
    if target_col is not None:
        if target_col not in frame.columns:
            raise KeyError(f"Target column {target_col!r} not found in CSV")
        targets = frame.pop(target_col).to_numpy()

    columns = [str(name) for name in frame.columns]
    if mapper is None:
        mapper = DatasetMapper(len(columns))
        for dim, name in enumerate(columns):
            for value in frame[name]:
                mapper.map_first_pass(value.strip(), dim)
    elif mapper.dimensionality != len(columns):
        raise ValueError(
            f"mapper has {mapper.dimensionality} dimensions, CSV has {len(columns)} "
            "feature columns"
        )

    matrix = np.empty((len(columns), len(frame)), dtype=np.float64, order="F")
    for dim, name in enumerate(columns):
        matrix[dim] = [mapper.map_string(value.strip(), dim) for value in frame[name]]
    return CsvTable(matrix=matrix, targets=targets, mapper=mapper, columns=columns)


def encode_labels(labels: Sequence[object]) -> tuple[np.ndarray, np.ndarray]:
    """One-hot encode ``labels`` as ``(classes, samples)``; also return the classes."""

    encoder = LabelEncoder()
    codes = encoder.fit_transform(np.asarray(labels))
    num_classes = len(encoder.classes_)
    return np.eye(num_classes)[:, codes], encoder.classes_


@register_dataset("csv")
def load_csv_dataset(
    *,
    csv_path: str | Path,
    target_col: str = "target",
    task: str = "regression",
    test_split: float = 0.2,
    seed: int = 0,
    standardize_inputs: bool = True,
) -> Dataset:
    table = load_csv(csv_path, target_col=target_col)
    X = table.matrix
    normalization = {}
    if standardize_inputs:
        X, mean, std = standardize(X)
        normalization = {"mean": mean.ravel().tolist(), "std": std.ravel().tolist()}

    if task == "classification":
        y, classes = encode_labels(table.targets)
        task_type = "multiclass"
        extra = {"classes": [str(c) for c in classes]}
    elif task == "regression":
        y = np.asarray(table.targets, dtype=np.float64).reshape(1, -1)
        task_type = "regression"
        extra = {}
    else:
        raise ValueError(f"Unknown CSV task: {task!r}")

    splits = holdout_split(X.shape[1], test_split=test_split, seed=seed)
    provenance = {
        "path": str(csv_path),
        "target_col": target_col,
        "test_split": test_split,
        "seed": seed,
        "normalization": normalization,
        "columns": table.columns,
        "mapper": table.mapper.to_dict(),
        **extra,
    }
    return Dataset(
        name="csv",
        predictors=X[:, splits.train],
        responses=y[:, splits.train],
        test_predictors=X[:, splits.test],
        test_responses=y[:, splits.test],
        task_type=task_type,
        provenance=provenance,
    )


__all__ = ["CsvTable", "encode_labels", "load_csv", "load_csv_dataset"]

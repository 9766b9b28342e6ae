"""Dataset registry, mappers and loaders."""

# Ensure built-in datasets register themselves when the package is imported.
from . import csv as _csv  # noqa: F401
from . import synthetic as _synthetic  # noqa: F401
from .csv import CsvTable, encode_labels, load_csv
from .mapper import DatasetMapper, Datatype
from .registry import Dataset, available_datasets, get_dataset, register_dataset
from .synthetic import synthetic_regression

__all__ = [
    "CsvTable",
    "Dataset",
    "DatasetMapper",
    "Datatype",
    "available_datasets",
    "encode_labels",
    "get_dataset",
    "load_csv",
    "register_dataset",
    "synthetic_regression",
]

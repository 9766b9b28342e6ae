"""Command line entry point for training and running ffnet networks."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

from ffnet.data.csv import load_csv
from ffnet.data.mapper import DatasetMapper
from ffnet.data.utils import standardize
from ffnet.serialization import load, load_metadata
from ffnet.training import pipelines


def _format_result(result) -> str:
    payload = {
        "final_objective": result.final_objective,
        "metrics": result.metrics_path,
        "test_metrics": result.test_metrics,
    }
    if result.model_path:
        payload["model"] = result.model_path
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="synthetic-sgd",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Write a loss curve to the run directory"
    )
    parser.add_argument("--csv-path", help="Train on a CSV file instead of the preset data")
    parser.add_argument("--target-col", default="target", help="Target column of --csv-path")
    parser.add_argument(
        "--task",
        choices=["regression", "classification"],
        default="regression",
        help="Task type of --csv-path",
    )
    parser.add_argument("--seed", type=int, help="Seed used for dataset splits and training")
    parser.add_argument("--run-dir", type=Path, help="Directory for metrics and the model")
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    parser.add_argument(
        "--predict", type=Path, metavar="MODEL", help="Run a saved model instead of training"
    )
    parser.add_argument("--input", type=Path, help="CSV of samples for --predict")
    parser.add_argument("--output", type=Path, help="Write --predict results here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    return parser.parse_args(argv)


def _encode_inputs(path: Path, metadata: dict) -> np.ndarray:
    """Encode a prediction CSV the way the model's training data was encoded."""

    columns = list(pd.read_csv(path, nrows=0).columns)
    target_col = metadata.get("target_col")
    if target_col not in columns:
        target_col = None
    mapper = None
    if "mapper" in metadata:
        mapper = DatasetMapper.from_dict(metadata["mapper"])
    expected = metadata.get("columns")
    features = [name for name in columns if name != target_col]
    if expected is not None and features != list(expected):
        raise SystemExit(
            f"--input columns {features} do not match the training columns {expected}"
        )

    matrix = load_csv(path, target_col=target_col, mapper=mapper).matrix
    normalization = metadata.get("normalization") or {}
    if normalization:
        mean = np.asarray(normalization["mean"], dtype=np.float64).reshape(-1, 1)
        std = np.asarray(normalization["std"], dtype=np.float64).reshape(-1, 1)
        matrix, _, _ = standardize(matrix, mean=mean, std=std)
    return matrix


def _predict(args: argparse.Namespace) -> None:
    if args.input is None:
        raise SystemExit("--predict requires --input")
    session = load(args.predict)
    predictions = session.predict(_encode_inputs(args.input, load_metadata(args.predict)))
    frame = pd.DataFrame(
        predictions.T, columns=[f"output_{i}" for i in range(predictions.shape[0])]
    )
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(args.output, index=False)
    else:
        frame.to_csv(sys.stdout, index=False)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    if args.predict is not None:
        _predict(args)
        return

    config = pipelines.load_preset(args.preset)
    if args.config:
        config = pipelines.load_config(args.config, base=config)

    if args.enable_plots:
        config["train"]["enable_plots"] = True

    if args.csv_path:
        config["data"] = {
            "name": "csv",
            "options": {
                "csv_path": args.csv_path,
                "target_col": args.target_col,
                "task": args.task,
            },
        }

    if args.seed is not None:
        config["train"]["seed"] = int(args.seed)
        config["data"].setdefault("options", {})["seed"] = int(args.seed)
    if args.run_dir is not None:
        config["train"]["run_dir"] = str(args.run_dir)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    result = pipelines.run_pipeline(config)
    print(_format_result(result))


if __name__ == "__main__":
    main()

"""Config-driven assembly of datasets, networks and optimizers."""

from __future__ import annotations

import json
import logging
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, Mapping

from ..core.init_rules import build_rule
from ..core.layers import build_layer
from ..core.types import RunResult
from ..data import registry
from ..data.utils import seed_everything
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from .losses import REGISTRY as LOSS_REGISTRY
from .metrics import compute_metrics, default_metrics
from .optimizers import build_optimizer
from .session import TrainingSession

LOGGER = logging.getLogger(__name__)

_REQUIRED_SECTIONS = {"data", "model", "optimizer", "train"}

_PRESETS: Dict[str, Mapping[str, object]] = {
    "synthetic-sgd": {
        "data": {
            "name": "synthetic",
            "options": {"freq": 1, "n_points": 128, "seed": 0},
        },
        "model": {
            "layers": [
                {"kind": "linear", "out_size": 16},
                {"kind": "tanh"},
                {"kind": "linear", "out_size": 1},
            ],
            "loss": "mse",
            "init": {"kind": "gaussian", "std": 0.5, "seed": 0},
        },
        "optimizer": {
            "name": "sgd",
            "step_size": 0.05,
            "batch_size": 8,
            "momentum": 0.9,
            "max_iterations": 102 * 200,
            "tolerance": 1e-7,
            "seed": 0,
        },
        "train": {
            "seed": 7,
            "run_dir": "runs/synthetic-sgd",
            "enable_plots": False,
            "save_model": True,
        },
    },
    "synthetic-adam": {
        "data": {
            "name": "synthetic",
            "options": {"freq": 2, "n_points": 256, "seed": 0},
        },
        "model": {
            "layers": [
                {"kind": "linear", "out_size": 32},
                {"kind": "tanh"},
                {"kind": "linear", "out_size": 32},
                {"kind": "tanh"},
                {"kind": "linear", "out_size": 1},
            ],
            "loss": "mse",
            "init": {"kind": "gaussian", "std": 0.3, "seed": 1},
        },
        "optimizer": {
            "name": "adam",
            "step_size": 0.01,
            "batch_size": 16,
            "max_iterations": 205 * 300,
            "tolerance": 1e-7,
            "seed": 1,
        },
        "train": {
            "seed": 42,
            "run_dir": "runs/synthetic-adam",
            "enable_plots": False,
            "save_model": True,
        },
    },
}


def _read_config_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load config files in YAML format") from exc
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def load_config(
    path: str | Path, base: Mapping[str, object] | None = None
) -> Dict[str, object]:
    """Read a JSON or YAML run config overlaid on ``base``.

    ``base`` defaults to the ``synthetic-sgd`` preset so that partial files
    still describe a complete run.
    """

    if base is None:
        base = load_preset("synthetic-sgd")
    return merge_config(base, _read_config_file(Path(path)))


def merge_config(base: Mapping[str, object], override: Mapping[str, object]) -> Dict[str, object]:
    """Recursively overlay ``override`` onto a copy of ``base``."""

    merged = deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str) -> Dict[str, object]:
    try:
        return deepcopy(dict(_PRESETS[name]))
    except KeyError as exc:
        available = ", ".join(sorted(_PRESETS))
        raise KeyError(f"Unknown preset {name!r}. Available presets: {available}") from exc


def build_session(model_cfg: Mapping[str, object], *, task_type: str = "regression") -> TrainingSession:
    """Build an untrained session from the ``model`` config section."""

    layers = [build_layer(spec) for spec in model_cfg.get("layers", [])]
    if not layers:
        raise ValueError("model config must list at least one layer")
    loss = LOSS_REGISTRY.resolve(str(model_cfg.get("loss", "auto")), task_type=task_type)
    init = model_cfg.get("init")
    rule = build_rule(init) if init is not None else None
    return TrainingSession(
        loss=loss,
        rule=rule,
        layers=layers,
        input_dimensions=model_cfg.get("input_dimensions", ()),
    )


# Dataset provenance needed to encode new samples for a saved model.
_MODEL_METADATA = ("target_col", "columns", "mapper", "classes", "normalization")


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    missing = _REQUIRED_SECTIONS - set(config)
    if missing:
        raise KeyError(f"Config is missing required sections: {', '.join(sorted(missing))}")
    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    optimizer_cfg = dict(config["optimizer"])
    train_cfg = dict(config["train"])

    seed = int(train_cfg.get("seed", 0))
    seed_everything(seed)
    dataset = registry.get_dataset(str(data_cfg["name"]), **data_cfg.get("options", {}))

    session = build_session(model_cfg, task_type=dataset.task_type)
    session.pipeline.resolve_dimensions(dataset.d_in)
    d_out = session.layers[-1].output_size()
    if d_out != dataset.d_out:
        raise ValueError(
            f"Network produces {d_out} outputs but dataset {dataset.name!r} has "
            f"{dataset.d_out} response rows"
        )

    optimizer_cfg.setdefault("seed", seed)
    optimizer = build_optimizer(optimizer_cfg)

    run_dir = _resolve_run_dir(train_cfg, dataset.name)
    run_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info(
        "dataset=%s samples=%d layers=%s loss=%s optimizer=%s",
        dataset.name,
        dataset.predictors.shape[1],
        [layer.kind for layer in session.layers],
        session.loss.name,
        optimizer_cfg.get("name", "sgd"),
    )

    jsonl = JsonlSink(run_dir / "metrics.jsonl", split="train", seed=seed)
    csv_sink = CsvSink(run_dir / "metrics.csv", split="train")
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    final = session.train(dataset.predictors, dataset.responses, optimizer, jsonl, csv_sink, plots)
    plots.close()

    test_metrics: Dict[str, float] = {}
    if dataset.test_predictors.shape[1]:
        predictions = session.predict(dataset.test_predictors)
        test_metrics = dict(
            compute_metrics(
                default_metrics(dataset.task_type),
                predictions,
                dataset.test_responses,
                task_type=dataset.task_type,
            )
        )
        test_metrics["objective"] = session.evaluate(
            dataset.test_predictors, dataset.test_responses
        )
    (run_dir / "metrics_test.json").write_text(json.dumps(test_metrics, indent=2))
    (run_dir / "config.json").write_text(json.dumps(config, indent=2, default=str))

    model_path = ""
    if train_cfg.get("save_model", True):
        metadata = {
            key: dataset.provenance[key]
            for key in _MODEL_METADATA
            if key in dataset.provenance
        }
        metadata["task_type"] = dataset.task_type
        model_path = session.save(run_dir / "model.npz", metadata)

    return RunResult(
        final_objective=float(final),
        metrics_path=str(jsonl.path),
        model_path=model_path,
        test_metrics=test_metrics,
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(train_cfg["run_dir"])
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset


__all__ = [
    "build_session",
    "load_config",
    "load_preset",
    "merge_config",
    "presets",
    "run_pipeline",
]

"""Persist and restore trained networks.

A saved network is a compressed ``.npz`` archive holding the flat parameter
buffer, the input dimensions, and a JSON header describing (in order) the
output loss, the initialization rule, the tagged layer list and whether the
weights were initialized.  The header may also carry dataset metadata such as
the categorical mapper used to encode training inputs, so that new samples
are encoded with the same codes.  Datasets and arena buffers are never saved.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Mapping, Optional

import numpy as np

from .core.errors import SizeMismatch
from .core.init_rules import build_rule, rule_config
from .core.layers import build_layer, layer_config
from .core.types import Mode
from .training.session import TrainingSession

FORMAT_VERSION = 1


def to_state(session: TrainingSession) -> Dict[str, object]:
    """Everything that must survive a save/load round trip."""

    pipeline = session.pipeline
    return {
        "version": FORMAT_VERSION,
        "output_layer": session.loss.config(),
        "init_rule": rule_config(pipeline.store.rule),
        "layers": [layer_config(layer) for layer in pipeline.layers],
        "parameters": pipeline.parameters.copy(),
        "input_dimensions": list(pipeline.input_dimensions),
        "initialized": bool(pipeline.store.initialized),
    }


def from_state(state: Mapping[str, object]) -> TrainingSession:
    version = int(state.get("version", FORMAT_VERSION))
    if version > FORMAT_VERSION:
        raise ValueError(f"Unsupported network format version: {version}")

    session = TrainingSession(
        loss=str(state["output_layer"]["name"]),
        rule=build_rule(state["init_rule"]),
        layers=[build_layer(spec) for spec in state["layers"]],
        input_dimensions=state["input_dimensions"],
    )
    parameters = np.asarray(state["parameters"], dtype=np.float64)
    if state["initialized"]:
        if not session.input_dimensions:
            raise SizeMismatch("saved parameters without input dimensions cannot be restored")
        session.pipeline.parameters = parameters
    elif parameters.size:
        raise SizeMismatch("saved parameters are marked as uninitialized")
    session.pipeline.set_mode(Mode.INFERENCE)
    session.pipeline.broadcast_mode()
    return session


def save(
    session: TrainingSession,
    path: str | Path,
    metadata: Optional[Mapping[str, object]] = None,
) -> str:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    state = to_state(session)
    header = {
        key: value
        for key, value in state.items()
        if key not in {"parameters", "input_dimensions"}
    }
    if metadata:
        header["metadata"] = dict(metadata)
    with path.open("wb") as handle:
        np.savez_compressed(
            handle,
            header=np.array(json.dumps(header)),
            parameters=state["parameters"],
            input_dimensions=np.asarray(state["input_dimensions"], dtype=np.int64),
        )
    return str(path)


def load(path: str | Path) -> TrainingSession:
    with np.load(Path(path), allow_pickle=False) as archive:
        state: Dict[str, object] = json.loads(archive["header"].item())
        state["parameters"] = archive["parameters"]
        state["input_dimensions"] = [int(d) for d in archive["input_dimensions"]]
    return from_state(state)


def load_metadata(path: str | Path) -> Dict[str, object]:
    """Dataset metadata stored next to the network; empty when none was saved."""

    with np.load(Path(path), allow_pickle=False) as archive:
        header = json.loads(archive["header"].item())
    return dict(header.get("metadata", {}))


__all__ = ["FORMAT_VERSION", "to_state", "from_state", "save", "load", "load_metadata"]

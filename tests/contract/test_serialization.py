import numpy as np
import pytest

from ffnet.core.errors import SizeMismatch
from ffnet.core.init_rules import GaussianInitialization
from ffnet.core.layers import Dropout, Linear, Tanh
from ffnet.core.types import Mode
from ffnet.serialization import from_state, load, load_metadata, save, to_state
from ffnet.training.optimizers import SGD
from ffnet.training.session import TrainingSession


def _trained_session():
    rng = np.random.default_rng(0)
    x = rng.uniform(-1, 1, size=(2, 32))
    y = (x[0] - 0.5 * x[1]).reshape(1, -1)
    session = TrainingSession(
        loss="mse",
        rule=GaussianInitialization(std=0.3, seed=2),
        layers=[Linear(6), Tanh(), Dropout(0.1, seed=0), Linear(1)],
    )
    session.train(x, y, SGD(step_size=0.05, batch_size=8, max_iterations=32 * 5, seed=0))
    return session


def test_state_lists_fields_in_persisted_order():
    state = to_state(_trained_session())
    assert list(state) == [
        "version",
        "output_layer",
        "init_rule",
        "layers",
        "parameters",
        "input_dimensions",
        "initialized",
    ]
    assert state["output_layer"] == {"name": "mse"}
    assert [layer["kind"] for layer in state["layers"]] == ["linear", "tanh", "dropout", "linear"]
    assert state["input_dimensions"] == [2]


def test_save_load_round_trip_predicts_identically(tmp_path):
    session = _trained_session()
    held_out = np.array([[0.3, -0.7], [0.1, 0.9]])
    expected = session.predict(held_out)

    path = save(session, tmp_path / "model" / "net.npz")
    restored = load(path)

    np.testing.assert_allclose(restored.predict(held_out), expected)
    np.testing.assert_array_equal(restored.parameters, session.parameters)
    assert restored.predictors is None and restored.responses is None
    assert restored.num_functions == 0
    assert restored.mode is Mode.INFERENCE
    assert all(layer.deterministic for layer in restored.layers)
    assert restored.pipeline.store.initialized


def test_session_methods_delegate_to_serialization(tmp_path):
    session = _trained_session()
    path = session.save(tmp_path / "net.npz")
    restored = TrainingSession.load(path)
    np.testing.assert_array_equal(restored.parameters, session.parameters)


def test_untrained_network_round_trips_without_parameters():
    session = TrainingSession(layers=[Linear(2)])
    restored = from_state(to_state(session))
    assert not restored.pipeline.store.initialized
    assert restored.parameters.size == 0


def test_inconsistent_state_is_rejected():
    state = to_state(_trained_session())
    state["parameters"] = state["parameters"][:-1]
    with pytest.raises(SizeMismatch):
        from_state(state)

    state = to_state(_trained_session())
    state["initialized"] = False
    with pytest.raises(SizeMismatch):
        from_state(state)


def test_metadata_is_stored_beside_the_network(tmp_path):
    session = _trained_session()
    metadata = {"columns": ["a", "b"], "mapper": {"types": ["numeric", "numeric"], "mappings": {}}}
    path = save(session, tmp_path / "net.npz", metadata)

    assert load_metadata(path) == metadata
    np.testing.assert_array_equal(load(path).parameters, session.parameters)
    assert load_metadata(save(session, tmp_path / "bare.npz")) == {}

import numpy as np
import pytest

from ffnet.core.errors import SizeMismatch
from ffnet.core.init_rules import (
    ConstInitialization,
    GaussianInitialization,
    RandomInitialization,
    build_rule,
    rule_config,
)
from ffnet.core.layers import Dropout, Linear, ReLU, build_layer, layer_config, layer_kinds
from ffnet.core.parameters import ParameterStore
from ffnet.core.views import Arena


def test_layer_registry_round_trips_configs():
    assert {"linear", "sigmoid", "tanh", "relu", "identity", "dropout"} <= set(layer_kinds())
    for layer in (Linear(3), ReLU(), Dropout(0.25, seed=4)):
        rebuilt = build_layer(layer_config(layer))
        assert type(rebuilt) is type(layer)
        assert rebuilt.config() == layer.config()

    with pytest.raises(KeyError, match="Available layers"):
        build_layer({"kind": "conv"})


def test_linear_shapes_follow_input_dimensions():
    layer = Linear(4)
    layer.input_dimensions = (3,)
    assert layer.output_dimensions == (4,)
    assert layer.weight_size() == 16
    relu = ReLU()
    relu.input_dimensions = (2, 5)
    assert relu.output_dimensions == (2, 5)
    assert relu.output_size() == 10
    assert relu.weight_size() == 0


def test_set_weights_rejects_wrong_size():
    layer = Linear(2)
    layer.input_dimensions = (3,)
    arena = Arena()
    arena.reserve(7)
    with pytest.raises(SizeMismatch):
        layer.set_weights(arena.view(0, 7, 1))


def test_clone_drops_weight_view():
    layer = Linear(2)
    layer.input_dimensions = (3,)
    arena = Arena()
    arena.reserve(8)
    layer.set_weights(arena.view(0, 8, 1))
    clone = layer.clone()
    assert clone.weights is None
    assert clone.input_dimensions == (3,)
    assert layer.weights is not None


def test_dropout_rejects_bad_ratio():
    with pytest.raises(ValueError):
        Dropout(1.0)


def test_rules_fill_in_place():
    weights = np.zeros(1000)
    GaussianInitialization(mean=1.0, std=0.1, seed=0).initialize(weights)
    assert abs(weights.mean() - 1.0) < 0.02

    RandomInitialization(low=-0.5, high=0.5, seed=0).initialize(weights)
    assert weights.min() >= -0.5 and weights.max() < 0.5

    ConstInitialization(0.3).initialize(weights)
    assert np.all(weights == 0.3)


def test_rule_registry():
    rule = build_rule({"kind": "gaussian", "std": 0.2, "seed": 5})
    assert isinstance(rule, GaussianInitialization)
    assert rule_config(rule) == {"kind": "gaussian", "mean": 0.0, "std": 0.2, "seed": 5}
    assert isinstance(build_rule("const"), ConstInitialization)
    with pytest.raises(KeyError, match="Available rules"):
        build_rule("orthogonal")


def _layers(in_size=3):
    layers = [Linear(4), ReLU(), Linear(2)]
    dims = (in_size,)
    for layer in layers:
        layer.input_dimensions = dims
        dims = layer.output_dimensions
    return layers


def test_store_initializes_once_with_rule():
    layers = _layers()
    store = ParameterStore(ConstInitialization(0.5))
    assert store.ensure_allocated(layers) is True
    assert store.ensure_allocated(layers) is False
    assert store.initialized
    assert store.parameters.size == 16 + 10
    assert np.all(store.parameters == 0.5)


def test_store_load_checks_size_and_copies():
    layers = _layers()
    store = ParameterStore()
    with pytest.raises(SizeMismatch):
        store.load(layers, np.zeros(5))
    values = np.arange(26, dtype=float)
    store.load(layers, values)
    values[0] = 99.0
    assert store.parameters[0] == 0.0
    assert layers[2].weights.array[0, 0] == 16.0


def test_assign_views_detects_layer_growth():
    layers = _layers()
    store = ParameterStore()
    store.ensure_allocated(layers)
    layers[0].out_size = 5
    with pytest.raises(SizeMismatch):
        store.assign_views(layers)


def test_store_copy_is_independent():
    layers = _layers()
    store = ParameterStore(GaussianInitialization(seed=1))
    store.ensure_allocated(layers)
    other = store.copy()
    assert other.initialized
    np.testing.assert_array_equal(other.parameters, store.parameters)
    other.parameters[:] = 0.0
    assert np.any(store.parameters != 0.0)


def test_dropout_backward_follows_the_forward_mode():
    layer = Dropout(0.5, seed=3)
    x = np.ones((4, 6))
    out = np.empty_like(x)
    g = np.empty_like(x)

    layer.set_deterministic(True)
    layer.forward(x, out)
    layer.set_deterministic(False)
    layer.backward(out, x, g)
    np.testing.assert_array_equal(g, x)

    layer.forward(x, out)
    layer.set_deterministic(True)
    layer.backward(out, x, g)
    np.testing.assert_array_equal(g, out)
    assert np.any(g == 0.0)

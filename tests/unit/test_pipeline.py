import numpy as np
import pytest

from ffnet.core.errors import OutOfRange, ShapeMismatch, SizeMismatch
from ffnet.core.init_rules import GaussianInitialization
from ffnet.core.layers import Dropout, Identity, Linear, ReLU, Sigmoid, Tanh
from ffnet.core.pipeline import NetworkPipeline
from ffnet.core.types import Mode

W1 = np.array([[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]])
B1 = np.array([0.5, -0.5])
W2 = np.array([[1.0, -1.0]])
B2 = np.array([0.25])


def _dense_321() -> NetworkPipeline:
    pipeline = NetworkPipeline(input_dimensions=(3,), layers=[Linear(2), Linear(1)])
    pipeline.parameters = np.concatenate(
        [W1.ravel(order="F"), B1, W2.ravel(order="F"), B2]
    )
    return pipeline


def _net(*layers, seed=0) -> NetworkPipeline:
    return NetworkPipeline(rule=GaussianInitialization(std=0.5, seed=seed), layers=layers)


def test_dense_example_composes_both_layers():
    pipeline = _dense_321()
    x = np.array([1.0, 2.0, 3.0])

    result = pipeline.forward(x)
    hidden = W1 @ x + B1
    assert result.shape == (1, 1)
    assert np.isclose(result[0, 0], (W2 @ hidden + B2)[0])
    assert np.isclose(result[0, 0], -0.55)
    np.testing.assert_allclose(pipeline.layer_outputs[0].array[:, 0], [1.9, 2.7])


def test_changing_second_layer_weights_keeps_first_layer_output():
    pipeline = _dense_321()
    x = np.array([1.0, 2.0, 3.0])
    before = float(pipeline.forward(x)[0, 0])
    hidden_before = pipeline.layer_outputs[0].array.copy()

    pipeline.parameters[8] = 2.0  # W2[0, 0]
    after = float(pipeline.forward(x)[0, 0])

    assert not np.isclose(before, after)
    assert np.isclose(after, 2.0 * 1.9 - 2.7 + 0.25)
    np.testing.assert_array_equal(pipeline.layer_outputs[0].array, hidden_before)


def test_weight_views_partition_the_parameter_buffer():
    pipeline = _net(Linear(4), Tanh(), Linear(3), ReLU(), Linear(2))
    pipeline.ensure_parameters(5)

    views = pipeline.store.views
    assert [v.size for v in views] == [24, 0, 15, 0, 8]
    assert sum(v.size for v in views) == pipeline.parameters.size == 47
    offset = 0
    for view in views:
        assert view.offset == offset
        offset += view.size
    assert offset == pipeline.parameters.size


def test_layers_write_through_views_into_the_shared_buffer():
    pipeline = _dense_321()
    first = pipeline.layers[0].weights
    first.array[0, 0] = 42.0
    assert pipeline.parameters[0] == 42.0
    assert np.shares_memory(first.array, pipeline.parameters)


def test_repeated_passes_are_bit_identical():
    pipeline = _net(Linear(4), Sigmoid(), Linear(2))
    rng = np.random.default_rng(1)
    x = rng.normal(size=(3, 5))
    error = rng.normal(size=(2, 5))

    runs = []
    for _ in range(2):
        out = pipeline.forward(x).copy()
        pipeline.backward(error)
        delta = pipeline.layer_deltas[0].array.copy()
        grad = np.zeros_like(pipeline.parameters)
        pipeline.gradient(x, error, grad)
        runs.append((out, delta, grad))

    for first, second in zip(*runs):
        assert np.array_equal(first, second)


def test_single_layer_network_uses_raw_input_and_error():
    pipeline = NetworkPipeline(input_dimensions=(3,), layers=[Linear(2)])
    pipeline.parameters = np.concatenate([W1.ravel(order="F"), B1])
    rng = np.random.default_rng(2)
    x = rng.normal(size=(3, 4))
    error = rng.normal(size=(2, 4))

    out = pipeline.forward(x)
    np.testing.assert_allclose(out, W1 @ x + B1[:, None])

    pipeline.backward(error)
    np.testing.assert_allclose(pipeline.layer_deltas[0].array, W1.T @ error)

    grad = np.full(pipeline.parameters.size, 7.0)
    pipeline.gradient(x, error, grad)
    np.testing.assert_allclose(grad[:6].reshape((2, 3), order="F"), error @ x.T)
    np.testing.assert_allclose(grad[6:], error.sum(axis=1))


def test_single_layer_matches_two_layer_degenerate_case():
    params = np.concatenate([W1.ravel(order="F"), B1])
    single = NetworkPipeline(input_dimensions=(3,), layers=[Linear(2)])
    single.parameters = params
    double = NetworkPipeline(input_dimensions=(3,), layers=[Linear(2), Identity()])
    double.parameters = params

    rng = np.random.default_rng(3)
    x = rng.normal(size=(3, 6))
    error = rng.normal(size=(2, 6))

    np.testing.assert_allclose(single.forward(x), double.forward(x))
    single.backward(error)
    double.backward(error)
    g_single = np.zeros(8)
    g_double = np.zeros(8)
    single.gradient(x, error, g_single)
    double.gradient(x, error, g_double)
    np.testing.assert_allclose(g_single, g_double)


def test_output_arena_hysteresis_thresholds():
    pipeline = _net(Linear(2), Tanh())
    rng = np.random.default_rng(4)
    pipeline.forward(rng.normal(size=(3, 100)))
    assert pipeline.total_output_size == 4
    arena = pipeline.output_arena
    assert arena.capacity == 400
    original = arena.buffer

    pipeline.forward(rng.normal(size=(3, 10)))  # 40 == floor(0.1 * 400)
    assert arena.buffer is original
    assert np.shares_memory(pipeline.layer_outputs[1].array, original)

    pipeline.forward(rng.normal(size=(3, 9)))  # 36 < 40
    assert arena.buffer is not original
    assert arena.capacity == 36


def test_delta_arena_excludes_final_output_and_has_its_own_hysteresis():
    pipeline = _net(Linear(2), Tanh())
    rng = np.random.default_rng(5)
    pipeline.forward(rng.normal(size=(3, 100)))
    pipeline.backward(rng.normal(size=(2, 100)))
    assert pipeline.total_input_size == 5
    assert pipeline.delta_arena.capacity == 500
    delta_buffer = pipeline.delta_arena.buffer

    # output arena keeps its buffer (40 >= 40), the delta arena too (50 >= 50)
    pipeline.forward(rng.normal(size=(3, 10)))
    pipeline.backward(rng.normal(size=(2, 10)))
    assert pipeline.delta_arena.buffer is delta_buffer

    pipeline.forward(rng.normal(size=(3, 9)))
    pipeline.backward(rng.normal(size=(2, 9)))
    assert pipeline.delta_arena.capacity == 45


def test_partial_forward_ranges_compose():
    pipeline = _net(Linear(4), Tanh(), Linear(2))
    x = np.random.default_rng(6).normal(size=(3, 5))

    full = pipeline.forward(x).copy()
    hidden = pipeline.forward(x, end=1).copy()
    assert hidden.shape == (4, 5)
    partial = pipeline.forward(hidden, begin=2)
    np.testing.assert_allclose(partial, full)


def test_forward_into_caller_results():
    pipeline = _net(Linear(4), Tanh(), Linear(2))
    x = np.random.default_rng(7).normal(size=(3, 5))
    expected = pipeline.forward(x).copy()

    results = np.zeros((2, 5), order="F")
    returned = pipeline.forward(x, results)
    assert returned is results
    np.testing.assert_allclose(results, expected)

    with pytest.raises(ShapeMismatch):
        pipeline.forward(x, np.zeros((3, 5)))


def test_empty_and_reversed_ranges():
    x = np.ones((3, 2))
    with pytest.raises(OutOfRange):
        NetworkPipeline().forward(x)

    pipeline = _net(Linear(4), Tanh(), Linear(2))
    assert pipeline.forward(x, begin=2, end=1) is None
    with pytest.raises(OutOfRange):
        pipeline.forward(x, end=3)
    with pytest.raises(OutOfRange):
        pipeline.forward(x, begin=-1)


def test_shape_checks_on_forward():
    pipeline = _net(Linear(4), Tanh(), Linear(2))
    with pytest.raises(ShapeMismatch):
        pipeline.forward(np.ones((4, 2)), begin=1)

    pipeline.forward(np.ones((3, 2)))
    with pytest.raises(ShapeMismatch):
        pipeline.forward(np.ones((3, 2)), begin=1)

    declared = NetworkPipeline(input_dimensions=(2, 2), layers=[Linear(1)])
    with pytest.raises(ShapeMismatch):
        declared.forward(np.ones((3, 1)))


def test_multi_axis_input_dimensions_are_flattened():
    pipeline = NetworkPipeline(input_dimensions=(2, 3), layers=[Linear(1)])
    out = pipeline.forward(np.ones((6, 4)))
    assert out.shape == (1, 4)
    assert pipeline.layers[0].input_size() == 6


def test_dimension_change_after_allocation_is_a_size_mismatch():
    pipeline = _net(Linear(2))
    pipeline.forward(np.ones((3, 1)))
    pipeline.input_dimensions = (4,)
    with pytest.raises(SizeMismatch):
        pipeline.forward(np.ones((4, 1)))


def test_backward_and_gradient_preconditions():
    pipeline = _net(Linear(4), Tanh(), Linear(2))
    with pytest.raises(OutOfRange):
        pipeline.backward(np.ones((2, 3)))

    x = np.ones((3, 3))
    pipeline.forward(x)
    with pytest.raises(ShapeMismatch):
        pipeline.backward(np.ones((2, 4)))
    with pytest.raises(OutOfRange):
        pipeline.gradient(x, np.ones((2, 3)), np.zeros(pipeline.parameters.size))

    pipeline.backward(np.ones((2, 3)))
    with pytest.raises(SizeMismatch):
        pipeline.gradient(x, np.ones((2, 3)), np.zeros(pipeline.parameters.size + 1))
    with pytest.raises(ShapeMismatch):
        pipeline.gradient(np.ones((3, 2)), np.ones((2, 3)), np.zeros(pipeline.parameters.size))


def test_partial_backward_needs_covering_forward():
    pipeline = _net(Linear(4), Tanh(), Linear(2))
    pipeline.forward(np.ones((3, 2)), end=1)
    with pytest.raises(OutOfRange):
        pipeline.backward(np.ones((2, 2)))
    pipeline.backward(np.ones((4, 2)), end=1)
    assert pipeline.layer_deltas[0].array.shape == (3, 2)


def test_gradient_overwrites_instead_of_accumulating():
    pipeline = _net(Linear(3), Tanh(), Linear(1))
    x = np.random.default_rng(8).normal(size=(2, 4))
    error = np.ones((1, 4))
    pipeline.forward(x)
    grad = np.zeros_like(pipeline.parameters)
    pipeline.backward(error)
    pipeline.gradient(x, error, grad)
    first = grad.copy()
    pipeline.gradient(x, error, grad)
    np.testing.assert_array_equal(grad, first)


def test_mode_broadcast_reaches_every_layer():
    pipeline = NetworkPipeline(layers=[Dropout(0.5, seed=0)])
    x = np.ones((10, 20))
    assert pipeline.mode is Mode.INFERENCE
    np.testing.assert_array_equal(pipeline.forward(x), x)

    assert pipeline.set_mode(Mode.TRAIN) is True
    assert pipeline.set_mode("train") is False
    assert pipeline.layers[0].deterministic is False
    out = pipeline.forward(x)
    assert set(np.unique(out)) <= {0.0, 2.0}
    assert 0.0 in out

    late = Dropout(0.2)
    pipeline.add(late)
    assert late.deterministic is False

    pipeline.set_mode(Mode.INFERENCE)
    assert all(layer.deterministic for layer in pipeline.layers)


def test_structure_change_resets_parameters():
    pipeline = _net(Linear(2))
    pipeline.forward(np.ones((3, 1)))
    assert pipeline.parameters.size == 8
    pipeline.add(Linear(1))
    assert not pipeline.store.allocated
    pipeline.forward(np.ones((3, 1)))
    assert pipeline.parameters.size == 11

    removed = pipeline.pop()
    assert removed.weights is None
    pipeline.forward(np.ones((3, 1)))
    assert pipeline.parameters.size == 8


def test_clone_has_independent_buffers():
    pipeline = _dense_321()
    x = np.array([1.0, 2.0, 3.0])
    expected = float(pipeline.forward(x)[0, 0])
    original = pipeline.parameters.copy()

    clone = pipeline.clone()
    assert not np.shares_memory(clone.parameters, pipeline.parameters)
    np.testing.assert_array_equal(clone.parameters, original)
    assert float(clone.forward(x)[0, 0]) == expected

    clone.initialize_weights()
    clone.forward(x)
    np.testing.assert_array_equal(pipeline.parameters, original)
    assert float(pipeline.forward(x)[0, 0]) == expected

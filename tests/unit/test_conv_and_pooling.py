import numpy as np
import pytest

from dbnkit.core.conv import (
    avg_pool_3d,
    conv4_full,
    conv4_valid_filter,
    conv4_valid_flipped,
    max_pool_3d,
    upsample_3d,
)
from dbnkit.core.errors import ConfigurationError, ShapeMismatchError
from dbnkit.layers.pooling import DynAvgPoolLayer3D, DynMaxPoolLayer3D, avgp_layer_3d_desc, mp_layer_3d_desc


def _naive_valid(v, w):
    b, c, h, wd = v.shape
    k, _, p, q = w.shape
    out = np.zeros((b, k, h - p + 1, wd - q + 1))
    for n in range(b):
        for f in range(k):
            for i in range(h - p + 1):
                for j in range(wd - q + 1):
                    out[n, f, i, j] = np.sum(v[n, :, i : i + p, j : j + q] * w[f])
    return out


def test_valid_convolution_matches_naive_loop():
    rng = np.random.default_rng(0)
    v = rng.standard_normal((2, 3, 6, 5))
    w = rng.standard_normal((4, 3, 3, 2))
    out = conv4_valid_flipped(v, w)
    assert out.shape == (2, 4, 4, 4)
    assert np.allclose(out, _naive_valid(v, w))


def test_full_convolution_is_the_adjoint_of_valid():
    rng = np.random.default_rng(1)
    v = rng.standard_normal((2, 3, 6, 5))
    w = rng.standard_normal((4, 3, 3, 2))
    h = rng.standard_normal((2, 4, 4, 4))
    full = conv4_full(h, w)
    assert full.shape == v.shape
    assert np.isclose(np.sum(conv4_valid_flipped(v, w) * h), np.sum(v * full))


def test_filter_statistics_are_the_weight_gradient():
    rng = np.random.default_rng(2)
    v = rng.standard_normal((3, 2, 5, 5))
    w = rng.standard_normal((2, 2, 3, 3))
    h = rng.standard_normal((3, 2, 3, 3))
    stats = conv4_valid_filter(v, h)
    assert stats.shape == w.shape
    assert np.isclose(np.sum(conv4_valid_flipped(v, w) * h), np.sum(w * stats))


def test_pool_helpers():
    x = np.arange(16, dtype=np.float64).reshape(1, 1, 4, 4)
    assert np.array_equal(max_pool_3d(x, (1, 2, 2))[0, 0], [[5.0, 7.0], [13.0, 15.0]])
    assert np.array_equal(avg_pool_3d(x, (1, 2, 2))[0, 0], [[2.5, 4.5], [10.5, 12.5]])
    assert upsample_3d(np.ones((1, 1, 2, 2)), (1, 2, 2)).shape == (1, 1, 4, 4)
    with pytest.raises(ValueError):
        avg_pool_3d(x, (1, 3, 2))


def test_max_pooling_routes_errors_to_the_maximum():
    layer = mp_layer_3d_desc(1, 4, 4, 1, 2, 2).layer_t()
    x = np.arange(16, dtype=np.float64).reshape(1, 1, 4, 4)
    out = layer.forward(x)
    assert out.shape == (1, 1, 2, 2)
    _, routed = layer.backprop(x, out, np.ones_like(out))
    expected = np.zeros((4, 4))
    expected[[1, 1, 3, 3], [1, 3, 1, 3]] = 1.0
    assert np.array_equal(routed[0, 0], expected)


def test_average_pooling_spreads_errors_evenly():
    layer = avgp_layer_3d_desc(2, 4, 4, 1, 2, 2).layer_t()
    x = np.random.default_rng(0).random((3, 2, 4, 4))
    out = layer.forward(x)
    assert out.shape == (3, 2, 2, 2)
    grads, routed = layer.backprop(x, out, np.ones(out.shape))
    assert grads is None
    assert np.allclose(routed, 0.25)
    assert layer.parameters() == 0
    assert layer.output_size() == 8
    assert layer.to_short_string() == "AVGP: 2x4x4 -> (1x2x2) -> 2x2x2"


def test_pooling_geometry_is_validated():
    with pytest.raises(ConfigurationError):
        avgp_layer_3d_desc(1, 5, 4, 1, 2, 2)
    with pytest.raises(ValueError):
        DynMaxPoolLayer3D().init_layer(1, 4, 4, 1, 3, 2)
    layer = mp_layer_3d_desc(1, 4, 4, 1, 2, 2).layer_t()
    with pytest.raises(ShapeMismatchError):
        layer.forward(np.zeros((2, 15)))


def test_static_pooling_configures_dynamic_layer():
    desc = avgp_layer_3d_desc(2, 6, 6, 1, 3, 3)
    dyn = DynAvgPoolLayer3D()
    desc.layer_t.dyn_init(dyn)
    assert dyn.input_shape == (2, 6, 6)
    assert dyn.output_shape == (2, 2, 2)
    x = np.random.default_rng(0).random((2, 2, 6, 6))
    assert np.allclose(dyn.forward(x), desc.layer_t().forward(x))

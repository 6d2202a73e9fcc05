import itertools

import numpy as np
import pytest
from scipy.special import expit

from dbnkit.core.conf import BatchSize, DBNOnly, Hidden, Momentum, TrainerRBM, Visible
from dbnkit.core.enums import UnitType
from dbnkit.core.errors import ConfigurationError, ShapeMismatchError
from dbnkit.core.units import GAUSSIAN_VARIANCE
from dbnkit.rbm import (
    ConvRBM,
    DynConvRBM,
    DynRBM,
    RBM,
    conv_rbm_desc,
    conv_rbm_desc_square,
    dyn_conv_rbm_desc,
    dyn_rbm_desc,
    rbm_desc,
)
from dbnkit.training import ContrastiveDivergence, PersistentContrastiveDivergence, pcd_k


def _log_sum_exp(values):
    values = np.asarray(values)
    top = values.max()
    return top + np.log(np.sum(np.exp(values - top)))


def test_static_rbm_dimensions_are_class_constants():
    desc = rbm_desc(6, 4, BatchSize(3))
    rbm = desc.layer_t(seed=0)
    assert isinstance(rbm, RBM)
    assert rbm.num_visible == 6 and type(rbm).num_hidden == 4
    assert rbm.w.shape == (6, 4) and rbm.b.shape == (4,) and rbm.c.shape == (6,)
    assert rbm.batch_size == 3
    assert rbm.parameters() == 24
    assert rbm.to_short_string() == "RBM(BINARY): 6 -> 4"
    with pytest.raises(AttributeError):
        rbm.num_visible = 10
    assert not hasattr(rbm, "init_layer")


def test_descriptors_validate_at_construction():
    with pytest.raises(ConfigurationError):
        rbm_desc(0, 4)
    with pytest.raises(ConfigurationError):
        rbm_desc(6, 4, Momentum)
    with pytest.raises(ConfigurationError):
        rbm_desc(6, 4, Visible(UnitType.RELU))
    with pytest.raises(ConfigurationError):
        conv_rbm_desc(1, 8, 8, 2, 3, 3, Hidden(UnitType.SOFTMAX))
    with pytest.raises(ConfigurationError):
        conv_rbm_desc(1, 8, 8, 2, 9, 3)
    with pytest.raises(ConfigurationError):
        dyn_conv_rbm_desc(Visible(UnitType.SOFTMAX))


def test_dbn_only_layers_skip_training_buffers():
    assert not hasattr(rbm_desc(4, 3, DBNOnly()).layer_t(), "v1")
    assert rbm_desc(4, 3).layer_t().v1.shape == (4,)


def test_dynamic_rbm_reinitialisation_is_idempotent():
    rbm = dyn_rbm_desc().layer_t(seed=1)
    assert isinstance(rbm, DynRBM)
    with pytest.raises(RuntimeError):
        rbm.prepare_input()

    rbm.init_layer(10, 5)
    first = rbm.w.copy()
    rbm.init_layer(10, 5)
    assert rbm.w.shape == first.shape == (10, 5)
    assert rbm.num_visible * rbm.num_hidden == rbm.parameters() == 50
    assert not np.array_equal(rbm.w, first)
    assert np.all(rbm.b == 0.0) and np.all(rbm.c == 0.0)
    assert rbm.prepare_input().shape == (10,)

    with pytest.raises(ValueError):
        rbm.init_layer(0, 5)


def test_static_layer_configures_a_dynamic_one():
    desc = rbm_desc(12, 7, BatchSize(4))
    dyn = desc.dyn_layer_t()
    desc.layer_t.dyn_init(dyn)
    assert (dyn.num_visible, dyn.num_hidden) == (12, 7)
    assert dyn.batch_size == 4

    conv = conv_rbm_desc_square(2, 8, 3, 5, BatchSize(6))
    dyn_conv = conv.dyn_layer_t()
    conv.layer_t.dyn_init(dyn_conv)
    assert isinstance(dyn_conv, DynConvRBM)
    assert dyn_conv.w.shape == (3, 2, 5, 5)
    assert (dyn_conv.nh1, dyn_conv.nh2) == (4, 4)
    assert dyn_conv.batch_size == 6


def test_contexts_are_lazy_shared_and_discarded_on_reinit():
    rbm = DynRBM(8, 3)
    sgd = rbm.sgd_context()
    cg = rbm.cg_context()
    assert rbm.sgd_context() is sgd
    assert rbm.cg_context() is cg
    assert sgd.w_grad.shape == (8, 3) and sgd.b_inc.shape == (3,)
    assert cg.size == 8 * 3 + 3

    rbm.init_layer(8, 3)
    assert rbm.sgd_context() is not sgd
    assert rbm.cg_context() is not cg


def test_cannot_reinitialise_while_training():
    rbm = dyn_rbm_desc(BatchSize(5)).layer_t(6, 3, seed=0)
    data = (np.random.default_rng(0).random((10, 6)) > 0.5).astype(float)

    def reinit(epoch, metrics):
        rbm.init_layer(6, 3)

    with pytest.raises(RuntimeError, match="being trained"):
        rbm.train(data, 2, callbacks=[reinit])
    rbm.init_layer(6, 4)
    assert rbm.w.shape == (6, 4)


def test_activation_shapes_and_mismatches():
    rbm = rbm_desc(6, 4).layer_t(seed=0)
    v = np.ones(6)
    h_a, h_s = rbm.activate_hidden(v)
    assert h_a.shape == h_s.shape == (4,)
    v_a, v_s = rbm.activate_visible(h_s, samples=False)
    assert v_a.shape == (6,) and v_s is None

    batch_a, _ = rbm.batch_activate_hidden(np.ones((3, 6)))
    assert batch_a.shape == (3, 4)

    with pytest.raises(ShapeMismatchError):
        rbm.activate_hidden(np.ones(5))
    with pytest.raises(ShapeMismatchError):
        rbm.batch_activate_hidden(np.ones((2, 7)))
    with pytest.raises(ConfigurationError):
        rbm.batch_activate_hidden(np.ones((2, 6)), probs=False)


def test_energy_matches_its_definition():
    rbm = rbm_desc(3, 2).layer_t(seed=0)
    rbm.c = np.array([0.1, -0.2, 0.3])
    rbm.b = np.array([0.5, -0.5])
    v = np.array([1.0, 0.0, 1.0])
    h = np.array([0.0, 1.0])
    expected = -rbm.c @ v - rbm.b @ h - v @ rbm.w @ h
    assert np.isclose(rbm.energy(v, h), expected)


@pytest.mark.parametrize("visible", [UnitType.BINARY, UnitType.GAUSSIAN])
def test_free_energy_marginalises_the_hidden_units(visible):
    rbm = rbm_desc(4, 3, Visible(visible)).layer_t(seed=2)
    rbm.b = np.array([0.2, -0.1, 0.4])
    rbm.c = np.array([0.3, 0.0, -0.3, 0.1])
    v = np.array([1.0, 0.0, 1.0, 1.0])
    energies = [-rbm.energy(v, np.array(h, dtype=float)) for h in itertools.product([0, 1], repeat=3)]
    assert np.isclose(rbm.free_energy(v), -_log_sum_exp(energies))


def test_conv_free_energy_marginalises_the_hidden_units():
    rbm = conv_rbm_desc(1, 3, 3, 1, 2, 2).layer_t(seed=3)
    rbm.w = rbm.w * 50.0
    rbm.c = np.array([0.2])
    v = np.array([[[1.0, 0.0, 1.0], [0.0, 1.0, 1.0], [1.0, 1.0, 0.0]]])
    energies = [
        -rbm.energy(v, np.array(h, dtype=float).reshape(1, 2, 2))
        for h in itertools.product([0, 1], repeat=4)
    ]
    assert np.isclose(rbm.free_energy(v), -_log_sum_exp(energies))


def test_energy_is_zero_when_undefined():
    rbm = rbm_desc(4, 3, Hidden(UnitType.RELU)).layer_t(seed=0)
    assert rbm.energy(np.ones(4), np.ones(3)) == 0.0
    assert rbm.free_energy(np.ones(4)) == 0.0
    assert rbm.learning_rate == pytest.approx(1e-4)


def test_init_weights_from_data_statistics():
    rbm = rbm_desc(3, 2).layer_t()
    data = np.array([[1.0, 0.0, 1.0], [1.0, 0.0, 0.0]])
    rbm.init_weights(data)
    assert rbm.c[0] == pytest.approx(np.log(0.999 / 0.001))
    assert rbm.c[1] == pytest.approx(np.log(0.001 / 0.999))
    assert rbm.c[2] == pytest.approx(0.0)

    gaussian = rbm_desc(3, 2, Visible(UnitType.GAUSSIAN)).layer_t()
    gaussian.init_weights(np.array([[1.0, 2.0, 3.0], [3.0, 2.0, 1.0]]))
    assert np.allclose(gaussian.c, [2.0, 2.0, 2.0])
    assert gaussian.learning_rate == pytest.approx(1e-3)


def test_backup_and_restore():
    rbm = rbm_desc(4, 2).layer_t(seed=0)
    with pytest.raises(RuntimeError):
        rbm.restore_weights()
    rbm.backup_weights()
    saved = rbm.w.copy()
    rbm.w += 1.0
    rbm.restore_weights()
    assert np.array_equal(rbm.w, saved)


def test_store_and_load_round_trip(tmp_path):
    desc = conv_rbm_desc(1, 6, 6, 2, 3, 3)
    source = desc.layer_t(seed=0)
    source.b += 0.5
    path = tmp_path / "crbm.npz"
    source.store(path)

    target = desc.layer_t(seed=1)
    target.load(path)
    assert np.array_equal(target.w, source.w)
    assert np.array_equal(target.b, source.b)

    with pytest.raises(ShapeMismatchError):
        conv_rbm_desc(1, 6, 6, 3, 3, 3).layer_t().load(path)

    partial = tmp_path / "partial.npz"
    np.savez(partial, w=source.w)
    with pytest.raises(KeyError):
        target.load(partial)


def test_conv_rbm_geometry():
    rbm = conv_rbm_desc(2, 8, 6, 3, 3, 2).layer_t(seed=0)
    assert isinstance(rbm, ConvRBM)
    assert (rbm.nh1, rbm.nh2) == (6, 5)
    assert rbm.w.shape == (3, 2, 3, 2)
    assert np.allclose(rbm.b, -0.1)
    assert rbm.input_size() == 2 * 8 * 6
    assert rbm.output_size() == 3 * 6 * 5
    assert rbm.to_short_string() == "CRBM(BINARY): 2x8x6 -> (3x3x2) -> 3x6x5"

    h_a, h_s = rbm.batch_activate_hidden(np.ones((4, 2 * 8 * 6)))
    assert h_a.shape == h_s.shape == (4, 3, 6, 5)
    v_a, _ = rbm.batch_activate_visible(h_s)
    assert v_a.shape == (4, 2, 8, 6)


def test_trainer_marker_selects_the_algorithm():
    assert isinstance(rbm_desc(4, 2).layer_t().make_trainer(), ContrastiveDivergence)
    trainer = rbm_desc(4, 2, TrainerRBM(pcd_k(2))).layer_t().make_trainer()
    assert isinstance(trainer, PersistentContrastiveDivergence)
    assert trainer.k == 2
    with pytest.raises(ValueError):
        ContrastiveDivergence(0)


def test_gaussian_visible_units_scale_the_hidden_sigmoid():
    rbm = rbm_desc(4, 3, Visible(UnitType.GAUSSIAN)).layer_t(seed=0)
    v = np.random.default_rng(1).standard_normal((2, 4))
    expected = expit((rbm.b + v @ rbm.w) / GAUSSIAN_VARIANCE)
    assert np.allclose(rbm.activation_probabilities(v), expected)

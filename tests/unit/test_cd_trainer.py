import numpy as np
import pytest

from dbnkit.core.conf import (
    BatchSize,
    Bias,
    ClipGradients,
    FreeEnergy,
    Hidden,
    InitWeights,
    Momentum,
    ParallelMode,
    Shuffle,
    Sparsity,
    TrainerRBM,
    Visible,
    WeightDecay,
)
from dbnkit.core.enums import BiasMode, DecayType, LrDriverType, SparsityMethod, UnitType
from dbnkit.rbm import conv_rbm_desc, rbm_desc
from dbnkit.training import ContrastiveDivergence, cd_k, pcd_k
from dbnkit.core.types import Gradients
from dbnkit.training.trainer import _Increments, clip_gradient


def _binary(n=40, size=16, seed=0):
    rng = np.random.default_rng(seed)
    prototypes = (rng.random((4, size)) > 0.6).astype(np.float64)
    return prototypes[rng.integers(0, 4, size=n)]


def test_clip_gradient_caps_the_norm():
    grad = np.array([3.0, 4.0])
    assert np.allclose(clip_gradient(grad, 1.0), [0.6, 0.8])
    assert clip_gradient(grad, 10.0) is grad


def test_train_returns_final_error_and_history():
    rbm = rbm_desc(16, 8, BatchSize(10), Momentum(), FreeEnergy()).layer_t(seed=0)
    error = rbm.train(_binary(), 8)
    assert len(rbm.training_history) == 8
    assert error == rbm.training_history[-1]["error"]
    assert rbm.training_history[-1]["error"] < rbm.training_history[0]["error"]
    assert rbm.training_history[0]["momentum"] == pytest.approx(0.5)
    assert rbm.training_history[-1]["momentum"] == pytest.approx(0.9)
    assert "free_energy" in rbm.training_history[0]
    with pytest.raises(ValueError):
        rbm.train(_binary(), 0)


def test_training_accepts_a_list_of_samples():
    rbm = rbm_desc(16, 4, BatchSize(8)).layer_t(seed=0)
    error = rbm.train(list(_binary(n=16)), 2)
    assert np.isfinite(error)


def test_without_bias_updates_biases_are_untouched():
    rbm = rbm_desc(16, 8, BatchSize(10), Bias(BiasMode.NONE)).layer_t(seed=0)
    w = rbm.w.copy()
    rbm.train(_binary(), 3)
    assert np.all(rbm.b == 0.0) and np.all(rbm.c == 0.0)
    assert not np.array_equal(rbm.w, w)


def test_init_weights_marker_sets_visible_biases():
    data = _binary()
    rbm = rbm_desc(16, 8, BatchSize(10), InitWeights(), Bias(BiasMode.NONE)).layer_t(seed=0)
    rbm.train(data, 1)
    p = np.clip(data.mean(axis=0), 1e-3, 1 - 1e-3)
    assert np.allclose(rbm.c, np.log(p / (1 - p)))


@pytest.mark.parametrize(
    "markers",
    [
        (Sparsity(SparsityMethod.GLOBAL_TARGET),),
        (Sparsity(SparsityMethod.LOCAL_TARGET),),
        (Sparsity(SparsityMethod.LEE),),
        (WeightDecay(DecayType.L1L2_FULL), ClipGradients()),
        (Shuffle(), ParallelMode()),
        (TrainerRBM(cd_k(3)),),
        (TrainerRBM(pcd_k(1)), Momentum()),
        (Hidden(UnitType.RELU),),
        (Hidden(UnitType.RELU1),),
        (Visible(UnitType.GAUSSIAN),),
        (Visible(UnitType.SOFTMAX), Hidden(UnitType.SOFTMAX)),
    ],
)
def test_training_options_stay_finite(markers):
    rbm = rbm_desc(16, 6, BatchSize(10), *markers).layer_t(seed=1)
    error = rbm.train(_binary(), 3)
    assert np.isfinite(error)
    assert np.all(np.isfinite(rbm.w))


def test_conv_rbm_training_reduces_error():
    rng = np.random.default_rng(0)
    images = (rng.random((20, 1, 8, 8)) > 0.7).astype(np.float64)
    rbm = conv_rbm_desc(1, 8, 8, 4, 3, 3, BatchSize(5), Momentum()).layer_t(seed=0)
    rbm.learning_rate = 0.5
    rbm.train(images, 10)
    history = [m["error"] for m in rbm.training_history]
    assert history[-1] < history[0]


def test_denoising_uses_clean_targets():
    clean = _binary()
    noisy = np.abs(clean - (np.random.default_rng(3).random(clean.shape) < 0.1))
    rbm = rbm_desc(16, 8, BatchSize(10)).layer_t(seed=0)
    error = rbm.train_denoising(noisy, clean, 5)
    assert np.isfinite(error)
    assert len(rbm.training_history) == 5
    with pytest.raises(ValueError):
        rbm.train_denoising(noisy, clean[:10], 1)


def test_bold_driver():
    rbm = rbm_desc(4, 2).layer_t(seed=0)
    trainer = ContrastiveDivergence()
    rbm.learning_rate = 0.1
    rbm.backup_weights()
    saved = rbm.w.copy()

    # first epoch: nothing to compare against
    assert trainer._drive_learning_rate(rbm, LrDriverType.BOLD, 1.0, float("inf")) == 1.0
    assert rbm.learning_rate == pytest.approx(0.1)

    assert trainer._drive_learning_rate(rbm, LrDriverType.BOLD, 0.5, 1.0) == 0.5
    assert rbm.learning_rate == pytest.approx(0.105)

    rbm.w += 1.0
    assert trainer._drive_learning_rate(rbm, LrDriverType.BOLD, 0.9, 0.5) == 0.5
    assert rbm.learning_rate == pytest.approx(0.0525)
    assert np.array_equal(rbm.w, saved)


def test_barrel_driver():
    rbm = rbm_desc(4, 2).layer_t(seed=0)
    trainer = ContrastiveDivergence()
    rbm.learning_rate = 0.1
    trainer._drive_learning_rate(rbm, LrDriverType.BARREL, 0.5, 1.0)
    assert rbm.learning_rate == pytest.approx(0.1)
    trainer._drive_learning_rate(rbm, LrDriverType.BARREL, 0.7, 0.5)
    assert rbm.learning_rate == pytest.approx(0.05)


def test_training_keeps_the_last_sample_in_the_buffers():
    data = _binary()
    rbm = rbm_desc(16, 8, BatchSize(10)).layer_t(seed=0)
    assert not np.any(rbm.v1)
    rbm.train(data, 3)

    assert np.array_equal(rbm.v1, data[-1])
    assert rbm.free_energy() == pytest.approx(rbm.free_energy(data[-1]))
    assert rbm.free_energy() != pytest.approx(rbm.free_energy(np.zeros(16)))
    assert np.all((rbm.h1_s == 0.0) | (rbm.h1_s == 1.0))
    assert np.all((rbm.h1_a > 0.0) & (rbm.h1_a < 1.0))
    assert rbm.v2_a.shape == (16,) and rbm.h2_s.shape == (8,)


def test_diverging_biases_are_fatal():
    rbm = rbm_desc(4, 3).layer_t(seed=0)
    rbm.learning_rate = 1e300
    grads = Gradients(w=np.zeros_like(rbm.w), b=np.zeros_like(rbm.b), c=np.full(4, 1e10))
    with pytest.raises(AssertionError, match="visible biases"):
        ContrastiveDivergence.update(rbm, grads, _Increments.zeros_like(rbm))

    rbm = rbm_desc(4, 3).layer_t(seed=0)
    rbm.learning_rate = 1e300
    grads = Gradients(w=np.zeros_like(rbm.w), b=np.full(3, -1e10), c=np.zeros_like(rbm.c))
    with pytest.raises(AssertionError, match="hidden biases"):
        ContrastiveDivergence.update(rbm, grads, _Increments.zeros_like(rbm))

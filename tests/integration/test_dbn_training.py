import json

import numpy as np

from dbnkit import (
    Activation,
    BatchSize,
    Copy,
    Function,
    Momentum,
    ShufflePre,
    Trainer,
    Verbose,
    Watcher,
    avgp_layer_3d_desc,
    conv_rbm_desc,
    dbn_desc,
    dense_desc,
    rbm_desc,
)
from dbnkit.data import add_gaussian_noise, binarize, make_digits
from dbnkit.reporting import JsonlSink, write_summary
from dbnkit.training import CGTrainer


def _digits(n=90, size=12, classes=3, seed=0):
    images, labels = make_digits(n, classes=classes, size=size, seed=seed)
    return binarize(images), labels


def test_pretrain_then_fine_tune_with_sgd(tmp_path):
    images, labels = _digits()
    net = dbn_desc(
        [
            rbm_desc(144, 30, BatchSize(10), Momentum()),
            dense_desc(30, 3, Activation(Function.SOFTMAX)),
        ],
        BatchSize(10),
        Momentum(),
        ShufflePre(),
    ).dbn_t(seed=0)
    net.momentum = 0.5

    sink = JsonlSink(tmp_path / "pretrain.jsonl", sha="test")
    errors = net.pretrain(images, 5, callbacks=[sink])
    assert len(errors) == 1 and np.isfinite(errors[0])

    loss = net.fine_tune(images, labels, 30)
    history = net.fine_tune_history
    assert len(history) == 30
    assert history[-1]["loss"] < history[0]["loss"]
    assert loss == history[-1]["loss"]
    assert net.evaluate_error(images, labels) < 0.5

    context = net[1].sgd_context()
    assert context.output is not None and context.output.shape[1] == 3
    assert np.any(context.w_grad != 0.0)

    summary = json.loads(open(write_summary(tmp_path / "pretrain.jsonl", tmp_path / "s.json")).read())
    assert list(summary["groups"]) == ["pretrain/0"]


def test_conv_network_pretrains_every_rbm(tmp_path):
    images, labels = _digits(n=40, size=10)
    net = dbn_desc(
        [
            conv_rbm_desc(1, 10, 10, 4, 3, 3, BatchSize(10)),
            avgp_layer_3d_desc(4, 8, 8, 1, 2, 2),
            rbm_desc(64, 16, BatchSize(10)),
            dense_desc(16, 3, Activation(Function.SOFTMAX)),
        ],
        BatchSize(10),
    ).dbn_t(seed=1)

    sink = JsonlSink(tmp_path / "metrics.jsonl", sha="test")
    errors = net.pretrain(images, 2, callbacks=[sink])
    assert len(errors) == 2
    records = [json.loads(line) for line in (tmp_path / "metrics.jsonl").read_text().splitlines()]
    assert sorted({r["layer"] for r in records}) == [0, 2]

    loss = net.fine_tune(images, labels, 2)
    assert np.isfinite(loss)


def test_fine_tune_with_conjugate_gradient():
    images, labels = _digits(n=40, size=8)
    net = dbn_desc(
        [rbm_desc(64, 12), dense_desc(12, 3, Activation(Function.SOFTMAX))],
        BatchSize(5),
        Trainer(CGTrainer),
    ).dbn_t(seed=2)
    net.fine_tune(images, labels, 4)

    losses = [m["loss"] for m in net.fine_tune_history]
    assert losses[-1] < losses[0]
    for layer in net.trainable_layers():
        context = layer.cg_context()
        assert len(context.history) == 4 * 2
        assert np.isfinite(context.best_loss)
        assert context.best_w.shape == layer.w.shape


def test_denoising_pretraining_and_regression_fine_tune():
    images, _ = _digits(n=30, size=8)
    clean = images.reshape(30, 64)
    noisy = np.clip(add_gaussian_noise(clean, np.random.default_rng(0), std=0.2), 0.0, 1.0)
    net = dbn_desc(
        [rbm_desc(64, 20, BatchSize(10)), rbm_desc(20, 8, BatchSize(10))],
        BatchSize(10),
    ).dbn_t(seed=3)

    errors = net.pretrain_denoising(noisy, clean, 3)
    assert len(errors) == 2 and all(np.isfinite(errors))

    targets = net.features(clean)
    loss = net.fine_tune(noisy, targets, 3)
    assert np.isfinite(loss)
    assert not net.is_classifier


def test_verbose_network_prints_phase_banners(capsys):
    images, labels = _digits(n=20, size=8)
    net = dbn_desc(
        [rbm_desc(64, 8, BatchSize(10)), dense_desc(8, 3, Activation(Function.SOFTMAX))],
        BatchSize(10),
        Verbose(),
    ).dbn_t(seed=4)
    net.pretrain(images, 1)
    net.fine_tune(images, labels, 1)
    out = capsys.readouterr().out
    assert "DBN pretraining" in out
    assert "DBN fine-tuning" in out
    assert "DBN with 2 layers" in out
    assert "epoch    1" in out


class _Events:
    log = []

    def on_train_begin(self, layer, epochs, samples):
        self.log.append(("begin", samples))

    def on_epoch(self, epoch, metrics):
        self.log.append(("epoch", epoch))

    def on_train_end(self, layer, error):
        self.log.append(("end",))


def test_copy_repeats_every_sample_during_pretraining():
    images, _ = _digits(n=20, size=8)
    plain = dbn_desc([rbm_desc(64, 8, BatchSize(10))], BatchSize(10)).dbn_t(seed=0)
    copied = dbn_desc([rbm_desc(64, 8, BatchSize(10))], BatchSize(10), Copy(3)).dbn_t(seed=0)
    assert np.array_equal(plain[0].w, copied[0].w)

    _Events.log.clear()
    plain.pretrain(images, 1, callbacks=[_Events()])
    copied.pretrain(images, 1, callbacks=[_Events()])
    assert [e for e in _Events.log if e[0] == "begin"] == [("begin", 20), ("begin", 60)]
    assert not np.array_equal(plain[0].w, copied[0].w)

    x = np.arange(4.0).reshape(2, 2)
    assert copied._copies(x).tolist() == [[0.0, 1.0]] * 3 + [[2.0, 3.0]] * 3


def test_network_watcher_follows_every_pretrained_layer():
    images, _ = _digits(n=20, size=8)
    net = dbn_desc(
        [rbm_desc(64, 8, BatchSize(10)), rbm_desc(8, 4, BatchSize(10))],
        BatchSize(10),
        Watcher(_Events),
    ).dbn_t(seed=5)
    _Events.log.clear()
    net.pretrain(images, 2)
    per_layer = [("begin", 20), ("epoch", 1), ("epoch", 2), ("end",)]
    assert _Events.log == [("begin", 20)] + per_layer * 2

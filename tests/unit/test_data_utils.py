import numpy as np
import pytest

from dbnkit.data import (
    add_gaussian_noise,
    batch_iterator,
    binarize,
    make_digits,
    make_prototypes,
    mask_noise,
    normalize,
)


def test_batch_iterator_follows_the_order():
    inputs = np.arange(10).reshape(5, 2)
    targets = np.arange(5)
    batches = list(batch_iterator(inputs, targets, batch_size=2, order=[4, 3, 2, 1, 0]))
    assert [b.inputs.shape[0] for b in batches] == [2, 2, 1]
    assert list(batches[0].targets) == [4, 3]
    assert batches[2].inputs.tolist() == [[0, 1]]

    assert all(b.targets is None for b in batch_iterator(inputs, batch_size=3))
    with pytest.raises(ValueError):
        list(batch_iterator(inputs, targets[:3], batch_size=2))
    with pytest.raises(ValueError):
        list(batch_iterator(inputs, batch_size=0))


def test_preprocessing_helpers():
    x = np.array([[0.2, 0.8, 0.5], [1.0, 3.0, 5.0]])
    assert binarize(x).tolist() == [[0.0, 1.0, 0.0], [1.0, 1.0, 1.0]]

    normed = normalize(x)
    assert np.allclose(normed.mean(axis=1), 0.0)
    assert np.allclose(normed.std(axis=1), 1.0)
    assert np.array_equal(normalize(np.ones((2, 3))), np.zeros((2, 3)))

    rng = np.random.default_rng(0)
    masked = mask_noise(np.ones((50, 40)), rng, ratio=0.25)
    assert 0.2 < 1.0 - masked.mean() < 0.3
    with pytest.raises(ValueError):
        mask_noise(x, rng, ratio=1.5)
    assert add_gaussian_noise(x, rng, std=0.0).tolist() == x.tolist()


def test_synthetic_digits():
    prototypes = make_prototypes(4, size=12, seed=1)
    assert prototypes.shape == (4, 12, 12)
    assert set(np.unique(prototypes)) <= {0.0, 1.0}

    images, labels = make_digits(30, classes=4, size=12, seed=1)
    assert images.shape == (30, 1, 12, 12)
    assert labels.shape == (30,)
    assert images.min() >= 0.0 and images.max() <= 1.0
    assert set(labels) <= set(range(4))

    again, _ = make_digits(30, classes=4, size=12, seed=1)
    assert np.array_equal(images, again)
    with pytest.raises(ValueError):
        make_prototypes(0)

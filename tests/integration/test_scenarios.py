import numpy as np

from dbnkit import BatchSize, rbm_desc
from dbnkit.data import binarize, make_digits


def test_binary_rbm_reconstruction_error_decreases():
    images, _ = make_digits(100, size=28, seed=0)
    data = binarize(images).reshape(100, 784)

    rbm = rbm_desc(784, 100, BatchSize(10)).layer_t(seed=0)
    final = rbm.train(data, 5)

    errors = [m["error"] for m in rbm.training_history]
    assert len(errors) == 5
    assert errors[4] < errors[0]
    assert final == errors[4]
    assert rbm.reconstruction_error(data) < errors[0]

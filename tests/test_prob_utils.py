import math

import numpy as np
import pytest
import torch

from dpmix.errors import NumericalError
from dpmix.utils import prob as prob_utils
from dpmix.utils.random import RandomVariateSource


def test_normalize_log_weights_sums_to_one():
    log_weights = torch.tensor([0.0, math.log(3.0), -1.0], dtype=torch.float64)
    probs = prob_utils.normalize_log_weights(log_weights)
    assert probs.sum() == pytest.approx(1.0)
    assert probs[1] / probs[0] == pytest.approx(3.0)


def test_normalize_log_weights_tiny_likelihoods_do_not_underflow():
    log_weights = torch.tensor([-2000.0, -2001.0], dtype=torch.float64)
    probs = prob_utils.normalize_log_weights(log_weights)
    np.testing.assert_allclose(probs, [1 / (1 + math.exp(-1)), 1 / (1 + math.e)])


def test_normalize_log_weights_allows_some_minus_inf():
    log_weights = torch.tensor([float("-inf"), 0.0], dtype=torch.float64)
    np.testing.assert_allclose(prob_utils.normalize_log_weights(log_weights), [0.0, 1.0])


@pytest.mark.parametrize(
    "values",
    [
        [float("-inf"), float("-inf")],
        [0.0, float("nan")],
        [0.0, float("inf")],
    ],
)
def test_normalize_log_weights_degenerate(values):
    with pytest.raises(NumericalError):
        prob_utils.normalize_log_weights(torch.tensor(values, dtype=torch.float64))


def test_sample_from_log_weights_uses_source():
    log_weights = torch.tensor([float("-inf"), 0.0, float("-inf")], dtype=torch.float64)
    rng = RandomVariateSource(0)
    assert all(
        prob_utils.sample_from_log_weights(log_weights, rng) == 1 for _ in range(10)
    )

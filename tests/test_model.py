from unittest.mock import MagicMock

import numpy as np
import pytest
import torch

from dpmix.core.model import DPMM
from dpmix.distributions import GaussianLikelihood, GaussianMeanPrior
from dpmix.errors import ConfigurationError
from dpmix.samplers import CollapsedGibbsSampler, NonCollapsedGibbsSampler, SamplerStatus

# ----------------------
# Fixtures
# ----------------------


@pytest.fixture(scope="module")
def toy_data():
    np.random.seed(0)
    cluster1 = np.random.normal(loc=[-4, -4], scale=0.5, size=(20, 2))
    cluster2 = np.random.normal(loc=[4, 4], scale=0.5, size=(20, 2))
    return np.vstack([cluster1, cluster2])


@pytest.fixture(scope="module")
def model_options():
    return dict(
        base_distribution=GaussianMeanPrior(torch.zeros(2), cov=25.0),
        likelihood=GaussianLikelihood(cov=0.25, data_dim=2),
        seed=0,
        max_sweeps=30,
    )


# ----------------------
# Tests
# ----------------------


def test_selects_collapsed_by_default(model_options):
    assert isinstance(DPMM(**model_options).sampler, CollapsedGibbsSampler)


def test_selects_noncollapsed(model_options):
    assert isinstance(DPMM(collapsed=False, **model_options).sampler, NonCollapsedGibbsSampler)


def test_uses_given_sampler(toy_data):
    sampler = MagicMock()
    sampler.fit.return_value = {"status": SamplerStatus.CONVERGED}
    model = DPMM(sampler=sampler)

    assert model.fit(toy_data, timeout=5.0) == {"status": SamplerStatus.CONVERGED}
    sampler.fit.assert_called_once_with(
        toy_data, initial_assignment=None, cancel_event=None, timeout=5.0
    )


def test_given_sampler_rejects_sampler_options(model_options):
    with pytest.raises(ConfigurationError):
        DPMM(sampler=MagicMock(), **model_options)
    with pytest.raises(ConfigurationError):
        DPMM(sampler=MagicMock(), max_sweeps=10)


def test_fit(toy_data, model_options):
    result = DPMM(**model_options).fit(toy_data)
    assert len(result["assignment"]) == 40
    assert len(result["cluster_labels"]) == 2


def test_configuration_error_is_eager(model_options):
    options = dict(model_options, alpha=0.0)
    with pytest.raises(ConfigurationError):
        DPMM(**options)

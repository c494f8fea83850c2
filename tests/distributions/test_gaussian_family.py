import math

import pytest
import torch
from torch.distributions import MultivariateNormal, Normal

from dpmix.distributions import (
    BetaPrior,
    GaussianLikelihood,
    GaussianMeanPrior,
    SufficientStatistics,
)
from dpmix.errors import ConfigurationError
from dpmix.utils.random import RandomVariateSource

# ----------------------
# Fixtures
# ----------------------


@pytest.fixture(scope="module")
def prior_1d():
    return GaussianMeanPrior(torch.zeros(1), cov=4.0)


@pytest.fixture(scope="module")
def likelihood_1d():
    return GaussianLikelihood(cov=1.0, data_dim=1)


# ----------------------
# Conjugate update
# ----------------------


def test_posterior_matches_closed_form(prior_1d, likelihood_1d):
    data = torch.tensor([[1.0], [2.0], [3.0]], dtype=torch.float64)
    post = prior_1d.posterior(SufficientStatistics.from_data(data), likelihood_1d)

    post_precision = 1.0 / 4.0 + 3.0
    assert post.cov.item() == pytest.approx(1.0 / post_precision)
    assert post.mean()["mean"].item() == pytest.approx(6.0 / post_precision)


def test_posterior_of_empty_statistics_is_prior(prior_1d, likelihood_1d):
    post = prior_1d.posterior(SufficientStatistics.empty(1), likelihood_1d)
    assert torch.allclose(post.loc, prior_1d.loc)
    assert torch.allclose(post.cov, prior_1d.cov)


def test_posterior_requires_gaussian_likelihood(prior_1d):
    from dpmix.distributions import BernoulliLikelihood

    with pytest.raises(ConfigurationError):
        prior_1d.posterior(SufficientStatistics.empty(1), BernoulliLikelihood(1))


# ----------------------
# Predictive densities
# ----------------------


def test_prior_predictive_is_widened_normal(prior_1d, likelihood_1d):
    data = torch.tensor([[-1.0], [0.5], [3.0]], dtype=torch.float64)
    expected = Normal(
        torch.tensor(0.0, dtype=torch.float64), torch.tensor(math.sqrt(5.0), dtype=torch.float64)
    ).log_prob(data[:, 0])
    assert torch.allclose(likelihood_1d.log_prior_predictive(data, prior_1d), expected)


def test_marginal_likelihood_matches_joint_normal(prior_1d, likelihood_1d):
    data = torch.tensor([[0.3], [1.2], [-0.4], [2.0]], dtype=torch.float64)
    n = data.shape[0]
    joint_cov = torch.eye(n, dtype=torch.float64) + 4.0 * torch.ones(n, n, dtype=torch.float64)
    expected = MultivariateNormal(torch.zeros(n, dtype=torch.float64), joint_cov).log_prob(
        data[:, 0]
    )
    assert likelihood_1d.log_marginal_likelihood(data, prior_1d).item() == pytest.approx(
        expected.item()
    )


def test_vectorised_shapes():
    prior = GaussianMeanPrior(torch.zeros(2), cov=10.0)
    likelihood = GaussianLikelihood(cov=1.0, data_dim=2)
    data = torch.randn(5, 2, dtype=torch.float64)
    statistics = SufficientStatistics.stack(
        [SufficientStatistics.from_data(data[:k]) for k in (1, 2, 4)]
    )
    assert likelihood.log_posterior_predictive(data, statistics, prior).shape == (5, 3)

    params = {"mean": torch.zeros(3, 2, dtype=torch.float64)}
    assert likelihood.log_likelihood(data, params).shape == (5, 3)


def test_predictive_of_each_cluster_matches_single_evaluation():
    prior = GaussianMeanPrior(torch.zeros(2), cov=10.0)
    likelihood = GaussianLikelihood(cov=[1.0, 2.0])
    data = torch.tensor([[0.5, -1.0], [2.0, 2.0], [1.0, 0.0]], dtype=torch.float64)
    stats = [SufficientStatistics.from_data(data[:1]), SufficientStatistics.from_data(data)]
    x = torch.tensor([[1.0, 1.0]], dtype=torch.float64)

    joint = likelihood.log_posterior_predictive(x, SufficientStatistics.stack(stats), prior)
    for k, s in enumerate(stats):
        single = likelihood.log_posterior_predictive(x, SufficientStatistics.stack([s]), prior)
        assert joint[0, k].item() == pytest.approx(single[0, 0].item())


# ----------------------
# Sampling and compatibility
# ----------------------


def test_sample_shape_and_moments():
    prior = GaussianMeanPrior(torch.tensor([1.0, -2.0]), cov=0.25)
    rng = RandomVariateSource(0)
    draws = torch.stack([prior.sample(rng)["mean"] for _ in range(4000)])
    assert draws.shape == (4000, 2)
    assert torch.allclose(draws.mean(dim=0), prior.loc, atol=0.05)


def test_from_data_centres_on_data():
    data = torch.tensor([[0.0, 10.0], [2.0, 14.0]], dtype=torch.float64)
    prior = GaussianMeanPrior.from_data(data)
    assert torch.allclose(prior.loc, torch.tensor([1.0, 12.0], dtype=torch.float64))


def test_incompatible_pairs():
    likelihood = GaussianLikelihood(cov=1.0, data_dim=2)
    with pytest.raises(ConfigurationError):
        likelihood.check_compatible(BetaPrior(data_dim=2))
    with pytest.raises(ConfigurationError):
        likelihood.check_compatible(GaussianMeanPrior(torch.zeros(3)))
    likelihood.check_compatible(GaussianMeanPrior(torch.zeros(2)))


def test_invalid_covariance():
    with pytest.raises(ConfigurationError):
        GaussianLikelihood(cov=[[1.0, 2.0], [2.0, 1.0]])

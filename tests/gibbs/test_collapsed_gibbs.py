import threading

import numpy as np
import pytest
import torch
from scipy.special import gammaln

from dpmix.distributions import (
    BernoulliLikelihood,
    BetaPrior,
    DiagonalGaussianLikelihood,
    GaussianLikelihood,
    GaussianMeanPrior,
    NormalInverseGammaPrior,
)
from dpmix.errors import ConfigurationError, ConvergenceWarning, NumericalError
from dpmix.samplers import CollapsedGibbsSampler, SamplerStatus

# ----------------------
# Fixtures
# ----------------------


@pytest.fixture(scope="module")
def toy_data():
    """2D Gaussian blobs, 30 points each."""
    np.random.seed(0)
    cluster1 = np.random.normal(loc=[-4, -4], scale=0.5, size=(30, 2))
    cluster2 = np.random.normal(loc=[4, 4], scale=0.5, size=(30, 2))
    return np.vstack([cluster1, cluster2])


def make_sampler(**kwargs) -> CollapsedGibbsSampler:
    options = dict(
        base_distribution=GaussianMeanPrior(torch.zeros(2), cov=25.0),
        likelihood=GaussianLikelihood(cov=0.25, data_dim=2),
        max_sweeps=30,
        seed=0,
    )
    options.update(kwargs)
    return CollapsedGibbsSampler(**options)


def broken_log_likelihoods(x, state, slots):
    return torch.full((len(slots),), float("nan"), dtype=torch.float64)


def assert_valid_result(result, n_points):
    assert len(result["assignment"]) == n_points
    members = sorted(i for c in result["cluster_assignment"] for i in c)
    assert members == list(range(n_points))
    assert all(len(c) > 0 for c in result["cluster_assignment"])
    assert result["cluster_labels"] == sorted(result["cluster_labels"])
    assert len(result["cluster_labels"]) == len(result["cluster_assignment"])
    for label, members in zip(result["cluster_labels"], result["cluster_assignment"]):
        assert all(result["assignment"][i] == label for i in members)


# ----------------------
# Fit
# ----------------------


def test_fit_separates_blobs(toy_data):
    result = make_sampler().fit(toy_data)
    assert_valid_result(result, 60)
    assert result["status"] == SamplerStatus.CONVERGED
    assert len(result["cluster_labels"]) == 2
    means = torch.stack(result["cluster_params"]["mean"])
    assert means.shape == (2, 2)
    assert torch.allclose(
        torch.sort(means[:, 0]).values, torch.tensor([-4.0, 4.0], dtype=torch.float64), atol=0.5
    )


def test_trace_and_sweeps(toy_data):
    result = make_sampler().fit(toy_data)
    assert result["sweeps"] == len(result["trace"])
    sweeps = [sweep for sweep, _, _ in result["trace"]]
    assert sweeps == list(range(result["sweeps"]))
    assert all(np.isfinite(ll) for _, _, ll in result["trace"])


def test_fit_is_deterministic_under_seed(toy_data):
    first = make_sampler(seed=17).fit(toy_data)
    second = make_sampler(seed=17).fit(toy_data)
    assert first["assignment"] == second["assignment"]
    assert first["trace"] == second["trace"]


def test_state_stays_consistent(toy_data):
    sampler = make_sampler(max_sweeps=3, convergence_window=10)
    with pytest.warns(ConvergenceWarning):
        sampler.fit(toy_data)
    sampler.state.validate()


def test_conservation_after_every_sweep(toy_data):
    holder = {}

    def validate_state(monitor):
        state = holder["sampler"].state
        state.validate()
        assert sum(state.counts()) == 60
        return False

    sampler = make_sampler(stopping_rule=validate_state, max_sweeps=5)
    holder["sampler"] = sampler
    with pytest.warns(ConvergenceWarning):
        result = sampler.fit(toy_data)
    assert result["sweeps"] == 5


def test_does_not_modify_input(toy_data):
    data = toy_data.copy()
    make_sampler(max_sweeps=2).fit(data)
    np.testing.assert_array_equal(data, toy_data)


def test_one_dimensional_data():
    np.random.seed(1)
    data = np.concatenate([np.random.normal(-10, 1, 20), np.random.normal(10, 1, 20)])
    sampler = make_sampler(
        base_distribution=GaussianMeanPrior(torch.zeros(1), cov=100.0),
        likelihood=GaussianLikelihood(cov=1.0, data_dim=1),
    )
    result = sampler.fit(data)
    assert_valid_result(result, 40)
    assert len(result["cluster_labels"]) == 2


def test_single_observation():
    result = make_sampler(max_sweeps=5, convergence_window=2).fit([[0.5, 0.5]])
    assert result["assignment"] == [result["cluster_labels"][0]]
    assert result["cluster_assignment"] == [{0}]


def test_diag_gaussian_family(toy_data):
    sampler = make_sampler(
        base_distribution=NormalInverseGammaPrior.from_data(toy_data, components_num=2),
        likelihood=DiagonalGaussianLikelihood(data_dim=2),
    )
    result = sampler.fit(toy_data)
    assert_valid_result(result, 60)
    assert set(result["cluster_params"]) == {"mean", "var"}


def test_beta_bernoulli_family():
    np.random.seed(2)
    data = np.vstack(
        [
            (np.random.rand(25, 12) < 0.9).astype(float),
            (np.random.rand(25, 12) < 0.1).astype(float),
        ]
    )
    sampler = make_sampler(
        base_distribution=BetaPrior(1.0, 1.0, data_dim=12),
        likelihood=BernoulliLikelihood(data_dim=12),
    )
    result = sampler.fit(data)
    assert_valid_result(result, 50)
    assert set(result["cluster_params"]) == {"p"}


# ----------------------
# Initialisation
# ----------------------


def test_initial_assignment_is_used(toy_data):
    cancel_event = threading.Event()
    cancel_event.set()
    labels = [0] * 20 + [1] * 20 + [2] * 20
    result = make_sampler().fit(toy_data, initial_assignment=labels, cancel_event=cancel_event)
    assert result["status"] == SamplerStatus.CANCELLED
    assert result["cluster_assignment"] == [
        set(range(20)),
        set(range(20, 40)),
        set(range(40, 60)),
    ]


def test_random_init_strategy(toy_data):
    cancel_event = threading.Event()
    cancel_event.set()
    sampler = make_sampler(init_strategy="random", max_init_clusters=4)
    result = sampler.fit(toy_data, cancel_event=cancel_event)
    assert 1 <= len(result["cluster_labels"]) <= 4


def test_get_initial_assignment_crp_covers_all(toy_data):
    labels = make_sampler().get_initial_assignment(len(toy_data))
    assert len(labels) == len(toy_data)
    assert labels[0] == 0


# ----------------------
# Termination
# ----------------------


def test_exhausted_budget_warns(toy_data):
    sampler = make_sampler(max_sweeps=2, convergence_window=5)
    with pytest.warns(ConvergenceWarning):
        result = sampler.fit(toy_data)
    assert result["status"] == SamplerStatus.EXHAUSTED
    assert result["sweeps"] == 2


def test_cancel_between_sweeps(toy_data):
    cancel_event = threading.Event()

    def cancel_after_two(monitor):
        if len(monitor) == 2:
            cancel_event.set()
        return False

    sampler = make_sampler(stopping_rule=cancel_after_two)
    result = sampler.fit(toy_data, cancel_event=cancel_event)
    assert result["status"] == SamplerStatus.CANCELLED
    assert result["sweeps"] == 2
    assert_valid_result(result, 60)


def test_zero_timeout_cancels_before_first_sweep(toy_data):
    result = make_sampler().fit(toy_data, timeout=0.0)
    assert result["status"] == SamplerStatus.CANCELLED
    assert result["sweeps"] == 0
    assert_valid_result(result, 60)


def test_custom_stopping_rule(toy_data):
    sampler = make_sampler(stopping_rule=lambda monitor: len(monitor) >= 3)
    result = sampler.fit(toy_data)
    assert result["status"] == SamplerStatus.CONVERGED
    assert result["sweeps"] == 3


# ----------------------
# Numerical failures
# ----------------------


def test_failed_step_is_rolled_back(toy_data):
    sampler = make_sampler()
    state = sampler.initialize_state(sampler.prepare_data(toy_data))
    before = state.labels().copy()
    clusters_before = state.cluster_labels()

    sampler.cluster_log_likelihoods = broken_log_likelihoods
    for index in (0, 31, 59):
        with pytest.raises(NumericalError):
            sampler.resample_assignment(state, index)

    assert state.labels().tolist() == before.tolist()
    assert state.cluster_labels() == clusters_before
    state.validate()


def test_numerical_error_returns_last_good_state(toy_data):
    holder = {}

    def break_after_first_sweep(monitor):
        if len(monitor) == 1:
            holder["sampler"].cluster_log_likelihoods = broken_log_likelihoods
        return False

    sampler = make_sampler(stopping_rule=break_after_first_sweep, max_sweeps=10)
    holder["sampler"] = sampler

    with pytest.raises(NumericalError) as exc_info:
        sampler.fit(toy_data)

    result = exc_info.value.result
    assert sampler.status == SamplerStatus.ABORTED
    assert result["status"] == SamplerStatus.ABORTED
    assert result["sweeps"] == 1
    assert_valid_result(result, 60)
    sampler.state.validate()


# ----------------------
# Dispersion
# ----------------------


def test_alpha_resampling(toy_data):
    sampler = make_sampler(alpha_prior=(1.0, 1.0), max_sweeps=5, convergence_window=10)
    with pytest.warns(ConvergenceWarning):
        result = sampler.fit(toy_data)
    assert result["alpha"] > 0
    alphas = [record.alpha for record in sampler.monitor.records]
    assert len(set(alphas)) > 1


def test_update_alpha_positive():
    sampler = make_sampler(alpha_prior=(2.0, 0.5))
    for k in (1, 3, 10):
        assert sampler.update_alpha(1.0, n_points=50, k=k) > 0


def test_update_alpha_targets_exact_posterior():
    a, b, n_points, k = 1.0, 1.0, 100, 5
    sampler = make_sampler(alpha_prior=(a, b), seed=11)

    alpha, draws = 1.0, []
    for i in range(22000):
        alpha = sampler.update_alpha(alpha, n_points=n_points, k=k)
        if i >= 2000:
            draws.append(alpha)

    # p(alpha | k, n) on a grid: Gamma(a, b) prior times alpha^k Gamma(alpha) / Gamma(alpha + n)
    grid = np.linspace(1e-4, 15.0, 150001)
    log_post = (a - 1 + k) * np.log(grid) - b * grid + gammaln(grid) - gammaln(grid + n_points)
    weights = np.exp(log_post - log_post.max())
    exact_mean = np.sum(grid * weights) / np.sum(weights)

    assert exact_mean == pytest.approx(0.979, abs=0.01)
    assert np.mean(draws) == pytest.approx(exact_mean, abs=0.05)


# ----------------------
# Configuration errors
# ----------------------


@pytest.mark.parametrize(
    "data",
    [
        np.empty((0, 2)),
        np.array([[0.0, np.nan], [1.0, 1.0]]),
        np.array([[0.0, np.inf]]),
        np.zeros((4, 3)),
        np.zeros((2, 2, 2)),
    ],
)
def test_invalid_data(data):
    with pytest.raises(ConfigurationError):
        make_sampler().fit(data)


def test_invalid_initial_assignment(toy_data):
    with pytest.raises(ConfigurationError):
        make_sampler().fit(toy_data, initial_assignment=[0, 1, 2])


@pytest.mark.parametrize(
    "options",
    [
        {"alpha": 0.0},
        {"alpha": -0.5},
        {"collapsed": False},
        {"likelihood": BernoulliLikelihood(data_dim=2)},
    ],
)
def test_invalid_configuration(options):
    with pytest.raises(ConfigurationError):
        make_sampler(**options)


def test_print_model():
    description = make_sampler().print_model()
    assert description.startswith("CollapsedGibbsSampler(")
    assert "alpha=1.0" in description

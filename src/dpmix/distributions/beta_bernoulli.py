from __future__ import annotations

from typing import Union

import numpy as np
import torch
from torch import Tensor

from dpmix.distributions.base import (
    BaseDistribution,
    ObservationLikelihood,
    Params,
    SufficientStatistics,
)
from dpmix.errors import ConfigurationError
from dpmix.utils.random import RandomVariateSource

ArrayLike = Union[Tensor, np.ndarray, list, float]


def _log_beta(a: Tensor, b: Tensor) -> Tensor:
    return torch.lgamma(a) + torch.lgamma(b) - torch.lgamma(a + b)


class BetaPrior(BaseDistribution):
    """
    Independent Beta(a_d, b_d) priors over the success probability of each binary
    feature.
    """

    def __init__(self, a: ArrayLike = 1.0, b: ArrayLike = 1.0, data_dim: int = 1):
        a_t = torch.as_tensor(a, dtype=torch.float64)
        b_t = torch.as_tensor(b, dtype=torch.float64)
        if a_t.dim() > 0:
            data_dim = int(a_t.shape[0])
        elif b_t.dim() > 0:
            data_dim = int(b_t.shape[0])

        self.data_dim = data_dim
        self.a = a_t.expand(data_dim).clone()
        self.b = b_t.expand(data_dim).clone()

        if torch.any(self.a <= 0.0) or torch.any(self.b <= 0.0):
            raise ConfigurationError("Beta prior parameters must be strictly positive")

    def sample(self, rng: RandomVariateSource) -> Params:
        p = rng.beta(self.a.numpy(), self.b.numpy())
        return {"p": torch.as_tensor(p, dtype=torch.float64)}

    def mean(self) -> Params:
        return {"p": self.a / (self.a + self.b)}

    def log_density(self, params: Params) -> Tensor:
        p = params["p"]
        return torch.sum(
            torch.xlogy(self.a - 1.0, p)
            + torch.xlogy(self.b - 1.0, 1.0 - p)
            - _log_beta(self.a, self.b)
        )

    def posterior(
        self, statistics: SufficientStatistics, likelihood: ObservationLikelihood
    ) -> BetaPrior:
        if not isinstance(likelihood, BernoulliLikelihood):
            return super().posterior(statistics, likelihood)
        return BetaPrior(
            a=self.a + statistics.total, b=self.b + statistics.n - statistics.total
        )

    def __repr__(self) -> str:
        return f"BetaPrior(data_dim={self.data_dim})"


class BernoulliLikelihood(ObservationLikelihood):
    """Vectors of independent binary features, one success probability per feature."""

    conjugate_priors = (BetaPrior,)

    def __init__(self, data_dim: int):
        self.data_dim = int(data_dim)

    def log_likelihood(self, data: Tensor, params: Params) -> Tensor:
        p = params["p"].reshape(-1, self.data_dim).unsqueeze(0)
        x = data.unsqueeze(1)
        # xlogy keeps 0 * log(0) at zero for draws on the boundary of [0, 1]
        return torch.sum(torch.xlogy(x, p) + torch.xlogy(1.0 - x, 1.0 - p), dim=-1)

    def log_posterior_predictive(
        self, data: Tensor, statistics: SufficientStatistics, base: BaseDistribution
    ) -> Tensor:
        if not isinstance(base, BetaPrior):
            raise ConfigurationError(
                f"BernoulliLikelihood needs a BetaPrior, got {type(base).__name__}"
            )

        counts = statistics.n.unsqueeze(-1)
        # p_hat.shape -> (1, K, D)
        p_hat = ((base.a + statistics.total) / (base.a + base.b + counts)).unsqueeze(0)
        x = data.unsqueeze(1)
        return torch.sum(
            torch.xlogy(x, p_hat) + torch.xlogy(1.0 - x, 1.0 - p_hat), dim=-1
        )

    def log_marginal_likelihood(self, data: Tensor, base: BaseDistribution) -> Tensor:
        if not isinstance(base, BetaPrior):
            return super().log_marginal_likelihood(data, base)

        ones = torch.sum(data, dim=0)
        zeros = data.shape[0] - ones
        return torch.sum(
            _log_beta(base.a + ones, base.b + zeros) - _log_beta(base.a, base.b)
        )

    def __repr__(self) -> str:
        return f"BernoulliLikelihood(data_dim={self.data_dim})"

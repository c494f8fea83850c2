from __future__ import annotations

from typing import Union

import numpy as np
import torch
from torch import Tensor
from torch.distributions import MultivariateNormal

from dpmix.distributions.base import (
    BaseDistribution,
    ObservationLikelihood,
    Params,
    SufficientStatistics,
)
from dpmix.errors import ConfigurationError
from dpmix.utils.random import RandomVariateSource

ArrayLike = Union[Tensor, np.ndarray, list, float]


def _as_cov_matrix(cov: ArrayLike, data_dim: int) -> Tensor:
    cov_t = torch.as_tensor(cov, dtype=torch.float64)
    if cov_t.dim() == 0:
        cov_t = cov_t * torch.eye(data_dim, dtype=torch.float64)
    elif cov_t.dim() == 1:
        cov_t = torch.diag(cov_t)

    if cov_t.shape != (data_dim, data_dim):
        raise ConfigurationError(
            f"Covariance must have shape {(data_dim, data_dim)}, got {tuple(cov_t.shape)}"
        )
    try:
        torch.linalg.cholesky(cov_t)
    except RuntimeError as e:
        raise ConfigurationError("Covariance must be positive definite") from e

    return cov_t


class GaussianMeanPrior(BaseDistribution):
    """
    Multivariate normal prior N(mean_0, cov_0) over a cluster mean, conjugate to a
    Gaussian likelihood with known covariance.
    """

    def __init__(self, mean: ArrayLike, cov: ArrayLike = 1.0):
        """
        Args:
            mean: Prior mean vector of shape (D,).
            cov: Prior covariance, given as a (D, D) matrix, a (D,) diagonal or a
                scalar multiple of the identity.
        """
        self.loc = torch.as_tensor(mean, dtype=torch.float64).reshape(-1)
        self.data_dim = int(self.loc.shape[0])
        self.cov = _as_cov_matrix(cov, self.data_dim)
        self.precision = torch.linalg.inv(self.cov)

    @classmethod
    def from_data(cls, data: ArrayLike, scale: float = 1.0) -> GaussianMeanPrior:
        """
        Centres the prior on the empirical mean with the per-dimension empirical
        variance (times `scale`), so cluster means can land anywhere in the data.
        """
        data_t = torch.as_tensor(data, dtype=torch.float64)
        data_t = data_t.reshape(data_t.shape[0], -1)
        data_var = torch.var(data_t, dim=0, unbiased=False).clamp_min(1e-6)
        return cls(mean=torch.mean(data_t, dim=0), cov=torch.diag(scale * data_var))

    def sample(self, rng: RandomVariateSource) -> Params:
        draw = rng.multivariate_normal(self.loc.numpy(), self.cov.numpy())
        return {"mean": torch.as_tensor(draw, dtype=torch.float64)}

    def mean(self) -> Params:
        return {"mean": self.loc.clone()}

    def log_density(self, params: Params) -> Tensor:
        return MultivariateNormal(self.loc, covariance_matrix=self.cov).log_prob(
            params["mean"]
        )

    def posterior(
        self, statistics: SufficientStatistics, likelihood: ObservationLikelihood
    ) -> GaussianMeanPrior:
        if not isinstance(likelihood, GaussianLikelihood):
            return super().posterior(statistics, likelihood)

        post_precision = self.precision + statistics.n * likelihood.precision
        post_cov = torch.linalg.inv(post_precision)
        post_mean = post_cov @ (
            self.precision @ self.loc + likelihood.precision @ statistics.total
        )
        # symmetrise to keep the Cholesky factorisation happy
        return GaussianMeanPrior(post_mean, 0.5 * (post_cov + post_cov.T))

    def __repr__(self) -> str:
        return f"GaussianMeanPrior(data_dim={self.data_dim})"


class GaussianLikelihood(ObservationLikelihood):
    """
    Multivariate normal observations N(x | mean, cov) with a known, shared covariance.
    The cluster parameter is the mean.
    """

    conjugate_priors = (GaussianMeanPrior,)

    def __init__(self, cov: ArrayLike = 1.0, data_dim: int = 1):
        """
        Args:
            cov: Observation covariance as a (D, D) matrix, a (D,) diagonal, or a
                scalar multiple of the identity (then `data_dim` sets D).
            data_dim (int): Dimensionality used when `cov` is a scalar.
        """
        cov_t = torch.as_tensor(cov, dtype=torch.float64)
        if cov_t.dim() > 0:
            data_dim = int(cov_t.shape[0])
        self.data_dim = data_dim
        self.cov = _as_cov_matrix(cov_t, data_dim)
        self.precision = torch.linalg.inv(self.cov)
        self.cov_chol = torch.linalg.cholesky(self.cov)

    def log_likelihood(self, data: Tensor, params: Params) -> Tensor:
        means = params["mean"].reshape(-1, self.data_dim)
        distr = MultivariateNormal(
            loc=means, scale_tril=self.cov_chol, validate_args=False
        )
        # data.shape -> (M, 1, D) broadcasts against the K means
        return distr.log_prob(data.unsqueeze(1))

    def log_posterior_predictive(
        self, data: Tensor, statistics: SufficientStatistics, base: BaseDistribution
    ) -> Tensor:
        if not isinstance(base, GaussianMeanPrior):
            raise ConfigurationError(
                f"GaussianLikelihood needs a GaussianMeanPrior, got {type(base).__name__}"
            )

        counts = statistics.n.reshape(-1, 1, 1)
        # post_cov.shape -> (K, D, D)
        post_cov = torch.linalg.inv(base.precision.unsqueeze(0) + counts * self.precision)
        weighted = (base.precision @ base.loc).unsqueeze(0) + statistics.total @ self.precision.T
        # post_mean.shape -> (K, D)
        post_mean = (post_cov @ weighted.unsqueeze(-1)).squeeze(-1)

        pred_cov = post_cov + self.cov.unsqueeze(0)
        pred_cov = 0.5 * (pred_cov + pred_cov.transpose(-1, -2))
        distr = MultivariateNormal(
            loc=post_mean, covariance_matrix=pred_cov, validate_args=False
        )
        return distr.log_prob(data.unsqueeze(1))

    def __repr__(self) -> str:
        return f"GaussianLikelihood(data_dim={self.data_dim})"

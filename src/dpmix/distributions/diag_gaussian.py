from __future__ import annotations

import math
from typing import Optional, Union

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


def init_kappa_0() -> float:
    """
    Default prior scalar precision (kappa_0) of the cluster mean.

    Returns:
        float: The initial value for kappa_0.
    """
    return 0.01


def init_nu_0(data_dim: int) -> float:
    """
    Default prior degrees of freedom (nu_0) based on data dimensionality.

    Args:
        data_dim (int): The dimensionality of the input data.

    Returns:
        float: The initial value for nu_0.
    """
    return float(data_dim + 2)


class NormalInverseGammaPrior(BaseDistribution):
    """
    Independent Normal-Inverse-Gamma prior over the mean and variance of every
    dimension of an axis-aligned Gaussian cluster:

        var_d ~ Scaled-Inv-chi2(nu_0, var_0_d)
        mean_d | var_d ~ N(mean_0_d, var_d / kappa_0)
    """

    def __init__(
        self,
        mean_0: ArrayLike,
        var_0: ArrayLike,
        kappa_0: Optional[float] = None,
        nu_0: Optional[float] = None,
    ):
        """
        Args:
            mean_0: Prior mean vector of shape (D,).
            var_0: Prior variance scale, shape (D,) or scalar.
            kappa_0 (float, optional): Pseudo-count of the mean. Defaults to
                `init_kappa_0()`.
            nu_0 (float, optional): Degrees of freedom of the variance. Defaults to
                `init_nu_0(D)`.
        """
        self.mean_0 = torch.as_tensor(mean_0, dtype=torch.float64).reshape(-1)
        self.data_dim = int(self.mean_0.shape[0])
        self.var_0 = torch.as_tensor(var_0, dtype=torch.float64).expand(self.data_dim).clone()
        self.kappa_0 = float(init_kappa_0() if kappa_0 is None else kappa_0)
        self.nu_0 = float(init_nu_0(self.data_dim) if nu_0 is None else nu_0)

        if self.kappa_0 <= 0.0 or self.nu_0 <= 0.0:
            raise ConfigurationError("kappa_0 and nu_0 must be strictly positive")
        if torch.any(self.var_0 <= 0.0):
            raise ConfigurationError("var_0 must be strictly positive")

    @classmethod
    def from_data(cls, data: ArrayLike, components_num: int = 1) -> NormalInverseGammaPrior:
        """
        Heuristic data-driven prior: the empirical mean, and per-dimension variance
        shrunk by the expected number of components.

        Args:
            data: Observations of shape (N, D).
            components_num (int): Expected number of mixture components.
        """
        data_t = torch.as_tensor(data, dtype=torch.float64)
        data_t = data_t.reshape(data_t.shape[0], -1)
        data_dim = data_t.shape[1]

        data_mean = torch.mean(data_t, dim=0)
        data_norm = data_t - data_mean.unsqueeze(0)
        data_var = torch.mean(data_norm * data_norm, dim=0).clamp_min(1e-6)

        div_factor_log = (2.0 / data_dim) * math.log(float(components_num))
        cov_0 = torch.exp(torch.log(data_var) - div_factor_log)

        return cls(mean_0=data_mean, var_0=2.0 * (cov_0 / init_nu_0(data_dim)))

    def sample(self, rng: RandomVariateSource) -> Params:
        chi2 = rng.chisquare(self.nu_0, size=self.data_dim)
        var = self.nu_0 * self.var_0.numpy() / chi2
        mean = rng.normal(self.mean_0.numpy(), np.sqrt(var / self.kappa_0))
        return {
            "mean": torch.as_tensor(mean, dtype=torch.float64),
            "var": torch.as_tensor(var, dtype=torch.float64),
        }

    def mean(self) -> Params:
        if self.nu_0 > 2.0:
            var = self.nu_0 * self.var_0 / (self.nu_0 - 2.0)
        else:
            var = self.var_0.clone()
        return {"mean": self.mean_0.clone(), "var": var}

    def posterior(
        self, statistics: SufficientStatistics, likelihood: ObservationLikelihood
    ) -> NormalInverseGammaPrior:
        if not isinstance(likelihood, DiagonalGaussianLikelihood):
            return super().posterior(statistics, likelihood)

        kappa_n, nu_n, mean_n, var_n = self.posterior_params(statistics)
        return NormalInverseGammaPrior(
            mean_0=mean_n, var_0=var_n, kappa_0=float(kappa_n), nu_0=float(nu_n)
        )

    def posterior_params(self, statistics: SufficientStatistics):
        """
        Closed-form posterior hyperparameters. Works on single or stacked statistics;
        with K stacked clusters the results have shapes (K, 1), (K, 1), (K, D), (K, D).
        """
        n = statistics.n.unsqueeze(-1)
        kappa_n, nu_n = self.kappa_0 + n, self.nu_0 + n

        mean_n = (self.mean_0 * self.kappa_0 + statistics.total) / kappa_n
        nu_n_times_var_n = (
            self.nu_0 * self.var_0
            + self.kappa_0 * self.mean_0 * self.mean_0
            - kappa_n * mean_n * mean_n
            + statistics.total_sq
        )
        var_n = nu_n_times_var_n / nu_n
        # cancellation in the sum of squares can leave tiny negative values
        var_n = torch.clamp_min(var_n, 1e-12)

        return kappa_n, nu_n, mean_n, var_n

    def __repr__(self) -> str:
        return (
            f"NormalInverseGammaPrior(data_dim={self.data_dim}, "
            f"kappa_0={self.kappa_0}, nu_0={self.nu_0})"
        )


class DiagonalGaussianLikelihood(ObservationLikelihood):
    """
    Axis-aligned Gaussian observations with a per-cluster mean and diagonal variance.
    """

    conjugate_priors = (NormalInverseGammaPrior,)

    def __init__(self, data_dim: int):
        self.data_dim = int(data_dim)

    def log_likelihood(self, data: Tensor, params: Params) -> Tensor:
        means = params["mean"].reshape(-1, self.data_dim)
        variances = params["var"].reshape(-1, self.data_dim)

        # diffs.shape -> (M, K, D)
        diffs = data.unsqueeze(1) - means.unsqueeze(0)
        log_pdfs = -0.5 * (
            torch.log(2.0 * math.pi * variances).unsqueeze(0)
            + diffs * diffs / variances.unsqueeze(0)
        )
        return torch.sum(log_pdfs, dim=-1)

    def log_posterior_predictive(
        self, data: Tensor, statistics: SufficientStatistics, base: BaseDistribution
    ) -> Tensor:
        """
        Product over dimensions of univariate Student-t predictives.

        Returns:
            Tensor: Log probabilities of shape (M, K).
        """
        if not isinstance(base, NormalInverseGammaPrior):
            raise ConfigurationError(
                "DiagonalGaussianLikelihood needs a NormalInverseGammaPrior, "
                f"got {type(base).__name__}"
            )

        kappas, nus, mean_matrix, vars_matrix = base.posterior_params(statistics)

        # stds_matrix.shape -> (K, D)
        scale_fact = (1.0 + kappas) / kappas
        stds_matrix = torch.sqrt(scale_fact * vars_matrix)

        # data_norm.shape -> (M, K, D)
        data_norm = (data.unsqueeze(1) - mean_matrix.unsqueeze(0)) / stds_matrix.unsqueeze(0)
        log_data_norm_squared = torch.log1p(data_norm * data_norm / nus.unsqueeze(0))

        num = (
            torch.lgamma((nus + 1.0) / 2.0).unsqueeze(0)
            - ((nus + 1.0) / 2.0).unsqueeze(0) * log_data_norm_squared
        )
        denom = (
            torch.lgamma(nus / 2.0)
            + 0.5 * torch.log(nus)
            + 0.5 * math.log(math.pi)
            + torch.log(stds_matrix)
        ).unsqueeze(0)

        return torch.sum(num - denom, dim=-1)

    def __repr__(self) -> str:
        return f"DiagonalGaussianLikelihood(data_dim={self.data_dim})"

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Type

import torch
from torch import Tensor

from dpmix.errors import ConfigurationError
from dpmix.utils.random import RandomVariateSource

Params = Dict[str, Tensor]


def stack_params(params: Sequence[Params]) -> Params:
    """Stacks per-cluster parameter dicts into tensors with a leading cluster dim."""
    if len(params) == 0:
        raise ValueError("Cannot stack an empty sequence of parameters")
    return {name: torch.stack([p[name] for p in params]) for name in params[0]}


@dataclass(frozen=True)
class SufficientStatistics:
    """
    Count, sum and sum of squares of the observations currently in a cluster.

    Instances are immutable: `add` and `remove` return new statistics, which keeps
    the removal step of a Gibbs sweep trivially reversible. When built by `stack`
    every field gains a leading cluster dimension.
    """

    n: Tensor
    total: Tensor
    total_sq: Tensor

    @classmethod
    def empty(cls, data_dim: int) -> SufficientStatistics:
        zeros = torch.zeros(data_dim, dtype=torch.float64)
        return cls(n=torch.tensor(0.0, dtype=torch.float64), total=zeros, total_sq=zeros)

    @classmethod
    def from_data(cls, data: Tensor) -> SufficientStatistics:
        data = torch.as_tensor(data, dtype=torch.float64).reshape(-1, data.shape[-1])
        return cls(
            n=torch.tensor(float(data.shape[0]), dtype=torch.float64),
            total=torch.sum(data, dim=0),
            total_sq=torch.sum(data * data, dim=0),
        )

    @classmethod
    def stack(cls, statistics: Sequence[SufficientStatistics]) -> SufficientStatistics:
        return cls(
            n=torch.stack([s.n for s in statistics]),
            total=torch.stack([s.total for s in statistics]),
            total_sq=torch.stack([s.total_sq for s in statistics]),
        )

    def add(self, x: Tensor) -> SufficientStatistics:
        return SufficientStatistics(
            n=self.n + 1.0, total=self.total + x, total_sq=self.total_sq + x * x
        )

    def remove(self, x: Tensor) -> SufficientStatistics:
        return SufficientStatistics(
            n=self.n - 1.0, total=self.total - x, total_sq=self.total_sq - x * x
        )

    @property
    def count(self) -> int:
        return int(round(float(self.n)))


class BaseDistribution(ABC):
    """
    The base distribution G0: the prior over a cluster parameter.

    Draws are independent and the object holds no state tied to a run, so one
    instance can be shared read-only by parallel chains.
    """

    data_dim: int

    @abstractmethod
    def sample(self, rng: RandomVariateSource) -> Params:
        """Draws one cluster parameter."""
        pass

    @abstractmethod
    def mean(self) -> Params:
        """Returns the expected parameter, used as a point estimate."""
        pass

    def log_density(self, params: Params) -> Tensor:
        raise NotImplementedError(
            f"{type(self).__name__} does not expose a density over its parameters"
        )

    def posterior(
        self, statistics: SufficientStatistics, likelihood: ObservationLikelihood
    ) -> BaseDistribution:
        """
        Conjugate update: the distribution of the parameter given the observations
        summarised by `statistics`. Only available for conjugate pairs.
        """
        raise ConfigurationError(
            f"{type(self).__name__} has no closed-form posterior under "
            f"{type(likelihood).__name__}"
        )


class ObservationLikelihood(ABC):
    """
    The observation distribution F(x | phi).

    Log densities are vectorised: `data` has shape (M, D) and stacked parameters
    or statistics carry a leading cluster dimension K, giving results of shape
    (M, K), the same layout the sweep uses for a single observation against all
    live clusters.
    """

    conjugate_priors: Tuple[Type[BaseDistribution], ...] = ()

    @abstractmethod
    def log_likelihood(self, data: Tensor, params: Params) -> Tensor:
        """
        Args:
            data (Tensor): Observations of shape (M, D).
            params (Params): Stacked parameters with leading dimension K.

        Returns:
            Tensor: Log densities of shape (M, K).
        """
        pass

    def is_conjugate_to(self, base: BaseDistribution) -> bool:
        return isinstance(base, self.conjugate_priors)

    def check_compatible(self, base: BaseDistribution) -> None:
        """
        Raises:
            ConfigurationError: If the pair cannot answer the prior predictive and
                posterior queries the sampler relies on.
        """
        if not self.is_conjugate_to(base):
            raise ConfigurationError(
                f"{type(self).__name__} is not conjugate to {type(base).__name__}; "
                "no prior-predictive density is available"
            )

        likelihood_dim = getattr(self, "data_dim", None)
        if likelihood_dim is not None and likelihood_dim != base.data_dim:
            raise ConfigurationError(
                f"Likelihood dimensionality {likelihood_dim} does not match base "
                f"distribution dimensionality {base.data_dim}"
            )

    def log_posterior_predictive(
        self, data: Tensor, statistics: SufficientStatistics, base: BaseDistribution
    ) -> Tensor:
        """
        Log density of each observation given the members summarised by each of the
        stacked `statistics`, with the parameter integrated out.

        Returns:
            Tensor: Log densities of shape (M, K).
        """
        raise NotImplementedError(
            f"{type(self).__name__} has no closed-form posterior predictive"
        )

    def log_prior_predictive(self, data: Tensor, base: BaseDistribution) -> Tensor:
        """
        Log of the integral of F(x | phi) dG0(phi) for every row of `data`.

        Returns:
            Tensor: Log densities of shape (M,).
        """
        empty = SufficientStatistics.stack([SufficientStatistics.empty(data.shape[1])])
        return self.log_posterior_predictive(data, empty, base)[:, 0]

    def log_marginal_likelihood(self, data: Tensor, base: BaseDistribution) -> Tensor:
        """
        Log marginal likelihood of a group of observations sharing one parameter,
        accumulated as a chain of posterior predictives.
        """
        statistics = SufficientStatistics.empty(data.shape[1])
        total = torch.tensor(0.0, dtype=torch.float64)
        for x in data:
            total = total + self.log_posterior_predictive(
                x.unsqueeze(0), SufficientStatistics.stack([statistics]), base
            )[0, 0]
            statistics = statistics.add(x)
        return total

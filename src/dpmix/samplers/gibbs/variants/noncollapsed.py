from typing import List, Optional

import torch
from torch import Tensor

from dpmix.distributions.base import Params, SufficientStatistics, stack_params
from dpmix.errors import NumericalError
from dpmix.samplers.gibbs.algorithm import GibbsSampler
from dpmix.samplers.gibbs.state import Cluster, ClusterState


class NonCollapsedGibbsSampler(GibbsSampler):
    """
    Gibbs sampler with explicit cluster parameters (Neal's Algorithm 2).

    Every live cluster carries a parameter drawn from its posterior. Observations
    are scored against existing clusters by F(x | phi_k) and against a new cluster
    by the prior predictive; a new cluster's parameter is drawn from the posterior
    given its first member. All parameters are redrawn after every sweep.
    """

    collapsed = False

    def cluster_log_likelihoods(
        self, x: Tensor, state: ClusterState, slots: List[int]
    ) -> Tensor:
        params = stack_params([state.cluster(slot).params for slot in slots])
        return self.likelihood.log_likelihood(x, params)[0]

    def new_cluster_params(self, x: Tensor) -> Optional[Params]:
        return self.sample_params(SufficientStatistics.from_data(x))

    def initialize_cluster_params(self, state: ClusterState) -> None:
        self.resample_cluster_params(state)

    def after_sweep(self, state: ClusterState) -> None:
        self.resample_cluster_params(state)

    def resample_cluster_params(self, state: ClusterState) -> None:
        for cluster in state.clusters():
            cluster.params = self.sample_params(cluster.statistics)

    def sample_params(self, statistics: SufficientStatistics) -> Params:
        """
        Draws a cluster parameter from its posterior given `statistics`.

        Raises:
            NumericalError: If the draw is not finite.
        """
        params = self.base_distribution.posterior(statistics, self.likelihood).sample(
            self.rng
        )
        for p_name, p_val in params.items():
            if not torch.isfinite(p_val).all():
                raise NumericalError(f"Sampled non-finite cluster parameter {p_name}")
        return params

    def data_log_likelihood(self, state: ClusterState) -> float:
        """
        Sum of log F(x_i | phi_hat_k) over observations and their clusters, where
        phi_hat_k is the posterior mean of cluster k given its members.

        The statistic is fixed by the partition alone, so it does not move when the
        cluster parameters are redrawn after a sweep.
        """
        total = torch.tensor(0.0, dtype=torch.float64)
        for cluster in state.clusters():
            members = sorted(cluster.members)
            phi_hat = self.base_distribution.posterior(
                cluster.statistics, self.likelihood
            ).mean()
            total = total + self.likelihood.log_likelihood(
                state.data[members], stack_params([phi_hat])
            ).sum()
        return float(total)

    def cluster_point_estimate(self, cluster: Cluster) -> Params:
        return dict(cluster.params)

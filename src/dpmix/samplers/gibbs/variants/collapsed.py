from typing import List, Optional

import torch
from torch import Tensor

from dpmix.distributions.base import Params, SufficientStatistics
from dpmix.samplers.gibbs.algorithm import GibbsSampler
from dpmix.samplers.gibbs.state import Cluster, ClusterState


class CollapsedGibbsSampler(GibbsSampler):
    """
    Collapsed Gibbs sampler (Neal's Algorithm 3).

    Cluster parameters are integrated out: an observation is scored against a
    cluster by the posterior predictive given the cluster's other members, and
    against a new cluster by the prior predictive. Requires a conjugate G0/F pair.
    """

    collapsed = True

    def cluster_log_likelihoods(
        self, x: Tensor, state: ClusterState, slots: List[int]
    ) -> Tensor:
        statistics = SufficientStatistics.stack(
            [state.cluster(slot).statistics for slot in slots]
        )
        # x.shape -> (1, D), result.shape -> (1, K)
        return self.likelihood.log_posterior_predictive(
            x, statistics, self.base_distribution
        )[0]

    def new_cluster_params(self, x: Tensor) -> Optional[Params]:
        return None

    def initialize_cluster_params(self, state: ClusterState) -> None:
        pass

    def after_sweep(self, state: ClusterState) -> None:
        pass

    def data_log_likelihood(self, state: ClusterState) -> float:
        """
        Sum over clusters of the marginal likelihood of the members, with the
        cluster parameter integrated out.
        """
        total = torch.tensor(0.0, dtype=torch.float64)
        for cluster in state.clusters():
            members = sorted(cluster.members)
            total = total + self.likelihood.log_marginal_likelihood(
                state.data[members], self.base_distribution
            )
        return float(total)

    def cluster_point_estimate(self, cluster: Cluster) -> Params:
        return self.base_distribution.posterior(
            cluster.statistics, self.likelihood
        ).mean()

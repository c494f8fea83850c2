from dpmix.samplers.base import (
    BaseSampler,
    BaseSamplerFitResult,
    FitResult,
    SamplerStatus,
)
from dpmix.samplers.chains import run_chains
from dpmix.samplers.gibbs.algorithm import GibbsSampler
from dpmix.samplers.gibbs.config import GibbsSamplerConfig
from dpmix.samplers.gibbs.state import Cluster, ClusterState, RemovalRecord
from dpmix.samplers.gibbs.variants.collapsed import CollapsedGibbsSampler
from dpmix.samplers.gibbs.variants.noncollapsed import NonCollapsedGibbsSampler

__all__ = [
    "BaseSampler",
    "BaseSamplerFitResult",
    "FitResult",
    "SamplerStatus",
    "GibbsSampler",
    "GibbsSamplerConfig",
    "CollapsedGibbsSampler",
    "NonCollapsedGibbsSampler",
    "Cluster",
    "ClusterState",
    "RemovalRecord",
    "run_chains",
]

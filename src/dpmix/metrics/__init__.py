from dpmix.metrics.convergence import (
    ConvergenceMonitor,
    SweepRecord,
    potential_scale_reduction,
)
from dpmix.metrics.partition import (
    adjusted_rand_index,
    contingency_table,
    rand_distance,
)

__all__ = [
    "ConvergenceMonitor",
    "SweepRecord",
    "potential_scale_reduction",
    "adjusted_rand_index",
    "contingency_table",
    "rand_distance",
]

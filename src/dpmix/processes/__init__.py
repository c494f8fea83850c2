from dpmix.processes.crp import crp_assignments
from dpmix.processes.law import (
    crp_conditional_probabilities,
    crp_log_probability,
    expected_clusters_num,
)
from dpmix.processes.polya_urn import polya_urn, polya_urn_colors
from dpmix.processes.stick_breaking import (
    StickBreakingWeights,
    expected_truncation_error,
    stick_breaking,
)

__all__ = [
    "crp_assignments",
    "crp_conditional_probabilities",
    "crp_log_probability",
    "expected_clusters_num",
    "polya_urn",
    "polya_urn_colors",
    "StickBreakingWeights",
    "expected_truncation_error",
    "stick_breaking",
]

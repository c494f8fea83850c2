import torch

from dpmix.distributions import GaussianMeanPrior
from dpmix.processes import (
    crp_assignments,
    crp_log_probability,
    expected_clusters_num,
    polya_urn_colors,
    stick_breaking,
)
from dpmix.utils.random import RandomVariateSource

rng = RandomVariateSource(0)

tables = crp_assignments(100, alpha=2.0, random_state=rng)
print(
    f"CRP: {len(set(tables))} tables (expected {expected_clusters_num(100, 2.0):.1f}), "
    f"log p = {crp_log_probability(tables, 2.0):.2f}"
)

colors, palette = polya_urn_colors(
    50, alpha=1.0, base_distribution=GaussianMeanPrior(torch.zeros(2), cov=9.0), random_state=rng
)
print(f"Polya urn: {len(palette)} colours, first value {palette[0]['mean'].numpy().round(2)}")

sticks = stick_breaking(None, alpha=3.0, random_state=rng, tolerance=1e-3)
print(
    f"Stick-breaking: {len(sticks.weights)} weights, remainder {sticks.remainder:.2e}, "
    f"largest {sticks.weights.max():.3f}"
)

import numpy as np
import torch

from dpmix.core.model import DPMM
from dpmix.datasets import BernoulliDataGenerator, GaussianDataGenerator
from dpmix.distributions import (
    BernoulliLikelihood,
    BetaPrior,
    DiagonalGaussianLikelihood,
    GaussianLikelihood,
    GaussianMeanPrior,
    NormalInverseGammaPrior,
)
from dpmix.metrics import adjusted_rand_index

# Known-covariance Gaussian clusters, collapsed sampler
data_gauss = GaussianDataGenerator(
    centers=np.array([[0.0, 0.0], [10.0, 10.0], [-10.0, 10.0]]), random_state=0
).generate(n_points=300)

model = DPMM(
    base_distribution=GaussianMeanPrior(torch.zeros(2), cov=100.0),
    likelihood=GaussianLikelihood(cov=1.0, data_dim=2),
    max_sweeps=100,
    seed=0,
    show_progress=True,
)
result = model.fit(data_gauss["data"])
print(
    f"clusters: {len(result['cluster_labels'])}, status: {result['status'].value}, "
    f"ARI: {adjusted_rand_index(result['assignment'], data_gauss['labels']):.3f}"
)

# Axis-aligned clusters of unknown variance, non-collapsed sampler with alpha resampling
data_diag = GaussianDataGenerator(cov_type="diag", random_state=1).generate(
    n_points=256, data_dim=2, num_components=4
)
model = DPMM(
    collapsed=False,
    base_distribution=NormalInverseGammaPrior.from_data(data_diag["data"], components_num=4),
    likelihood=DiagonalGaussianLikelihood(data_dim=2),
    alpha_prior=(1.0, 1.0),
    max_sweeps=50,
    seed=1,
)
result = model.fit(data_diag["data"])
print(f"clusters: {len(result['cluster_labels'])}, alpha: {result['alpha']:.3f}")
for mean, var in zip(result["cluster_params"]["mean"], result["cluster_params"]["var"]):
    print(f"  mean={mean.numpy().round(2)} var={var.numpy().round(2)}")

# Binary feature vectors
data_bin = BernoulliDataGenerator(random_state=2).generate(
    n_points=200, data_dim=16, num_components=4
)
model = DPMM(
    base_distribution=BetaPrior(1.0, 1.0, data_dim=16),
    likelihood=BernoulliLikelihood(data_dim=16),
    seed=2,
)
result = model.fit(data_bin["data"])
print(
    f"clusters: {len(result['cluster_labels'])}, "
    f"ARI: {adjusted_rand_index(result['assignment'], data_bin['labels']):.3f}"
)

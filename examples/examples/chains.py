import threading

import torch

from dpmix.datasets import GaussianDataGenerator
from dpmix.distributions import GaussianLikelihood, GaussianMeanPrior
from dpmix.metrics import potential_scale_reduction
from dpmix.samplers import run_chains

data = GaussianDataGenerator(spread=8.0, random_state=0).generate(
    n_points=200, data_dim=2, num_components=5
)

# Setting the event from another thread stops every chain at its next sweep
cancel_event = threading.Event()

results = run_chains(
    data["data"],
    chains_num=4,
    seed=42,
    cancel_event=cancel_event,
    timeout=60.0,
    base_distribution=GaussianMeanPrior(torch.zeros(2), cov=64.0),
    likelihood=GaussianLikelihood(cov=1.0, data_dim=2),
    max_sweeps=100,
)

for chain_num, result in enumerate(results):
    print(
        f"chain {chain_num}: {len(result['cluster_labels'])} clusters after "
        f"{result['sweeps']} sweeps ({result['status'].value})"
    )

traces = [[ll for _, _, ll in result["trace"]] for result in results]
if min(len(t) for t in traces) > 1:
    print(f"R-hat: {potential_scale_reduction(traces):.3f}")

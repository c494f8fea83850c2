from typing import List

import numpy as np

from dpmix.datasets.base_data_generator import BaseDataGenerator
from dpmix.datasets.data_generator_types import SyntheticDataset


class BernoulliDataGenerator(BaseDataGenerator):
    """
    Generates binary feature vectors from a mixture of independent Bernoullis.

    Every cluster gets its own vector of feature probabilities drawn from
    Beta(a, b); small `a` and `b` push them towards 0 and 1, which makes the
    clusters easy to tell apart.
    """

    def __init__(self, a: float = 0.2, b: float = 0.2, random_state=None):
        super().__init__(random_state)
        self.a = a
        self.b = b

    def generate(
        self, n_points: int = 500, data_dim: int = 16, num_components: int = 4
    ) -> SyntheticDataset:
        """
        Returns:
            SyntheticDataset: Binary 'data' (N, D) as float64, the per-cluster
            feature probabilities as 'centers' (K, D), 'labels' and 'assignment'.
        """
        probs = self.rng.beta(self.a, self.b, size=(num_components, data_dim))

        samples: List[np.ndarray] = []
        labels: List[int] = []
        for i, n_ex in enumerate(self.split_points(n_points, num_components)):
            draws = self.rng.generator.random((n_ex, data_dim)) < probs[i]
            samples.append(draws.astype(np.float64))
            labels.extend([i] * n_ex)

        return self._shuffled(
            np.concatenate(samples, axis=0),
            probs,
            np.asarray(labels, dtype=np.int64),
        )

from typing import List, Literal, Optional

import numpy as np

from dpmix.datasets.base_data_generator import BaseDataGenerator
from dpmix.datasets.data_generator_types import SyntheticDataset
from dpmix.utils.random import RandomState

CovarianceType = Literal["isotropic", "diag", "full"]


class GaussianDataGenerator(BaseDataGenerator):
    """
    Generates datasets from a mixture of Gaussians.

    Cluster means are either given explicitly or drawn uniformly within
    [-spread, spread]. The resulting points are shuffled so they are not ordered
    by cluster.
    """

    def __init__(
        self,
        cov_type: CovarianceType = "isotropic",
        scale: float = 1.0,
        spread: float = 5.0,
        centers: Optional[np.ndarray] = None,
        random_state: RandomState = None,
    ):
        """
        Args:
            cov_type (CovarianceType, optional): Shape of the clusters.
                - 'isotropic': spherical clusters with standard deviation `scale`.
                - 'diag': axis-aligned ellipsoids.
                - 'full': arbitrary rotated ellipsoids.
                Defaults to "isotropic".
            scale (float, optional): Standard deviation of isotropic clusters.
            spread (float, optional): Half-width of the box random means are drawn in.
            centers (np.ndarray, optional): Explicit means of shape (K, D); when given,
                `data_dim` and `num_components` of `generate` are taken from it.
            random_state (RandomState, optional): Seed or random source.
        """
        super().__init__(random_state)
        self.cov_type: CovarianceType = cov_type
        self.scale = scale
        self.spread = spread
        self.centers = None if centers is None else np.asarray(centers, dtype=np.float64)

    def _component_cov(self, data_dim: int) -> np.ndarray:
        if self.cov_type == "full":
            A = self.rng.normal(size=(data_dim, data_dim))
            return np.dot(A, A.T) + 0.1 * np.eye(data_dim)
        if self.cov_type == "diag":
            return np.diag(0.5 + 1.5 * self.rng.generator.random(data_dim))
        return (self.scale**2) * np.eye(data_dim)

    def generate(
        self, n_points: int = 500, data_dim: int = 2, num_components: int = 10
    ) -> SyntheticDataset:
        """
        Generates a Gaussian mixture dataset with roughly equal cluster sizes.

        Returns:
            SyntheticDataset: A dictionary containing:
                - "data": The shuffled data matrix (N, D).
                - "centers": The true means of the clusters (K, D).
                - "labels": The true cluster index of every point (N,).
                - "assignment": A list of sets, where the i-th set contains
                  the indices of data points belonging to cluster i.
        """
        if self.centers is not None:
            means = self.centers
            num_components, data_dim = means.shape
        else:
            means = self.spread * (
                2.0 * self.rng.generator.random((num_components, data_dim)) - 1.0
            )

        samples: List[np.ndarray] = []
        labels: List[int] = []
        for i, n_ex in enumerate(self.split_points(n_points, num_components)):
            cov = self._component_cov(data_dim)
            samples.append(self.rng.multivariate_normal(means[i], cov, size=n_ex))
            labels.extend([i] * n_ex)

        return self._shuffled(
            np.concatenate(samples, axis=0).astype(np.float64),
            np.asarray(means, dtype=np.float64),
            np.asarray(labels, dtype=np.int64),
        )

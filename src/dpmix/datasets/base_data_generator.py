from abc import ABC, abstractmethod
from typing import List, Set

import numpy as np

from dpmix.datasets.data_generator_types import SyntheticDataset
from dpmix.utils.random import RandomState, ensure_random_source


class BaseDataGenerator(ABC):
    """
    Abstract base class for synthetic data generators.

    Generators draw every variate from their own `RandomVariateSource`, so a
    generator built with a seed always returns the same dataset.
    """

    def __init__(self, random_state: RandomState = None):
        self.rng = ensure_random_source(random_state)

    @abstractmethod
    def generate(
        self, n_points: int = 500, data_dim: int = 2, num_components: int = 10
    ) -> SyntheticDataset:
        """
        Generates a synthetic dataset.

        Args:
            n_points (int, optional): The total number of data points to generate.
                Defaults to 500.
            data_dim (int, optional): The dimensionality of the data (number of features).
                Defaults to 2.
            num_components (int, optional): The number of clusters to generate.
                Defaults to 10.

        Returns:
            SyntheticDataset: A dictionary containing the generated 'data',
            'centers', 'labels' and 'assignment'.
        """
        pass

    def _shuffled(
        self, data: np.ndarray, centers: np.ndarray, labels: np.ndarray
    ) -> SyntheticDataset:
        order = self.rng.permutation(len(labels))
        data, labels = data[order], labels[order]

        cluster_assignment: List[Set[int]] = [set() for _ in range(len(centers))]
        for idx, cluster_id in enumerate(labels):
            cluster_assignment[cluster_id].add(idx)

        return {
            "data": data,
            "centers": centers,
            "labels": labels,
            "assignment": cluster_assignment,
        }

    @staticmethod
    def split_points(n_points: int, num_components: int) -> List[int]:
        """Splits `n_points` as evenly as possible, the remainder going to the last."""
        examples_per_component = [
            int(n_points / num_components) for _ in range(num_components - 1)
        ]
        examples_per_component.append(n_points - sum(examples_per_component))
        return examples_per_component

from dpmix.datasets.base_data_generator import BaseDataGenerator
from dpmix.datasets.bernoulli_data_generator import BernoulliDataGenerator
from dpmix.datasets.data_generator_types import SyntheticDataset
from dpmix.datasets.gaussian_data_generator import GaussianDataGenerator

__all__ = [
    "BaseDataGenerator",
    "BernoulliDataGenerator",
    "GaussianDataGenerator",
    "SyntheticDataset",
]

import numpy as np
import pytest

from dpmix.datasets import BernoulliDataGenerator, GaussianDataGenerator


@pytest.mark.parametrize("cov_type", ["isotropic", "diag", "full"])
def test_gaussian_generator_shapes(cov_type):
    dataset = GaussianDataGenerator(cov_type=cov_type, random_state=0).generate(
        n_points=101, data_dim=3, num_components=4
    )
    assert dataset["data"].shape == (101, 3)
    assert dataset["centers"].shape == (4, 3)
    assert dataset["labels"].shape == (101,)
    assert sum(len(c) for c in dataset["assignment"]) == 101
    for cluster_id, members in enumerate(dataset["assignment"]):
        assert all(dataset["labels"][i] == cluster_id for i in members)


def test_gaussian_generator_explicit_centers():
    centers = np.array([[0.0, 0.0], [20.0, 20.0]])
    dataset = GaussianDataGenerator(centers=centers, scale=0.1, random_state=1).generate(
        n_points=40
    )
    np.testing.assert_array_equal(dataset["centers"], centers)
    for cluster_id, members in enumerate(dataset["assignment"]):
        assert len(members) == 20
        points = dataset["data"][sorted(members)]
        np.testing.assert_allclose(points.mean(axis=0), centers[cluster_id], atol=0.1)


def test_gaussian_generator_deterministic():
    a = GaussianDataGenerator(random_state=3).generate(n_points=30, num_components=3)
    b = GaussianDataGenerator(random_state=3).generate(n_points=30, num_components=3)
    np.testing.assert_array_equal(a["data"], b["data"])
    np.testing.assert_array_equal(a["labels"], b["labels"])


def test_bernoulli_generator():
    dataset = BernoulliDataGenerator(random_state=0).generate(
        n_points=50, data_dim=8, num_components=2
    )
    assert dataset["data"].shape == (50, 8)
    assert set(np.unique(dataset["data"])) <= {0.0, 1.0}
    assert np.all((dataset["centers"] >= 0) & (dataset["centers"] <= 1))

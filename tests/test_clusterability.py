"""Tests for the dip test."""

import numpy as np
import pytest

from conftest import make_dataset
from culture_clusters.analysis.clusterability import dip_test, reduce_to_1d
from culture_clusters.analysis.scaling import standardize


def sample_dataset(values: np.ndarray):
    rows = {f"M{i:03d}": row.tolist() for i, row in enumerate(values)}
    return standardize(make_dataset(rows, [f"c{j}" for j in range(values.shape[1])]))


class TestDipTest:
    """Test dip_test()."""

    def test_two_groups_are_clusterable(self):
        rng = np.random.default_rng(0)
        values = np.vstack([
            rng.normal(loc=10.0, scale=1.0, size=(40, 2)),
            rng.normal(loc=60.0, scale=1.0, size=(40, 2)),
        ])

        result = dip_test(sample_dataset(values))

        assert result.p_value < 0.05
        assert result.clusterable()
        assert result.reduction == "pca"
        assert result.n == 80

    def test_single_group_is_not_clusterable(self):
        rng = np.random.default_rng(0)
        values = rng.normal(loc=50.0, scale=5.0, size=(200, 3))

        result = dip_test(sample_dataset(values))

        assert result.p_value > 0.05
        assert not result.clusterable()

    def test_distance_reduction(self, two_groups):
        result = dip_test(standardize(two_groups), reduction="distance")

        assert result.n == 15
        assert 0.0 <= result.p_value <= 1.0
        assert result.statistic > 0

    def test_unknown_reduction(self, two_groups):
        with pytest.raises(ValueError, match="reduction must be one of"):
            dip_test(two_groups, reduction="umap")

    def test_too_few_values(self):
        dataset = make_dataset({"A": [1.0, 2.0], "B": [2.0, 1.0], "C": [5.0, 5.0]}, ["x", "y"])

        with pytest.raises(ValueError, match="at least 4"):
            dip_test(dataset)


def test_reduce_to_1d_pca_length(blobs):
    values = reduce_to_1d(standardize(blobs).matrix(), "pca")

    assert values.shape == (30,)

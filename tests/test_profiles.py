"""Tests for cluster profiles and partition comparison."""

import pytest

from conftest import make_dataset
from culture_clusters.analysis.clustering import ClusterAssignment
from culture_clusters.analysis.profiles import (
    adjusted_rand,
    agreement,
    align_labels,
    cluster_profiles,
    cross_tabulate,
    match_labels,
    relabel,
)

NAMES = ("A", "B", "C", "D")


@pytest.fixture
def kmeans_labels() -> ClusterAssignment:
    return ClusterAssignment("kmeans", 2, NAMES, (1, 1, 2, 2))


@pytest.fixture
def hierarchical_labels() -> ClusterAssignment:
    return ClusterAssignment("hierarchical", 2, NAMES, (1, 1, 1, 2))


class TestCrossTabulate:
    """Test the contingency table."""

    def test_cells(self, kmeans_labels, hierarchical_labels):
        table = cross_tabulate(kmeans_labels, hierarchical_labels)

        assert table.cell(1, 1) == 2
        assert table.cell(2, 1) == 1
        assert table.cell(2, 2) == 1
        assert table.cell(1, 2) == 0
        assert table.total == 4

    def test_to_frame(self, kmeans_labels, hierarchical_labels):
        frame = cross_tabulate(kmeans_labels, hierarchical_labels).to_frame()

        assert frame.columns == ["kmeans", "hierarchical_1", "hierarchical_2"]
        assert frame.rows() == [(1, 2, 0), (2, 1, 1)]

    def test_name_order_does_not_matter(self, kmeans_labels):
        shuffled = ClusterAssignment("hierarchical", 2, ("D", "C", "B", "A"), (2, 1, 1, 1))
        table = cross_tabulate(kmeans_labels, shuffled)

        assert table.cell(1, 1) == 2
        assert table.cell(2, 1) == 1
        assert table.cell(2, 2) == 1

    def test_different_k(self, kmeans_labels):
        three = ClusterAssignment("hierarchical", 3, NAMES, (1, 2, 3, 3))
        table = cross_tabulate(kmeans_labels, three)

        assert table.counts.shape == (2, 3)
        assert table.cell(2, 3) == 2

    def test_different_municipalities(self, kmeans_labels):
        other = ClusterAssignment("hierarchical", 2, ("A", "B", "C", "E"), (1, 1, 2, 2))

        with pytest.raises(ValueError, match="different municipalities"):
            cross_tabulate(kmeans_labels, other)


class TestMatching:
    """Test label matching between partitions."""

    def test_match_labels(self, kmeans_labels, hierarchical_labels):
        mapping = match_labels(cross_tabulate(kmeans_labels, hierarchical_labels))

        assert mapping == {1: 1, 2: 2}

    def test_match_swapped_labels(self, kmeans_labels):
        swapped = ClusterAssignment("hierarchical", 2, NAMES, (2, 2, 1, 1))
        mapping = match_labels(cross_tabulate(kmeans_labels, swapped))

        assert mapping == {1: 2, 2: 1}

    def test_surplus_labels_unmatched(self, kmeans_labels):
        three = ClusterAssignment("hierarchical", 3, NAMES, (1, 1, 2, 3))
        mapping = match_labels(cross_tabulate(kmeans_labels, three))

        assert mapping[1] == 1
        assert sorted(v for v in mapping.values() if v is not None) == [1, 2]
        assert list(mapping.values()).count(None) == 1

    def test_agreement(self, kmeans_labels, hierarchical_labels):
        table = cross_tabulate(kmeans_labels, hierarchical_labels)

        assert agreement(table) == pytest.approx(0.75)

    def test_align_labels(self, kmeans_labels):
        swapped = ClusterAssignment("hierarchical", 2, NAMES, (2, 2, 1, 1))
        aligned = align_labels(kmeans_labels, swapped)

        assert aligned.labels == kmeans_labels.labels
        assert aligned.method == "hierarchical"
        assert swapped.labels == (2, 2, 1, 1)

    def test_align_requires_same_k(self, kmeans_labels):
        three = ClusterAssignment("hierarchical", 3, NAMES, (1, 1, 2, 3))

        with pytest.raises(ValueError, match="Cannot align"):
            align_labels(kmeans_labels, three)

    def test_relabel_rejects_partial_mapping(self, kmeans_labels):
        with pytest.raises(ValueError, match="one-to-one"):
            relabel(kmeans_labels, {1: 2})
        with pytest.raises(ValueError, match="one-to-one"):
            relabel(kmeans_labels, {1: 1, 2: 1})

    def test_adjusted_rand(self, kmeans_labels):
        swapped = ClusterAssignment("hierarchical", 2, NAMES, (2, 2, 1, 1))

        assert adjusted_rand(kmeans_labels, swapped) == pytest.approx(1.0)


class TestClusterProfiles:
    """Test per-cluster means in raw units."""

    def test_means_and_sizes(self):
        raw = make_dataset(
            {
                "A": [10.0, 50.0],
                "B": [20.0, 60.0],
                "C": [70.0, 5.0],
                "D": [80.0, 6.0],
                "E": [90.0, 7.12],
            },
            ["bibliotek", "museum"],
        )
        assignment = ClusterAssignment("kmeans", 2, raw.names, (2, 2, 1, 1, 1))

        profile = cluster_profiles(raw, assignment)

        assert profile.columns == ["cluster", "size", "bibliotek", "museum"]
        assert profile["cluster"].to_list() == [1, 2]
        assert profile["size"].to_list() == [3, 2]
        assert profile["bibliotek"].to_list() == [80.0, 15.0]
        assert profile["museum"].to_list() == [6.0, 55.0]

    def test_rounding(self):
        raw = make_dataset({"A": [1.0], "B": [2.0], "C": [2.0]}, ["x"])
        assignment = ClusterAssignment("kmeans", 1, raw.names, (1, 1, 1))

        assert cluster_profiles(raw, assignment)["x"].to_list() == [1.7]
        assert cluster_profiles(raw, assignment, decimals=2)["x"].to_list() == [1.67]

    def test_mismatched_names(self):
        raw = make_dataset({"A": [1.0], "B": [2.0]}, ["x"])
        assignment = ClusterAssignment("kmeans", 1, ("A", "C"), (1, 1))

        with pytest.raises(ValueError):
            cluster_profiles(raw, assignment)

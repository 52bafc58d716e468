"""Tests for the report figures."""

import numpy as np
import pytest

from culture_clusters.analysis.hierarchy import Dendrogram, build_dendrogram
from culture_clusters.analysis.plots import dendrogram_figure
from culture_clusters.analysis.scaling import standardize


def max_height(fig) -> float:
    return max(max(trace.y) for trace in fig.data)


class TestDendrogramFigure:
    """Test dendrogram_figure()."""

    def test_draws_stored_merge_heights(self, blobs):
        dataset = standardize(blobs)
        dendrogram = build_dendrogram(dataset)

        fig = dendrogram_figure(dataset, dendrogram)

        assert max_height(fig) == pytest.approx(dendrogram.heights[-1])

    def test_does_not_recompute_linkage(self, blobs):
        dataset = standardize(blobs)
        built = build_dendrogram(dataset)
        stretched = built.linkage_matrix.copy()
        stretched[:, 2] *= 2
        dendrogram = Dendrogram(
            names=built.names,
            method=built.method,
            linkage_matrix=stretched,
            distances=built.distances,
        )

        fig = dendrogram_figure(dataset, dendrogram)

        assert max_height(fig) == pytest.approx(2 * built.heights[-1])
        assert np.isclose(max_height(fig), stretched[-1, 2])

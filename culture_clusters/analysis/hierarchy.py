"""
Agglomerative hierarchical clustering of municipalities.

Every municipality starts as its own cluster; the two closest clusters
are merged until one remains. With average linkage the distance between
two clusters is the mean of all pairwise distances between their
members. The full merge history is kept so the tree can be cut at any
number of clusters afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl
from loguru import logger
from scipy.cluster.hierarchy import cophenet, cut_tree, fcluster, linkage
from scipy.spatial.distance import pdist

from culture_clusters.analysis.clustering import ClusterAssignment, validate_k
from culture_clusters.config import LINKAGE_METHODS
from culture_clusters.extraction.activities import ActivityDataset


@dataclass(frozen=True)
class Merge:
    """
    One merge of the dendrogram.

    Node ids follow scipy: ids below n are municipalities, id n + i is the
    cluster created by merge step i + 1.
    """

    step: int
    left: int
    right: int
    distance: float
    size: int


@dataclass(frozen=True, eq=False)
class Dendrogram:
    names: tuple[str, ...]
    method: str
    linkage_matrix: np.ndarray
    distances: np.ndarray

    def __len__(self) -> int:
        return len(self.names)

    @property
    def merges(self) -> tuple[Merge, ...]:
        return tuple(
            Merge(
                step=i + 1,
                left=int(row[0]),
                right=int(row[1]),
                distance=float(row[2]),
                size=int(row[3]),
            )
            for i, row in enumerate(self.linkage_matrix)
        )

    @property
    def heights(self) -> np.ndarray:
        return self.linkage_matrix[:, 2].copy()

    @property
    def cophenetic_correlation(self) -> float:
        """Correlation between tree distances and original distances."""
        if len(self.distances) < 2:
            return float("nan")
        corr, _ = cophenet(self.linkage_matrix, self.distances)
        return float(corr)

    def node_label(self, node: int) -> str:
        n = len(self.names)
        return self.names[node] if node < n else f"merge_{node - n + 1}"

    def cut(self, k: int) -> ClusterAssignment:
        """
        Partition into k clusters by undoing the k - 1 last merges.

        Raises:
            InvalidClusterCountError: If k is not between 1 and the number of rows.
        """
        validate_k(k, len(self.names))
        labels = cut_tree(self.linkage_matrix, n_clusters=k).flatten()
        return ClusterAssignment(
            method="hierarchical",
            k=k,
            names=self.names,
            labels=tuple(int(label) + 1 for label in labels),
        )

    def cut_at_height(self, height: float) -> ClusterAssignment:
        """Partition obtained by undoing every merge above height."""
        labels = fcluster(self.linkage_matrix, t=height, criterion="distance")
        return ClusterAssignment(
            method="hierarchical",
            k=int(len(np.unique(labels))),
            names=self.names,
            labels=tuple(int(label) for label in labels),
        )

    def to_frame(self) -> pl.DataFrame:
        """Merge history, one row per merge, for export and plotting."""
        merges = self.merges
        return pl.DataFrame(
            {
                "step": [m.step for m in merges],
                "left": [m.left for m in merges],
                "right": [m.right for m in merges],
                "left_label": [self.node_label(m.left) for m in merges],
                "right_label": [self.node_label(m.right) for m in merges],
                "distance": [m.distance for m in merges],
                "size": [m.size for m in merges],
            },
            schema={
                "step": pl.Int64,
                "left": pl.Int64,
                "right": pl.Int64,
                "left_label": pl.String,
                "right_label": pl.String,
                "distance": pl.Float64,
                "size": pl.Int64,
            },
        )


def build_dendrogram(dataset: ActivityDataset, *, method: str = "average") -> Dendrogram:
    """
    Run agglomerative clustering on Euclidean distances.

    Args:
        dataset: Standardized dataset.
        method: Linkage method ('average', 'complete', 'single', 'ward').

    Returns:
        Dendrogram with the full merge history.

    Raises:
        ValueError: If the method is unknown or there are fewer than 2 rows.
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"method must be one of {LINKAGE_METHODS}, got '{method}'")

    X = dataset.matrix()
    if X.shape[0] < 2:
        raise ValueError("Hierarchical clustering needs at least 2 municipalities")

    distances = pdist(X, metric="euclidean")
    Z = linkage(distances, method=method)

    dendrogram = Dendrogram(
        names=dataset.names,
        method=method,
        linkage_matrix=Z,
        distances=distances,
    )

    logger.info(
        f"Hierarchical clustering ({method} linkage): {X.shape[0]} municipalities, "
        f"cophenetic correlation {dendrogram.cophenetic_correlation:.3f}"
    )

    return dendrogram

"""
Municipality clustering analysis module.

Implements K-Means clustering to group Danish municipalities by their
profile of cultural activity participation.

Usage:
    from culture_clusters.analysis.clustering import run_kmeans
    result = run_kmeans(standardized, k=3, seed=123)
    result.assignment.sizes()
"""

from __future__ import annotations

import warnings
from collections import Counter
from dataclasses import dataclass

import numpy as np
import polars as pl
from loguru import logger
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning

from culture_clusters.extraction.activities import ActivityDataset

# Restarts and iteration cap used in the published analysis
DEFAULT_N_INIT = 25
DEFAULT_MAX_ITER = 100
DEFAULT_SEED = 123


class InvalidClusterCountError(ValueError):
    """Requested number of clusters is not between 1 and the number of observations."""


class EmptyClusterError(RuntimeError):
    """Every k-means restart ended with at least one empty cluster."""


@dataclass(frozen=True)
class ClusterAssignment:
    """
    Cluster label per municipality.

    Labels run from 1 to k. They carry no meaning across runs: label 1 of
    one partition and label 1 of another are unrelated.
    """

    method: str
    k: int
    names: tuple[str, ...]
    labels: tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.names) != len(self.labels):
            raise ValueError("names and labels must have the same length")
        if any(label < 1 or label > self.k for label in self.labels):
            raise ValueError(f"labels must be between 1 and {self.k}")

    def __len__(self) -> int:
        return len(self.names)

    def as_dict(self) -> dict[str, int]:
        return dict(zip(self.names, self.labels))

    def sizes(self) -> dict[int, int]:
        """Number of municipalities per label, including empty labels."""
        counts = Counter(self.labels)
        return {label: counts.get(label, 0) for label in range(1, self.k + 1)}

    def members(self, label: int) -> list[str]:
        return [name for name, lab in zip(self.names, self.labels) if lab == label]

    def to_frame(self, id_column: str = "kommune") -> pl.DataFrame:
        return pl.DataFrame(
            {id_column: list(self.names), "cluster": list(self.labels)},
            schema={id_column: pl.String, "cluster": pl.Int64},
        )


@dataclass(frozen=True, eq=False)
class KMeansResult:
    """Best k-means partition over all restarts."""

    assignment: ClusterAssignment
    centers: np.ndarray
    wss: float
    n_iter: int
    converged: bool
    n_init: int
    seed: int

    @property
    def k(self) -> int:
        return self.assignment.k

    @property
    def labels(self) -> np.ndarray:
        return np.asarray(self.assignment.labels)


def validate_k(k: int, n_observations: int) -> None:
    """
    Reject cluster counts outside 1..n.

    Raises:
        InvalidClusterCountError: If k < 1 or k > n_observations.
    """
    if k < 1 or k > n_observations:
        raise InvalidClusterCountError(
            f"Number of clusters must be between 1 and {n_observations}, got {k}"
        )


def within_cluster_sum_of_squares(X: np.ndarray, labels: np.ndarray) -> float:
    """Sum over clusters of squared Euclidean distances from members to their centroid."""
    X = np.asarray(X, dtype=float)
    labels = np.asarray(labels)
    total = 0.0
    for label in np.unique(labels):
        members = X[labels == label]
        total += float(((members - members.mean(axis=0)) ** 2).sum())
    return total


def run_kmeans(
    dataset: ActivityDataset,
    k: int,
    *,
    n_init: int = DEFAULT_N_INIT,
    seed: int = DEFAULT_SEED,
    max_iter: int = DEFAULT_MAX_ITER,
) -> KMeansResult:
    """
    Run K-Means clustering with random restarts.

    Initial centroids are drawn from the observations. Each restart
    alternates assignment and centroid updates until no municipality
    changes cluster or max_iter is reached; the restart with the lowest
    within-cluster sum of squares is kept. Empty clusters are relocated by
    scikit-learn during a restart instead of aborting it.

    Args:
        dataset: Standardized dataset.
        k: Number of clusters.
        n_init: Number of random restarts.
        seed: Seed for the restarts. The same seed gives the same partition.
        max_iter: Iteration cap per restart.

    Returns:
        KMeansResult with labels 1..k. If the best restart hit the
        iteration cap, converged is False and a warning is logged.

    Raises:
        InvalidClusterCountError: If k is not between 1 and the number of rows.
        EmptyClusterError: If the best partition still has fewer than k
            non-empty clusters (fewer distinct municipalities than k).
    """
    X = dataset.matrix()
    validate_k(k, X.shape[0])

    kmeans = KMeans(
        n_clusters=k,
        init="random",
        n_init=n_init,
        max_iter=max_iter,
        tol=0.0,
        algorithm="lloyd",
        random_state=seed,
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        raw_labels = kmeans.fit_predict(X)
    for warning in caught:
        if issubclass(warning.category, ConvergenceWarning):
            logger.warning(f"k={k}: {warning.message}")

    found = len(np.unique(raw_labels))
    if found < k:
        raise EmptyClusterError(
            f"All {n_init} restarts for k={k} left empty clusters "
            f"({found} non-empty). The data has fewer distinct rows than k."
        )

    centers = kmeans.cluster_centers_
    member_means = np.vstack([X[raw_labels == j].mean(axis=0) for j in range(k)])
    converged = bool(np.allclose(member_means, centers))
    if not converged:
        logger.warning(
            f"k={k}: K-Means did not converge within {max_iter} iterations; "
            "returning the best partition found"
        )

    assignment = ClusterAssignment(
        method="kmeans",
        k=k,
        names=dataset.names,
        labels=tuple(int(label) + 1 for label in raw_labels),
    )

    logger.debug(f"k={k}: WSS={kmeans.inertia_:.4f} after {kmeans.n_iter_} iterations")

    return KMeansResult(
        assignment=assignment,
        centers=centers,
        wss=float(kmeans.inertia_),
        n_iter=int(kmeans.n_iter_),
        converged=converged,
        n_init=n_init,
        seed=seed,
    )

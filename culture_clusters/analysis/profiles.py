"""
Cluster profiles and comparison of partitions.

Profiles are computed on the raw percentages so they read as "share of
residents using the activity". Two partitions are compared through a
contingency table; which label of one partition corresponds to which
label of the other is inferred from the table, never assumed.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl
from scipy.optimize import linear_sum_assignment
from sklearn.metrics import adjusted_rand_score

from culture_clusters.analysis.clustering import ClusterAssignment
from culture_clusters.extraction.activities import ActivityDataset


def _check_same_names(a: tuple[str, ...], b: tuple[str, ...]) -> None:
    if len(a) != len(b) or set(a) != set(b):
        missing = sorted(set(a) ^ set(b))
        raise ValueError(
            f"Assignments cover different municipalities (differences: {missing[:10]})"
        )


def cluster_profiles(
    raw: ActivityDataset,
    assignment: ClusterAssignment,
    *,
    decimals: int = 1,
) -> pl.DataFrame:
    """
    Generate summary statistics for each cluster.

    Args:
        raw: Dataset in original percentage units.
        assignment: Cluster labels for the same municipalities.
        decimals: Rounding of the mean columns.

    Returns:
        DataFrame with cluster, size and the mean of every activity,
        one row per label sorted by label.
    """
    _check_same_names(raw.names, assignment.names)

    labels = assignment.to_frame(raw.id_column)
    joined = raw.frame.join(labels, on=raw.id_column, how="left")

    return (
        joined.group_by("cluster")
        .agg([
            pl.len().cast(pl.Int64).alias("size"),
            *[pl.col(c).mean().round(decimals).alias(c) for c in raw.activities],
        ])
        .sort("cluster")
    )


@dataclass(frozen=True, eq=False)
class ContingencyTable:
    """Counts of municipalities per (row label, column label) pair."""

    row_method: str
    col_method: str
    row_labels: tuple[int, ...]
    col_labels: tuple[int, ...]
    counts: np.ndarray

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    def cell(self, row_label: int, col_label: int) -> int:
        i = self.row_labels.index(row_label)
        j = self.col_labels.index(col_label)
        return int(self.counts[i, j])

    def to_frame(self) -> pl.DataFrame:
        data = {self.row_method: list(self.row_labels)}
        for j, label in enumerate(self.col_labels):
            data[f"{self.col_method}_{label}"] = self.counts[:, j].tolist()
        return pl.DataFrame(data).with_columns(pl.all().cast(pl.Int64))


def cross_tabulate(a: ClusterAssignment, b: ClusterAssignment) -> ContingencyTable:
    """
    Contingency table of two partitions of the same municipalities.

    Rows are the labels of ``a``, columns the labels of ``b``; every pair
    appears, including empty ones.

    Raises:
        ValueError: If the assignments cover different municipalities.
    """
    _check_same_names(a.names, b.names)

    b_labels = b.as_dict()
    counts = np.zeros((a.k, b.k), dtype=int)
    for name, label in zip(a.names, a.labels):
        counts[label - 1, b_labels[name] - 1] += 1

    return ContingencyTable(
        row_method=a.method,
        col_method=b.method,
        row_labels=tuple(range(1, a.k + 1)),
        col_labels=tuple(range(1, b.k + 1)),
        counts=counts,
    )


def match_labels(table: ContingencyTable) -> dict[int, int | None]:
    """
    Pair each column label with a row label, maximizing the shared count.

    One-to-one matching (Hungarian algorithm). When the partitions have a
    different number of clusters, the surplus column labels map to None.
    """
    rows, cols = linear_sum_assignment(table.counts, maximize=True)
    mapping: dict[int, int | None] = {label: None for label in table.col_labels}
    for i, j in zip(rows, cols):
        mapping[table.col_labels[j]] = table.row_labels[i]
    return mapping


def agreement(table: ContingencyTable) -> float:
    """Share of municipalities whose labels agree after matching."""
    if table.total == 0:
        return float("nan")
    rows, cols = linear_sum_assignment(table.counts, maximize=True)
    return float(table.counts[rows, cols].sum() / table.total)


def adjusted_rand(a: ClusterAssignment, b: ClusterAssignment) -> float:
    """Adjusted Rand index between two partitions (1 = identical up to renaming)."""
    _check_same_names(a.names, b.names)
    b_labels = b.as_dict()
    return float(adjusted_rand_score(a.labels, [b_labels[name] for name in a.names]))


def relabel(assignment: ClusterAssignment, mapping: dict[int, int]) -> ClusterAssignment:
    """
    Return a copy with labels renamed through mapping.

    Raises:
        ValueError: If the mapping is not a one-to-one renaming of 1..k.
    """
    targets = [mapping.get(label) for label in range(1, assignment.k + 1)]
    if None in targets or sorted(targets) != list(range(1, assignment.k + 1)):
        raise ValueError(f"mapping must rename labels 1..{assignment.k} one-to-one: {mapping}")

    return ClusterAssignment(
        method=assignment.method,
        k=assignment.k,
        names=assignment.names,
        labels=tuple(mapping[label] for label in assignment.labels),
    )


def align_labels(reference: ClusterAssignment, other: ClusterAssignment) -> ClusterAssignment:
    """
    Rename the labels of ``other`` to the best-matching labels of ``reference``.

    Raises:
        ValueError: If the two partitions have a different number of clusters.
    """
    if reference.k != other.k:
        raise ValueError(
            f"Cannot align partitions with {reference.k} and {other.k} clusters"
        )
    mapping = match_labels(cross_tabulate(reference, other))
    return relabel(other, mapping)

"""
Clusterability check before clustering.

Hartigan's dip test measures departure from unimodality. The data are
first reduced to one dimension, either the first principal component or
the set of all pairwise distances. A small p-value means the reduced
data are multimodal, i.e. there is cluster structure worth looking for.
"""

from __future__ import annotations

from dataclasses import dataclass

import diptest
import numpy as np
from loguru import logger
from scipy.spatial.distance import pdist
from sklearn.decomposition import PCA

from culture_clusters.extraction.activities import ActivityDataset

REDUCTIONS = ("pca", "distance")


@dataclass(frozen=True)
class DipTestResult:
    statistic: float
    p_value: float
    reduction: str
    n: int

    def clusterable(self, alpha: float = 0.05) -> bool:
        return self.p_value < alpha


def reduce_to_1d(X: np.ndarray, reduction: str = "pca") -> np.ndarray:
    """Project the data onto one dimension for the dip test."""
    if reduction == "pca":
        return PCA(n_components=1).fit_transform(X).ravel()
    if reduction == "distance":
        return pdist(X, metric="euclidean")
    raise ValueError(f"reduction must be one of {REDUCTIONS}, got '{reduction}'")


def dip_test(dataset: ActivityDataset, *, reduction: str = "pca") -> DipTestResult:
    """
    Run Hartigan's dip test on a standardized dataset.

    Args:
        dataset: Standardized dataset.
        reduction: "pca" (first principal component) or "distance".

    Returns:
        DipTestResult with the dip statistic and its p-value.

    Raises:
        ValueError: If the reduction is unknown or fewer than 4 values remain.
    """
    values = reduce_to_1d(dataset.matrix(), reduction)
    if values.size < 4:
        raise ValueError(f"Dip test needs at least 4 values, got {values.size}")

    dip, p_value = diptest.diptest(values)
    result = DipTestResult(
        statistic=float(dip),
        p_value=float(p_value),
        reduction=reduction,
        n=int(values.size),
    )

    logger.info(
        f"Dip test ({reduction}): D={result.statistic:.4f}, p={result.p_value:.4f}"
    )
    return result

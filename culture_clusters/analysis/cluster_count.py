"""
Choosing the number of clusters.

Three complementary views over a range of candidate k:

- the within-cluster sum of squares (WSS) for every k, to read the
  "elbow" by eye (no automatic decision is made),
- the average silhouette width for every k >= 2 and its arg-max,
- a vote of several independent indices in the spirit of R's NbClust,
  reported as the number of indices recommending each k. Ties are kept.

The vote is pluggable: anything with an ``evaluate(dataset, k_range)``
method returning a VoteResult can replace IndexBattery in the pipeline.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Protocol

import numpy as np
import polars as pl
from loguru import logger
from scipy.spatial.distance import pdist, squareform
from sklearn.metrics import (
    calinski_harabasz_score,
    davies_bouldin_score,
    silhouette_score,
)

from culture_clusters.analysis.clustering import (
    DEFAULT_MAX_ITER,
    DEFAULT_N_INIT,
    DEFAULT_SEED,
    InvalidClusterCountError,
    KMeansResult,
    run_kmeans,
)
from culture_clusters.extraction.activities import ActivityDataset


def validate_k_range(k_min: int, k_max: int, n_observations: int) -> None:
    """
    Raises:
        InvalidClusterCountError: Unless 1 <= k_min <= k_max <= n_observations.
    """
    if k_min < 1 or k_max < k_min or k_max > n_observations:
        raise InvalidClusterCountError(
            f"Cluster range must satisfy 1 <= k_min <= k_max <= {n_observations}, "
            f"got {k_min}..{k_max}"
        )


def fit_range(
    dataset: ActivityDataset,
    ks: Iterable[int],
    *,
    n_init: int = DEFAULT_N_INIT,
    seed: int = DEFAULT_SEED,
    max_iter: int = DEFAULT_MAX_ITER,
) -> dict[int, KMeansResult]:
    """Run k-means once per k with the same seed."""
    return {
        k: run_kmeans(dataset, k, n_init=n_init, seed=seed, max_iter=max_iter)
        for k in ks
    }


@dataclass(frozen=True)
class ClusterCountDiagnostics:
    """WSS and silhouette curves over the candidate range."""

    wss: dict[int, float]
    silhouette: dict[int, float]

    @property
    def k_range(self) -> list[int]:
        return sorted(self.wss)

    @property
    def best_k_silhouette(self) -> int | None:
        if not self.silhouette:
            return None
        return max(sorted(self.silhouette), key=lambda k: self.silhouette[k])

    def wss_drops(self) -> dict[int, float]:
        """WSS(k - 1) - WSS(k) for every k whose predecessor is in range."""
        return {
            k: self.wss[k - 1] - self.wss[k]
            for k in self.k_range
            if k - 1 in self.wss
        }

    def to_frame(self) -> pl.DataFrame:
        ks = self.k_range
        return pl.DataFrame(
            {
                "k": ks,
                "wss": [self.wss[k] for k in ks],
                "silhouette": [self.silhouette.get(k) for k in ks],
            },
            schema={"k": pl.Int64, "wss": pl.Float64, "silhouette": pl.Float64},
        )


def silhouette_curve(X: np.ndarray, fits: dict[int, KMeansResult]) -> dict[int, float]:
    """
    Average silhouette width per k.

    Silhouette is undefined for k = 1 and for k = n (every cluster a
    singleton), so only 2 <= k <= n - 1 are reported.
    """
    n = X.shape[0]
    return {
        k: float(silhouette_score(X, fit.labels))
        for k, fit in sorted(fits.items())
        if 2 <= k <= n - 1
    }


def compute_diagnostics(
    dataset: ActivityDataset,
    *,
    k_min: int = 2,
    k_max: int = 15,
    n_init: int = DEFAULT_N_INIT,
    seed: int = DEFAULT_SEED,
    max_iter: int = DEFAULT_MAX_ITER,
) -> ClusterCountDiagnostics:
    """
    Analyze clustering performance for different k values.

    Uses elbow method (WSS) and silhouette score.

    Args:
        dataset: Standardized dataset.
        k_min: Smallest k to test (1 is allowed for the WSS curve).
        k_max: Largest k to test.
        n_init: Random restarts per k.
        seed: Seed shared by every k.
        max_iter: Iteration cap per restart.

    Returns:
        ClusterCountDiagnostics with full curves.

    Raises:
        InvalidClusterCountError: If the range is not inside 1..n.
    """
    X = dataset.matrix()
    validate_k_range(k_min, k_max, X.shape[0])

    fits = fit_range(
        dataset, range(k_min, k_max + 1), n_init=n_init, seed=seed, max_iter=max_iter
    )
    diagnostics = ClusterCountDiagnostics(
        wss={k: fit.wss for k, fit in fits.items()},
        silhouette=silhouette_curve(X, fits),
    )

    logger.info(f"Best k by silhouette: {diagnostics.best_k_silhouette}")
    return diagnostics


# =============================================================================
# Multi-index vote
# =============================================================================


def _best(scores: dict[int, float], *, maximize: bool = True) -> int | None:
    finite = {k: v for k, v in sorted(scores.items()) if np.isfinite(v)}
    if not finite:
        return None
    pick = max if maximize else min
    return pick(finite, key=finite.get)


class ClusterIndex(Protocol):
    """A heuristic that recommends one k, or None to abstain."""

    name: str

    def recommend(
        self, X: np.ndarray, fits: dict[int, KMeansResult], ks: list[int]
    ) -> int | None: ...


class SilhouetteIndex:
    name = "silhouette"

    def recommend(self, X, fits, ks):
        scores = silhouette_curve(X, {k: fits[k] for k in ks})
        return _best(scores)


class CalinskiHarabaszIndex:
    name = "calinski_harabasz"

    def recommend(self, X, fits, ks):
        n = X.shape[0]
        scores = {
            k: float(calinski_harabasz_score(X, fits[k].labels))
            for k in ks
            if 2 <= k <= n - 1
        }
        return _best(scores)


class DaviesBouldinIndex:
    name = "davies_bouldin"

    def recommend(self, X, fits, ks):
        n = X.shape[0]
        scores = {
            k: float(davies_bouldin_score(X, fits[k].labels))
            for k in ks
            if 2 <= k <= n - 1
        }
        return _best(scores, maximize=False)


class HartiganIndex:
    """H(k) = (W(k) / W(k+1) - 1)(n - k - 1); picks the largest drop H(k-1) - H(k)."""

    name = "hartigan"

    def recommend(self, X, fits, ks):
        n = X.shape[0]

        def h(k):
            return (np.float64(fits[k].wss) / np.float64(fits[k + 1].wss) - 1.0) * (n - k - 1)

        with np.errstate(divide="ignore", invalid="ignore"):
            scores = {
                k: h(k - 1) - h(k)
                for k in ks
                if k - 1 in fits and k + 1 in fits
            }
        return _best(scores)


class KrzanowskiLaiIndex:
    name = "krzanowski_lai"

    def recommend(self, X, fits, ks):
        p = X.shape[1]

        def diff(k):
            return (k - 1) ** (2 / p) * fits[k - 1].wss - k ** (2 / p) * fits[k].wss

        scores = {}
        with np.errstate(divide="ignore", invalid="ignore"):
            for k in ks:
                if k < 2 or k - 1 not in fits or k + 1 not in fits:
                    continue
                scores[k] = float(np.abs(np.float64(diff(k)) / diff(k + 1)))
        return _best(scores)


class BallHallIndex:
    """Mean dispersion W(k) / k; picks the largest drop from k - 1 to k."""

    name = "ball_hall"

    def recommend(self, X, fits, ks):
        scores = {
            k: fits[k - 1].wss / (k - 1) - fits[k].wss / k
            for k in ks
            if k - 1 in fits
        }
        return _best(scores)


class DunnIndex:
    """Smallest between-cluster distance over largest cluster diameter."""

    name = "dunn"

    def recommend(self, X, fits, ks):
        n = X.shape[0]
        D = squareform(pdist(X))
        scores = {}
        for k in ks:
            if not 2 <= k <= n - 1:
                continue
            labels = fits[k].labels
            diameter = max(
                D[np.ix_(labels == a, labels == a)].max() for a in np.unique(labels)
            )
            separation = min(
                D[np.ix_(labels == a, labels == b)].min()
                for a in np.unique(labels)
                for b in np.unique(labels)
                if a < b
            )
            scores[k] = separation / diameter if diameter > 0 else float("inf")
        return _best(scores)


DEFAULT_INDICES: tuple[ClusterIndex, ...] = (
    SilhouetteIndex(),
    CalinskiHarabaszIndex(),
    DaviesBouldinIndex(),
    HartiganIndex(),
    KrzanowskiLaiIndex(),
    BallHallIndex(),
    DunnIndex(),
)


@dataclass(frozen=True)
class VoteResult:
    """Recommended k per index. None means the index abstained."""

    recommendations: dict[str, int | None]

    def distribution(self) -> dict[int, int]:
        counts = Counter(k for k in self.recommendations.values() if k is not None)
        return dict(sorted(counts.items()))

    def best(self) -> list[int]:
        """Every k with the highest vote count. More than one means a tie."""
        distribution = self.distribution()
        if not distribution:
            return []
        top = max(distribution.values())
        return [k for k, votes in distribution.items() if votes == top]

    def to_frame(self) -> pl.DataFrame:
        distribution = self.distribution()
        return pl.DataFrame(
            {"k": list(distribution), "votes": list(distribution.values())},
            schema={"k": pl.Int64, "votes": pl.Int64},
        )

    def recommendations_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "index": list(self.recommendations),
                "recommended_k": list(self.recommendations.values()),
            },
            schema={"index": pl.String, "recommended_k": pl.Int64},
        )


class ClusterCountEvaluator(Protocol):
    def evaluate(self, dataset: ActivityDataset, k_range: range) -> VoteResult: ...


class IndexBattery:
    """
    Vote of several cluster-count indices over k-means partitions.

    Example:
        >>> battery = IndexBattery(seed=123)
        >>> vote = battery.evaluate(standardized, range(2, 16))
        >>> vote.distribution()
    """

    def __init__(
        self,
        indices: Iterable[ClusterIndex] | None = None,
        *,
        n_init: int = DEFAULT_N_INIT,
        seed: int = DEFAULT_SEED,
        max_iter: int = DEFAULT_MAX_ITER,
    ) -> None:
        self.indices = tuple(indices) if indices is not None else DEFAULT_INDICES
        self.n_init = n_init
        self.seed = seed
        self.max_iter = max_iter

    def evaluate(self, dataset: ActivityDataset, k_range: range) -> VoteResult:
        ks = list(k_range)
        X = dataset.matrix()
        n = X.shape[0]
        if not ks:
            raise InvalidClusterCountError("k_range is empty")
        validate_k_range(ks[0], ks[-1], n)

        # Indices based on differences need the neighbours of the range
        fit_ks = range(max(1, ks[0] - 1), min(n, ks[-1] + 1) + 1)
        fits = fit_range(
            dataset, fit_ks, n_init=self.n_init, seed=self.seed, max_iter=self.max_iter
        )

        recommendations = {index.name: index.recommend(X, fits, ks) for index in self.indices}
        vote = VoteResult(recommendations=recommendations)

        logger.info(f"Index vote over k={ks[0]}..{ks[-1]}: {vote.distribution()}")
        abstained = [name for name, k in recommendations.items() if k is None]
        if abstained:
            logger.warning(f"Indices without a recommendation: {abstained}")

        return vote

"""
Z-score standardization of activity columns.

K-means and the hierarchical clustering both work on Euclidean distances,
so every activity is rescaled to mean 0 and standard deviation 1 before
clustering. The sample standard deviation (ddof=1) is the default, which
matches R's ``scale()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import polars as pl
from loguru import logger

from culture_clusters.config import CONSTANT_POLICIES
from culture_clusters.extraction.activities import ActivityDataset


class ConstantColumnError(ValueError):
    """An activity column has no variation, so it cannot be standardized."""

    def __init__(self, columns: list[str]) -> None:
        super().__init__(
            f"Cannot standardize columns with zero variance: {columns}. "
            "Drop them or use on_constant='zero'."
        )
        self.columns = columns


@dataclass(frozen=True, eq=False)
class StandardizedDataset(ActivityDataset):
    """ActivityDataset in z-score units, with the parameters used."""

    center: dict[str, float] = field(default_factory=dict)
    scale: dict[str, float] = field(default_factory=dict)
    ddof: int = 1
    constant_columns: tuple[str, ...] = ()


def standardize(
    dataset: ActivityDataset,
    *,
    ddof: int = 1,
    on_constant: str = "raise",
) -> StandardizedDataset:
    """
    Rescale each activity to zero mean and unit variance.

    Args:
        dataset: Raw dataset in percentage units.
        ddof: Delta degrees of freedom for the standard deviation.
        on_constant: What to do with zero-variance columns. "raise" fails,
                     "zero" maps the column to 0.0 and logs a warning.

    Returns:
        StandardizedDataset with the same names and row order.

    Raises:
        ConstantColumnError: If a column has zero variance and on_constant="raise".
        ValueError: If on_constant is not a known policy.
    """
    if on_constant not in CONSTANT_POLICIES:
        raise ValueError(f"on_constant must be one of {CONSTANT_POLICIES}, got '{on_constant}'")

    activities = list(dataset.activities)
    frame = dataset.frame

    means = frame.select([pl.col(c).mean() for c in activities]).row(0, named=True)
    stds = frame.select([pl.col(c).std(ddof=ddof) for c in activities]).row(0, named=True)

    # Decided on the raw values: the std of a repeated float is rarely exactly 0
    spreads = frame.select(
        [(pl.col(c).max() - pl.col(c).min()).alias(c) for c in activities]
    ).row(0, named=True)
    constant = [c for c in activities if spreads[c] == 0 or stds[c] is None]
    if constant:
        if on_constant == "raise":
            raise ConstantColumnError(constant)
        logger.warning(f"Columns with zero variance set to 0: {constant}")

    scaled = frame.with_columns(
        [
            pl.lit(0.0).alias(c)
            if c in constant
            else ((pl.col(c) - means[c]) / stds[c]).alias(c)
            for c in activities
        ]
    )

    logger.info(f"Standardized {len(activities)} activities over {frame.height} municipalities")

    return StandardizedDataset(
        frame=scaled,
        id_column=dataset.id_column,
        center={c: float(means[c]) for c in activities},
        scale={c: 0.0 if c in constant else float(stds[c]) for c in activities},
        ddof=ddof,
        constant_columns=tuple(constant),
    )

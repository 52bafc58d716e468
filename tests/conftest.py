"""Shared fixtures."""

import sys

import numpy as np
import polars as pl
import pytest
from loguru import logger

from culture_clusters.extraction.activities import ActivityDataset

BLOB_CENTERS = [
    (20.0, 40.0, 60.0),
    (60.0, 20.0, 30.0),
    (40.0, 75.0, 10.0),
]
BLOB_COLUMNS = ["bibliotek", "museum", "koncert_rytmisk"]


def make_dataset(rows: dict[str, list[float]], columns: list[str]) -> ActivityDataset:
    """ActivityDataset from {name: values}."""
    data = {"kommune": list(rows)}
    for j, column in enumerate(columns):
        data[column] = [float(values[j]) for values in rows.values()]
    return ActivityDataset(frame=pl.DataFrame(data), id_column="kommune")


def make_blobs_frame(per_group: int = 10, noise: float = 1.5, seed: int = 0) -> pl.DataFrame:
    """Municipalities in three well-separated groups of activity profiles."""
    rng = np.random.default_rng(seed)
    rows = []
    for center in BLOB_CENTERS:
        rows.append(np.asarray(center) + rng.normal(scale=noise, size=(per_group, len(center))))
    values = np.vstack(rows)
    data = {"kommune": [f"Kommune {i + 1:02d}" for i in range(values.shape[0])]}
    for j, column in enumerate(BLOB_COLUMNS):
        data[column] = values[:, j].round(2).tolist()
    return pl.DataFrame(data)


@pytest.fixture
def two_groups() -> ActivityDataset:
    """Three points near (0, 0) and three near (10, 10)."""
    return make_dataset(
        {
            "A1": [0.0, 0.0],
            "A2": [0.5, 0.2],
            "A3": [0.1, 0.6],
            "B1": [10.0, 10.0],
            "B2": [10.4, 9.8],
            "B3": [9.7, 10.3],
        },
        ["x", "y"],
    )


@pytest.fixture
def blobs_frame() -> pl.DataFrame:
    return make_blobs_frame()


@pytest.fixture
def blobs(blobs_frame) -> ActivityDataset:
    return ActivityDataset(frame=blobs_frame, id_column="kommune")


@pytest.fixture
def survey_csv(tmp_path, blobs_frame):
    """Survey table as published: aggregates mixed in, readable headers."""
    aggregates = pl.DataFrame(
        {
            "kommune": ["Region Hovedstaden", "Province Byen København"],
            "bibliotek": [40.0, 41.0],
            "museum": [45.0, 44.0],
            "koncert_rytmisk": [33.0, 34.0],
        }
    )
    table = pl.concat([aggregates, blobs_frame]).rename(
        {"bibliotek": "Bibliotek", "museum": "Museum", "koncert_rytmisk": "Koncert (rytmisk)"}
    )
    path = tmp_path / "activities.csv"
    table.write_csv(path)
    return path


@pytest.fixture
def reset_logger():
    """Restore the default loguru sink after a test reconfigures logging."""
    yield
    logger.remove()
    logger.add(sys.stderr)

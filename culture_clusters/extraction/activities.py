"""
Cultural activity survey loader.

Reads the municipality-level table of cultural activity participation
(percent of residents who used each activity in the survey year) and
turns it into an ActivityDataset keyed by municipality name.

The published spreadsheet mixes municipalities with regional and
provincial rollups; those rows are removed here so every retained row is
an atomic municipality.

Example:
    >>> dataset = load_activities(
    ...     "data/use-of-cultural-activities-dk-2019.xlsx",
    ...     skip_rows=2,
    ...     id_position=0,
    ... )
    >>> dataset.names[:3]
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import polars as pl
from loguru import logger

from culture_clusters.config import AGGREGATE_PATTERN

EXCEL_SUFFIXES = {".xlsx", ".xls", ".xlsm"}
ROW_COLUMN = "__row_nr"

# Danish letters have no NFKD decomposition, so transliterate them first
_DANISH_LETTERS = str.maketrans({"æ": "ae", "ø": "oe", "å": "aa"})


class ActivityDataError(ValueError):
    """Malformed input table (missing identifier column, bad cell, ...)."""

    def __init__(
        self,
        message: str,
        *,
        row: int | None = None,
        name: str | None = None,
        column: str | None = None,
    ) -> None:
        super().__init__(message)
        self.row = row
        self.name = name
        self.column = column


@dataclass(frozen=True, eq=False)
class ActivityDataset:
    """
    Municipalities by cultural activities.

    The frame holds the identifier column followed by one Float64 column
    per activity. Row order is the order of the source table.
    """

    frame: pl.DataFrame
    id_column: str = "kommune"

    def __post_init__(self) -> None:
        if self.id_column not in self.frame.columns:
            raise ActivityDataError(
                f"Identifier column '{self.id_column}' not found",
                column=self.id_column,
            )
        ids = self.frame.get_column(self.id_column)
        if ids.n_unique() != len(ids):
            duplicated = ids.filter(ids.is_duplicated()).unique().sort().to_list()
            raise ActivityDataError(
                f"Duplicate municipality names: {duplicated}",
                column=self.id_column,
            )

    def __len__(self) -> int:
        return self.frame.height

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.frame.get_column(self.id_column).to_list())

    @property
    def activities(self) -> tuple[str, ...]:
        return tuple(c for c in self.frame.columns if c != self.id_column)

    def matrix(self) -> np.ndarray:
        """Activity values as a float array of shape (municipalities, activities)."""
        return self.frame.select(self.activities).to_numpy().astype(float)


def normalize_column_name(name: str) -> str:
    """
    Turn a spreadsheet header into a lower-case identifier.

    "Biblioteker (fysisk)" -> "biblioteker_fysisk", "Kunstmuseer/-udstillinger"
    -> "kunstmuseer_udstillinger", "2019 total" -> "x_2019_total".
    """
    text = str(name).strip().lower().translate(_DANISH_LETTERS)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "_", text).strip("_")
    if text and text[0].isdigit():
        text = f"x_{text}"
    return text


def read_activity_table(
    path: Path | str,
    *,
    skip_rows: int = 0,
    sheet_name: str | None = None,
) -> pl.DataFrame:
    """
    Read the raw survey table with every column as text.

    Reading as text keeps unparseable cells intact so cleaning can report
    exactly which cell is wrong.

    Args:
        path: CSV, Excel or Parquet file.
        skip_rows: Rows above the header row (title lines in the spreadsheet).
        sheet_name: Excel sheet to read. If None, the first sheet is used.

    Returns:
        Polars DataFrame of String columns.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file type is not supported.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found at {path}")

    suffix = path.suffix.lower()
    logger.info(f"Reading activity table: {path}")

    if suffix in EXCEL_SUFFIXES:
        frame = pl.read_excel(
            path,
            sheet_name=sheet_name,
            read_options={"header_row": skip_rows},
            infer_schema_length=0,
        )
    elif suffix in {".csv", ".txt"}:
        frame = pl.read_csv(path, skip_rows=skip_rows, infer_schema=False)
    elif suffix == ".parquet":
        frame = pl.read_parquet(path).slice(skip_rows)
    else:
        raise ValueError(f"Unsupported file type '{suffix}' for {path}")

    return frame.select(pl.all().cast(pl.String))


def _parse_numeric(column: str, decimal_comma: bool) -> pl.Expr:
    text = pl.col(column).cast(pl.String).str.strip_chars()
    if decimal_comma:
        text = text.str.replace_all(",", ".", literal=True)
    return text.cast(pl.Float64, strict=False)


def clean_activities(
    frame: pl.DataFrame,
    *,
    id_column: str = "kommune",
    id_position: int | None = None,
    drop_leading_columns: int = 0,
    exclude_pattern: str | None = AGGREGATE_PATTERN,
    decimal_comma: bool = False,
) -> ActivityDataset:
    """
    Build an ActivityDataset from a raw survey table.

    Args:
        frame: Raw table as returned by read_activity_table.
        id_column: Name of the municipality column (after renaming).
        id_position: If set, the column at this position (after dropping
                     leading columns) is renamed to id_column. The published
                     spreadsheet leaves the municipality header blank.
                     Counted on the columns the reader returns; the Excel
                     reader skips columns that are empty throughout.
        drop_leading_columns: Number of leading columns to discard.
        exclude_pattern: Regular expression for aggregate rows to remove.
                         None or "" keeps every row.
        decimal_comma: Accept "12,5" as 12.5.

    Returns:
        Cleaned ActivityDataset with normalized activity names.

    Raises:
        ActivityDataError: If the identifier column is absent or holds only
            numbers, a name is duplicated, or a retained activity cell is
            missing or non-numeric.
    """
    if drop_leading_columns:
        frame = frame.drop(frame.columns[:drop_leading_columns])

    if id_position is not None:
        if not 0 <= id_position < frame.width:
            raise ActivityDataError(
                f"id_position {id_position} is outside the table ({frame.width} columns)",
                column=id_column,
            )
        frame = frame.rename({frame.columns[id_position]: id_column})

    if id_column not in frame.columns:
        raise ActivityDataError(
            f"Identifier column '{id_column}' not found. "
            f"Available columns: {frame.columns}",
            column=id_column,
        )

    frame = frame.with_row_index(ROW_COLUMN, offset=1).with_columns(
        pl.col(id_column).cast(pl.String).str.strip_chars()
    )

    # Footnotes and blank lines have no municipality name
    unnamed = frame.filter(pl.col(id_column).is_null() | (pl.col(id_column) == ""))
    if not unnamed.is_empty():
        logger.warning(f"Dropping {unnamed.height} rows without a municipality name")
        frame = frame.filter(pl.col(id_column).is_not_null() & (pl.col(id_column) != ""))

    numeric_ids = frame.select(
        _parse_numeric(id_column, decimal_comma).is_not_null().all()
    ).item()
    if numeric_ids and not frame.is_empty():
        raise ActivityDataError(
            f"Identifier column '{id_column}' holds only numbers "
            f"(first value {frame.get_column(id_column)[0]!r}). "
            "Check drop_leading_columns and id_position against the table: "
            f"{[c for c in frame.columns if c != ROW_COLUMN]}",
            column=id_column,
        )

    if exclude_pattern:
        excluded = frame.filter(pl.col(id_column).str.contains(exclude_pattern))
        if not excluded.is_empty():
            logger.info(
                f"Excluding {excluded.height} aggregate rows: "
                f"{excluded.get_column(id_column).to_list()}"
            )
        frame = frame.filter(~pl.col(id_column).str.contains(exclude_pattern))

    if frame.is_empty():
        raise ActivityDataError("No municipality rows left after cleaning")

    source_columns = [c for c in frame.columns if c not in (id_column, ROW_COLUMN)]
    if not source_columns:
        raise ActivityDataError("Table has no activity columns")

    renames: dict[str, str] = {}
    seen = {id_column: id_column}
    for column in source_columns:
        normalized = normalize_column_name(column)
        if not normalized:
            raise ActivityDataError(f"Column '{column}' has no usable name", column=column)
        if normalized in seen:
            raise ActivityDataError(
                f"Columns '{seen[normalized]}' and '{column}' both normalize to '{normalized}'",
                column=column,
            )
        seen[normalized] = column
        renames[column] = normalized

    for column in source_columns:
        checked = frame.select(
            ROW_COLUMN,
            id_column,
            pl.col(column).alias("raw"),
            _parse_numeric(column, decimal_comma).alias("value"),
        )
        bad = checked.filter(~pl.col("value").is_finite().fill_null(False))
        if not bad.is_empty():
            row = bad.row(0, named=True)
            problem = "Missing value" if row["raw"] in (None, "") else f"Non-numeric value {row['raw']!r}"
            raise ActivityDataError(
                f"{problem} in column '{column}' at row {row[ROW_COLUMN]} ({row[id_column]})",
                row=row[ROW_COLUMN],
                name=row[id_column],
                column=column,
            )

    frame = frame.with_columns(
        [_parse_numeric(column, decimal_comma).alias(column) for column in source_columns]
    )
    frame = frame.select([id_column, *source_columns]).rename(renames)

    activities = list(renames.values())
    out_of_range = frame.select(
        [((pl.col(c) < 0) | (pl.col(c) > 100)).sum().alias(c) for c in activities]
    ).row(0, named=True)
    for column, count in out_of_range.items():
        if count:
            logger.warning(f"{count} values in '{column}' are outside 0-100 percent")

    return ActivityDataset(frame=frame, id_column=id_column)


def load_activities(path: Path | str, **options: Any) -> ActivityDataset:
    """
    Read and clean a survey table.

    Args:
        path: Data file (CSV, Excel or Parquet).
        **options: skip_rows and sheet_name go to read_activity_table,
                   everything else to clean_activities.

    Returns:
        Cleaned ActivityDataset.
    """
    read_options = {k: options.pop(k) for k in ("skip_rows", "sheet_name") if k in options}
    raw = read_activity_table(path, **read_options)
    dataset = clean_activities(raw, **options)

    logger.success(
        f"Loaded {len(dataset):,} municipalities x {len(dataset.activities)} activities"
    )
    return dataset


def describe_dataset(dataset: ActivityDataset) -> dict:
    """
    Summary of a dataset for display.

    Returns:
        Dictionary with row/column counts and per-activity min/mean/max.
    """
    frame = dataset.frame
    stats = [
        {
            "activity": column,
            "min": float(frame.get_column(column).min()),
            "mean": float(frame.get_column(column).mean()),
            "max": float(frame.get_column(column).max()),
        }
        for column in dataset.activities
    ]
    return {
        "rows": len(dataset),
        "columns": len(dataset.activities),
        "id_column": dataset.id_column,
        "activities": list(dataset.activities),
        "stats": stats,
    }

"""
Extraction module for the cultural activity survey.

Reads the published participation table and cleans it into a dataset
keyed by municipality.
"""

from .activities import (
    ActivityDataError,
    ActivityDataset,
    clean_activities,
    describe_dataset,
    load_activities,
    normalize_column_name,
    read_activity_table,
)

__all__ = [
    "ActivityDataError",
    "ActivityDataset",
    "clean_activities",
    "describe_dataset",
    "load_activities",
    "normalize_column_name",
    "read_activity_table",
]

"""
Pipeline configuration.

Defaults reproduce the published analysis of the 2019 cultural activity
survey. Every value can be overridden from the environment (``CULTURE_*``
variables, optionally read from a ``.env`` file) or explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

# Configuration
# Relative to the working directory of the run
DEFAULT_DATA_PATH = Path("data") / "use-of-cultural-activities-dk-2019.xlsx"
DEFAULT_OUTPUT_DIR = Path("outputs")

# Rows whose identifier matches this are regional rollups, not municipalities
AGGREGATE_PATTERN = "Region|Province"

LINKAGE_METHODS = ("average", "complete", "single", "ward")
CONSTANT_POLICIES = ("raise", "zero")

ENV_PREFIX = "CULTURE_"


def _parse_ks(value: str) -> tuple[int, ...]:
    return tuple(int(part) for part in value.split(",") if part.strip())


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Environment variable suffix -> (field name, parser)
ENV_FIELDS = {
    "DATA_PATH": ("data_path", Path),
    "SKIP_ROWS": ("skip_rows", int),
    "SHEET_NAME": ("sheet_name", str),
    "ID_COLUMN": ("id_column", str),
    "EXCLUDE_PATTERN": ("exclude_pattern", str),
    "K_MIN": ("k_min", int),
    "K_MAX": ("k_max", int),
    "PARTITION_KS": ("partition_ks", _parse_ks),
    "N_INIT": ("n_init", int),
    "MAX_ITER": ("max_iter", int),
    "SEED": ("seed", int),
    "LINKAGE_METHOD": ("linkage_method", str),
    "RUN_VOTE": ("run_vote", _parse_bool),
    "OUTPUT_DIR": ("output_dir", Path),
    "LOG_LEVEL": ("log_level", str),
}


@dataclass
class PipelineConfig:
    """Configuration for a clustering run."""

    data_path: Path = DEFAULT_DATA_PATH
    skip_rows: int = 0
    sheet_name: str | None = None
    id_column: str = "kommune"
    id_position: int | None = None
    drop_leading_columns: int = 0
    exclude_pattern: str = AGGREGATE_PATTERN
    decimal_comma: bool = False
    k_min: int = 2
    k_max: int = 15
    partition_ks: tuple[int, ...] = (2, 3)
    n_init: int = 25
    max_iter: int = 100
    seed: int = 123
    linkage_method: str = "average"
    ddof: int = 1
    on_constant: str = "raise"
    run_vote: bool = True
    output_dir: Path = DEFAULT_OUTPUT_DIR
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.data_path = Path(self.data_path)
        self.output_dir = Path(self.output_dir)
        self.partition_ks = tuple(self.partition_ks)

        if self.skip_rows < 0:
            raise ValueError("skip_rows must be >= 0")
        if self.drop_leading_columns < 0:
            raise ValueError("drop_leading_columns must be >= 0")
        if self.k_min < 1:
            raise ValueError("k_min must be >= 1")
        if self.k_max < self.k_min:
            raise ValueError("k_max must be >= k_min")
        if not self.partition_ks:
            raise ValueError("partition_ks must contain at least one value")
        if any(k < 1 for k in self.partition_ks):
            raise ValueError("partition_ks must only contain values >= 1")
        if self.n_init < 1:
            raise ValueError("n_init must be >= 1")
        if self.max_iter < 1:
            raise ValueError("max_iter must be >= 1")
        if self.linkage_method not in LINKAGE_METHODS:
            raise ValueError(f"linkage_method must be one of {LINKAGE_METHODS}")
        if self.ddof not in (0, 1):
            raise ValueError("ddof must be 0 or 1")
        if self.on_constant not in CONSTANT_POLICIES:
            raise ValueError(f"on_constant must be one of {CONSTANT_POLICIES}")

    @property
    def k_range(self) -> range:
        return range(self.k_min, self.k_max + 1)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, **overrides) -> PipelineConfig:
        """
        Build a configuration from ``CULTURE_*`` environment variables.

        Args:
            env_file: Optional path to a ``.env`` file. If None, the default
                      lookup of python-dotenv is used.
            **overrides: Explicit values, applied after the environment.

        Returns:
            Validated PipelineConfig.
        """
        from dotenv import load_dotenv

        load_dotenv(env_file)

        values = {}
        for suffix, (name, parse) in ENV_FIELDS.items():
            raw = os.getenv(ENV_PREFIX + suffix)
            if raw is None or raw == "":
                continue
            try:
                values[name] = parse(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX + suffix}: {raw!r}") from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides) -> PipelineConfig:
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

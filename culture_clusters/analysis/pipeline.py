"""
Full clustering pipeline.

Usage:
    python -m culture_clusters.analysis.pipeline

Or from Python:
    from culture_clusters.analysis.pipeline import run_pipeline
    report = run_pipeline(PipelineConfig(data_path="data/activities.csv"))
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import polars as pl
from loguru import logger

from culture_clusters.analysis import plots
from culture_clusters.analysis.cluster_count import (
    ClusterCountDiagnostics,
    ClusterCountEvaluator,
    IndexBattery,
    VoteResult,
    compute_diagnostics,
)
from culture_clusters.analysis.clusterability import DipTestResult, dip_test
from culture_clusters.analysis.clustering import (
    ClusterAssignment,
    KMeansResult,
    run_kmeans,
    validate_k,
)
from culture_clusters.analysis.hierarchy import Dendrogram, build_dendrogram
from culture_clusters.analysis.profiles import (
    ContingencyTable,
    adjusted_rand,
    agreement,
    cluster_profiles,
    cross_tabulate,
    match_labels,
)
from culture_clusters.analysis.scaling import StandardizedDataset, standardize
from culture_clusters.config import PipelineConfig
from culture_clusters.extraction.activities import ActivityDataset, load_activities


@dataclass(frozen=True, eq=False)
class ClusteringReport:
    """Everything produced by one pipeline run."""

    config: PipelineConfig
    raw: ActivityDataset
    standardized: StandardizedDataset
    dip: DipTestResult | None
    diagnostics: ClusterCountDiagnostics
    vote: VoteResult | None
    kmeans: dict[int, KMeansResult]
    dendrogram: Dendrogram
    hierarchical: dict[int, ClusterAssignment]
    profiles: dict[str, pl.DataFrame]
    contingency: dict[int, ContingencyTable]

    def assignments(self) -> list[ClusterAssignment]:
        return [r.assignment for r in self.kmeans.values()] + list(self.hierarchical.values())

    def assignments_frame(self) -> pl.DataFrame:
        """All partitions in long format: kommune, method, k, cluster."""
        id_column = self.raw.id_column
        frames = [
            a.to_frame(id_column).with_columns(
                pl.lit(a.method).alias("method"),
                pl.lit(a.k, dtype=pl.Int64).alias("k"),
            )
            for a in self.assignments()
        ]
        return pl.concat(frames).select(id_column, "method", "k", "cluster")

    def summary(self) -> dict:
        comparisons = {}
        for k, table in self.contingency.items():
            comparisons[str(k)] = {
                "agreement": agreement(table),
                "adjusted_rand": adjusted_rand(self.kmeans[k].assignment, self.hierarchical[k]),
                "hierarchical_to_kmeans": {
                    str(col): row for col, row in match_labels(table).items()
                },
            }

        return {
            "municipalities": len(self.raw),
            "activities": list(self.raw.activities),
            "seed": self.config.seed,
            "n_init": self.config.n_init,
            "dip_test": None
            if self.dip is None
            else {
                "statistic": self.dip.statistic,
                "p_value": self.dip.p_value,
                "reduction": self.dip.reduction,
            },
            "best_k_silhouette": self.diagnostics.best_k_silhouette,
            "vote": None
            if self.vote is None
            else {
                "recommendations": self.vote.recommendations,
                "distribution": {str(k): v for k, v in self.vote.distribution().items()},
                "best": self.vote.best(),
            },
            "kmeans": {
                str(k): {
                    "wss": r.wss,
                    "converged": r.converged,
                    "n_iter": r.n_iter,
                    "sizes": {str(label): n for label, n in r.assignment.sizes().items()},
                }
                for k, r in self.kmeans.items()
            },
            "hierarchical": {
                "method": self.dendrogram.method,
                "cophenetic_correlation": self.dendrogram.cophenetic_correlation,
                "sizes": {
                    str(k): {str(label): n for label, n in a.sizes().items()}
                    for k, a in self.hierarchical.items()
                },
            },
            "comparisons": comparisons,
        }


def run_pipeline(
    config: PipelineConfig,
    *,
    evaluator: ClusterCountEvaluator | None = None,
) -> ClusteringReport:
    """
    Run the full clustering pipeline.

    Args:
        config: Pipeline configuration.
        evaluator: Cluster-count vote. If None, IndexBattery with the
                   configured seed is used. Ignored when config.run_vote
                   is False.

    Returns:
        ClusteringReport with all intermediate and final results.

    Raises:
        InvalidClusterCountError: If a requested k exceeds the number of
            municipalities. Checked before any clustering runs.
    """
    logger.info("1. Loading municipality data...")
    raw = load_activities(
        config.data_path,
        skip_rows=config.skip_rows,
        sheet_name=config.sheet_name,
        id_column=config.id_column,
        id_position=config.id_position,
        drop_leading_columns=config.drop_leading_columns,
        exclude_pattern=config.exclude_pattern,
        decimal_comma=config.decimal_comma,
    )

    n = len(raw)
    for k in (*config.partition_ks, config.k_min, config.k_max):
        validate_k(k, n)

    logger.info("2. Standardizing activities...")
    standardized = standardize(raw, ddof=config.ddof, on_constant=config.on_constant)

    logger.info("3. Testing clusterability...")
    dip = dip_test(standardized) if n >= 4 else None
    if dip is None:
        logger.warning(f"Skipping dip test: only {n} municipalities")

    logger.info(f"4. Analyzing cluster count k={config.k_min}..{config.k_max}...")
    diagnostics = compute_diagnostics(
        standardized,
        k_min=config.k_min,
        k_max=config.k_max,
        n_init=config.n_init,
        seed=config.seed,
        max_iter=config.max_iter,
    )

    vote = None
    if config.run_vote:
        evaluator = evaluator or IndexBattery(
            n_init=config.n_init, seed=config.seed, max_iter=config.max_iter
        )
        vote = evaluator.evaluate(standardized, config.k_range)

    logger.info(f"5. Running K-Means for k={list(config.partition_ks)}...")
    kmeans = {
        k: run_kmeans(
            standardized, k, n_init=config.n_init, seed=config.seed, max_iter=config.max_iter
        )
        for k in config.partition_ks
    }

    logger.info(f"6. Hierarchical clustering ({config.linkage_method} linkage)...")
    dendrogram = build_dendrogram(standardized, method=config.linkage_method)
    hierarchical = {k: dendrogram.cut(k) for k in config.partition_ks}

    logger.info("7. Generating cluster profiles...")
    profiles = {}
    for k in config.partition_ks:
        profiles[f"kmeans_{k}"] = cluster_profiles(raw, kmeans[k].assignment)
        profiles[f"hierarchical_{k}"] = cluster_profiles(raw, hierarchical[k])

    contingency = {k: cross_tabulate(kmeans[k].assignment, hierarchical[k]) for k in config.partition_ks}
    for k, table in contingency.items():
        logger.info(f"k={k}: K-Means vs hierarchical agreement {agreement(table):.1%}")

    logger.success("Clustering pipeline complete")

    return ClusteringReport(
        config=config,
        raw=raw,
        standardized=standardized,
        dip=dip,
        diagnostics=diagnostics,
        vote=vote,
        kmeans=kmeans,
        dendrogram=dendrogram,
        hierarchical=hierarchical,
        profiles=profiles,
        contingency=contingency,
    )


def export_report(
    report: ClusteringReport,
    output_dir: Path | str,
    *,
    figures: bool = True,
) -> list[Path]:
    """
    Write the report as CSV, JSON and HTML files.

    Args:
        report: Result of run_pipeline.
        output_dir: Target directory, created if missing.
        figures: Also write plotly HTML figures.

    Returns:
        Paths of the written files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    def write_csv(frame: pl.DataFrame, name: str) -> None:
        path = output_dir / name
        frame.write_csv(path)
        written.append(path)

    write_csv(report.assignments_frame(), "assignments.csv")
    write_csv(report.diagnostics.to_frame(), "diagnostics.csv")
    write_csv(report.dendrogram.to_frame(), "dendrogram.csv")
    if report.vote is not None:
        write_csv(report.vote.to_frame(), "votes.csv")
        write_csv(report.vote.recommendations_frame(), "vote_recommendations.csv")
    for name, profile in report.profiles.items():
        write_csv(profile, f"profiles_{name}.csv")
    for k, table in report.contingency.items():
        write_csv(table.to_frame(), f"contingency_k{k}.csv")

    summary_path = output_dir / "summary.json"
    summary_path.write_text(json.dumps(report.summary(), indent=2, ensure_ascii=False))
    written.append(summary_path)

    if figures:
        figs = {
            "elbow": plots.elbow_figure(report.diagnostics),
            "silhouette": plots.silhouette_figure(report.diagnostics),
            "dendrogram": plots.dendrogram_figure(report.standardized, report.dendrogram),
        }
        if report.vote is not None:
            figs["votes"] = plots.vote_figure(report.vote)
        for name, profile in report.profiles.items():
            figs[f"profiles_{name}"] = plots.profile_heatmap(profile, title=name)
        for k, result in report.kmeans.items():
            figs[f"sizes_kmeans_{k}"] = plots.cluster_size_figure(
                result.assignment.sizes(), title=f"K-Means k={k}"
            )
        for name, fig in figs.items():
            path = output_dir / f"{name}.html"
            fig.write_html(path, include_plotlyjs="cdn")
            written.append(path)

    logger.success(f"Wrote {len(written)} files to {output_dir}")
    return written


def main() -> ClusteringReport:
    """Run the pipeline with the environment configuration and export it."""
    config = PipelineConfig.from_env()
    report = run_pipeline(config)
    export_report(report, config.output_dir)
    return report


if __name__ == "__main__":
    main()

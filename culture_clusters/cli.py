#!/usr/bin/env python3
"""
Command line interface.

Usage:
    culture-clusters run data/activities.xlsx --skip-rows 2 --id-position 0
    culture-clusters select-k data/activities.csv --k-max 10
    culture-clusters inspect data/activities.csv

Every option falls back to the matching CULTURE_* environment variable
(a .env file is read), then to the built-in default.
"""

import sys
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from culture_clusters.analysis.cluster_count import IndexBattery, compute_diagnostics
from culture_clusters.analysis.clustering import EmptyClusterError, InvalidClusterCountError
from culture_clusters.analysis.pipeline import export_report, run_pipeline
from culture_clusters.analysis.scaling import ConstantColumnError, standardize
from culture_clusters.config import PipelineConfig
from culture_clusters.extraction.activities import (
    ActivityDataError,
    describe_dataset,
    load_activities,
)

console = Console()
app = typer.Typer(help="Cluster Danish municipalities by cultural activity participation")

# Errors that end the command with a message instead of a traceback
USER_ERRORS = (
    ActivityDataError,
    ConstantColumnError,
    InvalidClusterCountError,
    EmptyClusterError,
    FileNotFoundError,
    ValueError,
)


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Log to stderr at the given level and, if log_dir is set, to a rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    if log_dir is not None:
        logger.add(
            Path(log_dir) / "clustering_{time}.log",
            rotation="10 MB",
            retention="7 days",
            level="INFO",
        )


def _build_config(path: Path, **overrides) -> PipelineConfig:
    try:
        return PipelineConfig.from_env(data_path=path, **overrides)
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1)


def _load(config: PipelineConfig):
    return load_activities(
        config.data_path,
        skip_rows=config.skip_rows,
        sheet_name=config.sheet_name,
        id_column=config.id_column,
        id_position=config.id_position,
        drop_leading_columns=config.drop_leading_columns,
        exclude_pattern=config.exclude_pattern,
        decimal_comma=config.decimal_comma,
    )


def _vote_table(vote) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("k", justify="right", style="cyan")
    table.add_column("Votes", justify="right")
    table.add_column("Indices")
    for k, votes in vote.distribution().items():
        indices = [name for name, rec in vote.recommendations.items() if rec == k]
        table.add_row(str(k), str(votes), ", ".join(indices))
    return table


def _diagnostics_table(diagnostics) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("k", justify="right", style="cyan")
    table.add_column("WSS", justify="right")
    table.add_column("Silhouette", justify="right")
    for k in diagnostics.k_range:
        silhouette = diagnostics.silhouette.get(k)
        table.add_row(
            str(k),
            f"{diagnostics.wss[k]:.2f}",
            "-" if silhouette is None else f"{silhouette:.3f}",
        )
    return table


@app.command()
def run(
    path: Path = typer.Argument(..., help="Survey table (CSV, Excel or Parquet)"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    k_min: Optional[int] = typer.Option(None, "--k-min", help="Smallest k for diagnostics"),
    k_max: Optional[int] = typer.Option(None, "--k-max", help="Largest k for diagnostics"),
    ks: Optional[List[int]] = typer.Option(None, "--k", "-k", help="k for the final partitions (repeatable)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for k-means restarts"),
    n_init: Optional[int] = typer.Option(None, "--n-init", help="Number of k-means restarts"),
    no_vote: bool = typer.Option(False, "--no-vote", help="Skip the multi-index vote"),
    no_figures: bool = typer.Option(False, "--no-figures", help="Do not write HTML figures"),
    skip_rows: Optional[int] = typer.Option(None, "--skip-rows", help="Title rows above the header"),
    id_column: Optional[str] = typer.Option(None, "--id-column", help="Municipality column name"),
    id_position: Optional[int] = typer.Option(
        None, "--id-position", help="Rename the column at this position to the id column"
    ),
    drop_leading: Optional[int] = typer.Option(None, "--drop-leading", help="Leading columns to discard"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default INFO)"),
) -> None:
    """
    Run the full clustering pipeline and export the results.

    Loads and cleans the table, standardizes it, runs the dip test,
    cluster-count diagnostics and vote, k-means and hierarchical
    clustering for every --k, and writes CSV, JSON and HTML outputs.
    """
    config = _build_config(
        path,
        log_level=log_level,
        output_dir=output_dir,
        k_min=k_min,
        k_max=k_max,
        partition_ks=tuple(ks) if ks else None,
        seed=seed,
        n_init=n_init,
        run_vote=False if no_vote else None,
        skip_rows=skip_rows,
        id_column=id_column,
        id_position=id_position,
        drop_leading_columns=drop_leading,
    )
    configure_logging(config.log_level, log_dir=config.output_dir / "logs")
    console.print("\n[bold blue]🇩🇰 Cultural Activity Clustering[/bold blue]\n")

    try:
        report = run_pipeline(config)
        written = export_report(report, config.output_dir, figures=not no_figures)
    except USER_ERRORS as e:
        logger.error(f"Pipeline failed: {e}")
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {len(report.raw)} municipalities, "
        f"{len(report.raw.activities)} activities"
    )
    if report.dip is not None:
        verdict = "clusterable" if report.dip.clusterable() else "no evidence of clusters"
        console.print(
            f"[green]✓[/green] Dip test: D={report.dip.statistic:.4f}, "
            f"p={report.dip.p_value:.4f} ({verdict})"
        )
    console.print(
        f"[green]✓[/green] Best k by silhouette: "
        f"[bold]{report.diagnostics.best_k_silhouette}[/bold]\n"
    )

    if report.vote is not None:
        console.print("[bold]Index vote:[/bold]")
        console.print(_vote_table(report.vote))
        console.print()

    sizes_table = Table(show_header=True, header_style="bold green")
    sizes_table.add_column("Partition", style="cyan")
    sizes_table.add_column("Cluster sizes")
    sizes_table.add_column("Converged")
    for k, result in report.kmeans.items():
        sizes_table.add_row(
            f"K-Means k={k}",
            ", ".join(f"{label}: {n}" for label, n in result.assignment.sizes().items()),
            "yes" if result.converged else "[yellow]no[/yellow]",
        )
    for k, assignment in report.hierarchical.items():
        sizes_table.add_row(
            f"Hierarchical k={k}",
            ", ".join(f"{label}: {n}" for label, n in assignment.sizes().items()),
            "-",
        )
    console.print(sizes_table)

    for k, table in report.contingency.items():
        console.print(f"\n[bold]K-Means vs hierarchical, k={k}:[/bold]")
        frame = table.to_frame()
        crosstab = Table(show_header=True, header_style="bold magenta")
        for column in frame.columns:
            crosstab.add_column(column, justify="right")
        for row in frame.iter_rows():
            crosstab.add_row(*[str(v) for v in row])
        console.print(crosstab)

    console.print(f"\n[bold green]✅ Wrote {len(written)} files to {config.output_dir}[/bold green]\n")


@app.command("select-k")
def select_k(
    path: Path = typer.Argument(..., help="Survey table (CSV, Excel or Parquet)"),
    k_min: Optional[int] = typer.Option(None, "--k-min", help="Smallest k"),
    k_max: Optional[int] = typer.Option(None, "--k-max", help="Largest k"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for k-means restarts"),
    n_init: Optional[int] = typer.Option(None, "--n-init", help="Number of k-means restarts"),
    no_vote: bool = typer.Option(False, "--no-vote", help="Skip the multi-index vote"),
    skip_rows: Optional[int] = typer.Option(None, "--skip-rows", help="Title rows above the header"),
    id_column: Optional[str] = typer.Option(None, "--id-column", help="Municipality column name"),
    id_position: Optional[int] = typer.Option(
        None, "--id-position", help="Rename the column at this position to the id column"
    ),
    drop_leading: Optional[int] = typer.Option(None, "--drop-leading", help="Leading columns to discard"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default INFO)"),
) -> None:
    """Show elbow, silhouette and index-vote diagnostics for a range of k."""
    config = _build_config(
        path,
        log_level=log_level,
        k_min=k_min,
        k_max=k_max,
        seed=seed,
        n_init=n_init,
        skip_rows=skip_rows,
        id_column=id_column,
        id_position=id_position,
        drop_leading_columns=drop_leading,
    )
    configure_logging(config.log_level)

    try:
        standardized = standardize(_load(config), ddof=config.ddof, on_constant=config.on_constant)
        diagnostics = compute_diagnostics(
            standardized,
            k_min=config.k_min,
            k_max=config.k_max,
            n_init=config.n_init,
            seed=config.seed,
            max_iter=config.max_iter,
        )
        vote = None
        if not no_vote and config.run_vote:
            battery = IndexBattery(n_init=config.n_init, seed=config.seed, max_iter=config.max_iter)
            vote = battery.evaluate(standardized, config.k_range)
    except USER_ERRORS as e:
        logger.error(f"Cluster count selection failed: {e}")
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[bold]Elbow and silhouette:[/bold]")
    console.print(_diagnostics_table(diagnostics))
    console.print(f"\nBest k by silhouette: [bold]{diagnostics.best_k_silhouette}[/bold]")

    if vote is not None:
        console.print("\n[bold]Index vote:[/bold]")
        console.print(_vote_table(vote))
        best = vote.best()
        if len(best) > 1:
            console.print(f"[yellow]Tie between k={best}[/yellow]")
        else:
            console.print(f"Most voted k: [bold]{best[0] if best else '-'}[/bold]")


@app.command()
def inspect(
    path: Path = typer.Argument(..., help="Survey table (CSV, Excel or Parquet)"),
    skip_rows: Optional[int] = typer.Option(None, "--skip-rows", help="Title rows above the header"),
    id_column: Optional[str] = typer.Option(None, "--id-column", help="Municipality column name"),
    id_position: Optional[int] = typer.Option(
        None, "--id-position", help="Rename the column at this position to the id column"
    ),
    drop_leading: Optional[int] = typer.Option(None, "--drop-leading", help="Leading columns to discard"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default INFO)"),
) -> None:
    """Check that a table loads and show its activities."""
    config = _build_config(
        path,
        log_level=log_level,
        skip_rows=skip_rows,
        id_column=id_column,
        id_position=id_position,
        drop_leading_columns=drop_leading,
    )
    configure_logging(config.log_level)

    try:
        info = describe_dataset(_load(config))
    except USER_ERRORS as e:
        logger.error(f"Could not load {config.data_path}: {e}")
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"\n[bold]Dataset:[/bold] {info['rows']} municipalities, "
        f"{info['columns']} activities ({config.data_path})\n"
    )

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Activity", style="cyan")
    table.add_column("Min %", justify="right")
    table.add_column("Mean %", justify="right")
    table.add_column("Max %", justify="right")
    for stat in info["stats"]:
        table.add_row(
            stat["activity"],
            f"{stat['min']:.1f}",
            f"{stat['mean']:.1f}",
            f"{stat['max']:.1f}",
        )
    console.print(table)


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()

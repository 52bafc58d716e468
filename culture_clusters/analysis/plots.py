"""
Plotly figures for the clustering report.

Figures are returned, not shown; the pipeline writes them as standalone
HTML files next to the CSV outputs.
"""

from __future__ import annotations

import plotly.figure_factory as ff
import plotly.graph_objects as go
import polars as pl

from culture_clusters.analysis.cluster_count import ClusterCountDiagnostics, VoteResult
from culture_clusters.analysis.hierarchy import Dendrogram
from culture_clusters.extraction.activities import ActivityDataset

# Cluster color scheme, indexed by label - 1
CLUSTER_COLORS = [
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
]


def elbow_figure(diagnostics: ClusterCountDiagnostics) -> go.Figure:
    """Total within-cluster sum of squares per k."""
    ks = diagnostics.k_range
    fig = go.Figure(
        go.Scatter(
            x=ks,
            y=[diagnostics.wss[k] for k in ks],
            mode="lines+markers",
            name="WSS",
        )
    )
    fig.update_layout(
        title="Elbow method",
        xaxis_title="Number of clusters k",
        yaxis_title="Total within-cluster sum of squares",
        xaxis=dict(dtick=1),
    )
    return fig


def silhouette_figure(diagnostics: ClusterCountDiagnostics) -> go.Figure:
    """Average silhouette width per k, with the best k marked."""
    ks = sorted(diagnostics.silhouette)
    fig = go.Figure(
        go.Scatter(
            x=ks,
            y=[diagnostics.silhouette[k] for k in ks],
            mode="lines+markers",
            name="Average silhouette",
        )
    )
    best = diagnostics.best_k_silhouette
    if best is not None:
        fig.add_vline(x=best, line_dash="dash", line_color="#d62728")
    fig.update_layout(
        title="Silhouette method",
        xaxis_title="Number of clusters k",
        yaxis_title="Average silhouette width",
        xaxis=dict(dtick=1),
    )
    return fig


def vote_figure(vote: VoteResult) -> go.Figure:
    """Number of indices recommending each k."""
    distribution = vote.distribution()
    fig = go.Figure(
        go.Bar(
            x=[str(k) for k in distribution],
            y=list(distribution.values()),
            marker_color="#4682b4",
        )
    )
    fig.update_layout(
        title=f"Optimal number of clusters ({len(vote.recommendations)} indices)",
        xaxis_title="Number of clusters k",
        yaxis_title="Frequency among all indices",
    )
    return fig


def dendrogram_figure(dataset: ActivityDataset, dendrogram: Dendrogram) -> go.Figure:
    """Dendrogram with municipality names as leaves."""
    fig = ff.create_dendrogram(
        dataset.matrix(),
        labels=list(dataset.names),
        linkagefun=lambda _: dendrogram.linkage_matrix,
    )
    fig.update_layout(
        title=f"Hierarchical clustering ({dendrogram.method} linkage)",
        yaxis_title="Height",
        height=600,
        width=max(800, 14 * len(dataset)),
    )
    return fig


def profile_heatmap(profile: pl.DataFrame, title: str = "Cluster profiles") -> go.Figure:
    """Mean participation per cluster and activity."""
    activities = [c for c in profile.columns if c not in ("cluster", "size")]
    fig = go.Figure(
        go.Heatmap(
            z=profile.select(activities).to_numpy(),
            x=activities,
            y=[f"Cluster {c} (n={s})" for c, s in zip(profile["cluster"], profile["size"])],
            colorscale="Blues",
            colorbar=dict(title="%"),
        )
    )
    fig.update_layout(title=title, xaxis_tickangle=-45)
    return fig


def cluster_size_figure(sizes: dict[int, int], title: str = "Cluster sizes") -> go.Figure:
    fig = go.Figure(
        go.Bar(
            x=[f"Cluster {label}" for label in sizes],
            y=list(sizes.values()),
            marker_color=[CLUSTER_COLORS[(label - 1) % len(CLUSTER_COLORS)] for label in sizes],
        )
    )
    fig.update_layout(title=title, yaxis_title="Municipalities", showlegend=False)
    return fig

"""
Analysis module for Danish cultural participation.

Contains standardization, clustering, cluster-count selection and
cluster profiling.
"""

from .cluster_count import IndexBattery, VoteResult, compute_diagnostics
from .clustering import ClusterAssignment, KMeansResult, run_kmeans
from .hierarchy import Dendrogram, build_dendrogram
from .pipeline import ClusteringReport, export_report, run_pipeline
from .profiles import cluster_profiles, cross_tabulate, match_labels
from .scaling import StandardizedDataset, standardize

__all__ = [
    "ClusterAssignment",
    "ClusteringReport",
    "Dendrogram",
    "IndexBattery",
    "KMeansResult",
    "StandardizedDataset",
    "VoteResult",
    "build_dendrogram",
    "cluster_profiles",
    "compute_diagnostics",
    "cross_tabulate",
    "export_report",
    "match_labels",
    "run_kmeans",
    "run_pipeline",
    "standardize",
]

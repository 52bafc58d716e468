"""Tests for the end-to-end pipeline."""

import json

import pytest

from culture_clusters.analysis.cluster_count import VoteResult
from culture_clusters.analysis.clustering import InvalidClusterCountError
from culture_clusters.analysis.pipeline import export_report, run_pipeline
from culture_clusters.config import PipelineConfig


@pytest.fixture
def config(survey_csv, tmp_path) -> PipelineConfig:
    return PipelineConfig(
        data_path=survey_csv,
        k_min=2,
        k_max=6,
        partition_ks=(2, 3),
        n_init=5,
        seed=123,
        output_dir=tmp_path / "out",
    )


class StubEvaluator:
    """Evaluator that always recommends 2."""

    def __init__(self):
        self.calls = []

    def evaluate(self, dataset, k_range):
        self.calls.append((len(dataset), list(k_range)))
        return VoteResult({"stub": 2})


class TestRunPipeline:
    """Test run_pipeline()."""

    def test_excludes_regional_rows(self, config):
        report = run_pipeline(config)

        assert len(report.raw) == 30
        assert not any(name.startswith(("Region", "Province")) for name in report.raw.names)
        assert report.raw.activities == ("bibliotek", "museum", "koncert_rytmisk")

    def test_partitions(self, config):
        report = run_pipeline(config)

        assert set(report.kmeans) == {2, 3}
        assert set(report.hierarchical) == {2, 3}
        assert set(report.profiles) == {
            "kmeans_2", "kmeans_3", "hierarchical_2", "hierarchical_3",
        }
        assert report.diagnostics.k_range == [2, 3, 4, 5, 6]
        assert report.diagnostics.best_k_silhouette == 3

    def test_methods_agree_on_separated_groups(self, config):
        report = run_pipeline(config)
        table = report.contingency[3]

        assert table.total == 30
        assert report.summary()["comparisons"]["3"]["agreement"] == pytest.approx(1.0)
        assert sorted(report.kmeans[3].assignment.sizes().values()) == [10, 10, 10]

    def test_profiles_in_raw_units(self, config):
        report = run_pipeline(config)
        profile = report.profiles["kmeans_3"]

        assert profile["size"].sum() == 30
        assert sorted(round(v) for v in profile["bibliotek"].to_list()) == [20, 40, 60]

    def test_custom_evaluator(self, config):
        evaluator = StubEvaluator()

        report = run_pipeline(config, evaluator=evaluator)

        assert evaluator.calls == [(30, [2, 3, 4, 5, 6])]
        assert report.vote.best() == [2]

    def test_vote_disabled(self, config):
        evaluator = StubEvaluator()

        report = run_pipeline(config.with_overrides(run_vote=False), evaluator=evaluator)

        assert report.vote is None
        assert evaluator.calls == []

    def test_partition_k_larger_than_n(self, config):
        with pytest.raises(InvalidClusterCountError):
            run_pipeline(config.with_overrides(partition_ks=(2, 31)))

    def test_k_max_larger_than_n(self, config):
        with pytest.raises(InvalidClusterCountError):
            run_pipeline(config.with_overrides(k_max=40))

    def test_assignments_frame(self, config):
        frame = run_pipeline(config).assignments_frame()

        assert frame.columns == ["kommune", "method", "k", "cluster"]
        assert frame.height == 30 * 4
        assert set(frame["method"].unique().to_list()) == {"kmeans", "hierarchical"}


class TestExportReport:
    """Test export_report()."""

    def test_writes_tables_and_summary(self, config):
        report = run_pipeline(config)

        written = export_report(report, config.output_dir, figures=False)
        names = {path.name for path in written}

        assert {
            "assignments.csv",
            "diagnostics.csv",
            "dendrogram.csv",
            "votes.csv",
            "vote_recommendations.csv",
            "profiles_kmeans_3.csv",
            "profiles_hierarchical_2.csv",
            "contingency_k2.csv",
            "contingency_k3.csv",
            "summary.json",
        } <= names
        assert all(path.exists() for path in written)
        assert not any(name.endswith(".html") for name in names)

        summary = json.loads((config.output_dir / "summary.json").read_text())
        assert summary["municipalities"] == 30
        assert summary["seed"] == 123
        assert set(summary["kmeans"]) == {"2", "3"}

    def test_writes_figures(self, config):
        report = run_pipeline(config)

        written = export_report(report, config.output_dir)
        names = {path.name for path in written}

        assert {"elbow.html", "silhouette.html", "dendrogram.html", "votes.html"} <= names
        assert "profiles_kmeans_2.html" in names
        assert "sizes_kmeans_3.html" in names

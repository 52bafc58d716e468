"""Tests for the command line interface."""

import os

import pytest
from typer.testing import CliRunner

from culture_clusters.cli import app
from culture_clusters.config import ENV_PREFIX

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, reset_logger):
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)


def test_run(survey_csv, tmp_path):
    output = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run", str(survey_csv),
            "--output", str(output),
            "--k-max", "5",
            "--n-init", "5",
            "-k", "2",
            "-k", "3",
            "--no-figures",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "30 municipalities" in result.output
    assert (output / "assignments.csv").exists()
    assert (output / "contingency_k3.csv").exists()
    assert not (output / "elbow.html").exists()


def test_select_k(survey_csv):
    result = runner.invoke(
        app, ["select-k", str(survey_csv), "--k-max", "5", "--n-init", "3", "--no-vote"]
    )

    assert result.exit_code == 0, result.output
    assert "Best k by silhouette" in result.output


def test_inspect(survey_csv):
    result = runner.invoke(app, ["inspect", str(survey_csv)])

    assert result.exit_code == 0, result.output
    assert "30 municipalities" in result.output
    assert "koncert_rytmisk" in result.output


def test_missing_file(tmp_path):
    result = runner.invoke(app, ["inspect", str(tmp_path / "missing.csv")])

    assert result.exit_code == 1


def test_invalid_option(survey_csv, tmp_path):
    result = runner.invoke(
        app, ["run", str(survey_csv), "--output", str(tmp_path), "--k-min", "0"]
    )

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_k_larger_than_n(survey_csv, tmp_path):
    result = runner.invoke(
        app,
        ["run", str(survey_csv), "--output", str(tmp_path), "--k-max", "5", "-k", "40"],
    )

    assert result.exit_code == 1

"""Tests for the command-line interface."""

from pathlib import Path
from typing import Any

import pandas as pd
import pytest
import yaml
from typer.testing import CliRunner

from modelhub import __version__
from modelhub.cli import app

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, people_config_data: dict[str, Any], people_lines: list[str]) -> Path:
    """Config file and training data with storage rooted in tmp_path."""
    people_config_data["storage"] = {
        "root": str(tmp_path / "models"),
        "registry_root": str(tmp_path / "registry"),
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(people_config_data), encoding="utf-8")
    (tmp_path / "people.csv").write_text("\n".join(people_lines) + "\n", encoding="utf-8")
    return tmp_path


def _train(workspace: Path, output: str = "file:churn.bin") -> Any:
    return runner.invoke(
        app,
        [
            "train",
            "--config",
            str(workspace / "config.yaml"),
            "--data",
            str(workspace / "people.csv"),
            "--output",
            output,
        ],
    )


class TestTrain:
    """Tests for the train command."""

    def test_train_stores_model(self, workspace: Path) -> None:
        """Test that training writes the artifact to the location key."""
        result = _train(workspace)

        assert result.exit_code == 0, result.output
        assert (workspace / "models" / "churn.bin").exists()

    def test_train_to_registry(self, workspace: Path) -> None:
        """Test that registry locations create a new version."""
        result = _train(workspace, "registry:/_system/governance/models/churn")

        assert result.exit_code == 0, result.output
        assert (workspace / "registry" / "models" / "churn" / "1.bin").exists()

    def test_invalid_workflow(self, workspace: Path, people_config_data: dict[str, Any]) -> None:
        """Test that configuration errors exit with code 1."""
        people_config_data["workflow"]["algorithm_name"] = "QUANTUM_FOREST"
        (workspace / "config.yaml").write_text(yaml.safe_dump(people_config_data), encoding="utf-8")

        result = _train(workspace)
        assert result.exit_code == 1


class TestPredict:
    """Tests for the predict command."""

    def test_predict_to_file(self, workspace: Path) -> None:
        """Test predictions for a CSV of requests, bound by column name."""
        assert _train(workspace).exit_code == 0
        requests = workspace / "requests.csv"
        requests.write_text("income,age,zipcode\n77000,58,24103\n21000,21,24103\n", encoding="utf-8")
        output = workspace / "predictions.csv"

        result = runner.invoke(
            app,
            [
                "predict",
                "--input",
                str(requests),
                "--config",
                str(workspace / "config.yaml"),
                "--model",
                "file:churn.bin",
                "--output",
                str(output),
            ],
        )

        assert result.exit_code == 0, result.output
        frame = pd.read_csv(output)
        assert list(frame.columns) == ["row", "prediction"]
        assert frame["prediction"].tolist() == ["yes", "no"]

    def test_skip_bad_rows(self, workspace: Path) -> None:
        """Test that bad rows are reported instead of failing the batch."""
        assert _train(workspace).exit_code == 0
        requests = workspace / "requests.csv"
        requests.write_text("age,income\nold,77000\n21,21000\n", encoding="utf-8")
        output = workspace / "predictions.csv"

        result = runner.invoke(
            app,
            [
                "predict",
                "-i",
                str(requests),
                "-c",
                str(workspace / "config.yaml"),
                "-m",
                "file:churn.bin",
                "-o",
                str(output),
                "--skip-bad-rows",
            ],
        )

        assert result.exit_code == 0, result.output
        frame = pd.read_csv(output, keep_default_na=False)
        assert frame["error"].iloc[0] != ""
        assert frame["error"].iloc[1] == ""
        assert frame["prediction"].iloc[1] == "no"

    def test_bad_row_fails_batch(self, workspace: Path) -> None:
        """Test that without --skip-bad-rows a bad row fails the command."""
        assert _train(workspace).exit_code == 0
        requests = workspace / "requests.csv"
        requests.write_text("age,income\nold,77000\n", encoding="utf-8")

        result = runner.invoke(
            app,
            [
                "predict",
                "-i",
                str(requests),
                "-c",
                str(workspace / "config.yaml"),
                "-m",
                "file:churn.bin",
            ],
        )
        assert result.exit_code == 1

    def test_missing_model_location(self, workspace: Path) -> None:
        """Test that predict needs a model location."""
        requests = workspace / "requests.csv"
        requests.write_text("age,income\n30,40000\n", encoding="utf-8")

        result = runner.invoke(
            app, ["predict", "-i", str(requests), "-c", str(workspace / "config.yaml")]
        )
        assert result.exit_code == 1


class TestInspect:
    """Tests for the inspect command."""

    def test_inspect(self, workspace: Path) -> None:
        """Test that a stored model can be described."""
        assert _train(workspace).exit_code == 0

        result = runner.invoke(
            app,
            ["inspect", "--model", "file:churn.bin", "--config", str(workspace / "config.yaml")],
        )
        assert result.exit_code == 0, result.output
        assert "LOGISTIC_REGRESSION" in result.output

    def test_inspect_missing(self, workspace: Path) -> None:
        """Test that a missing model exits with code 1."""
        result = runner.invoke(
            app,
            ["inspect", "--model", "file:none.bin", "--config", str(workspace / "config.yaml")],
        )
        assert result.exit_code == 1


def test_version() -> None:
    """Test the version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output

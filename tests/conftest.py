"""Pytest configuration and shared fixtures."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog

from modelhub.config import build_config
from modelhub.config.settings import PlatformConfig
from modelhub.modeling.builder import ModelBuilder
from modelhub.serving.repository import ModelRepository
from modelhub.storage.adapters import StorageResolver


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Drop structlog configuration left behind by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def people_lines() -> list[str]:
    """
    Four-column dataset: age, income, zip (excluded), churned (response).

    Churn follows income, so every classifier separates it.
    """
    lines = ["age,income,zip,churned"]
    for i in range(40):
        age = 20 + i
        income = 20000 + 1500 * i
        churned = "yes" if income > 50000 else "no"
        lines.append(f"{age},{income},{10000 + i},{churned}")
    return lines


@pytest.fixture
def people_config_data() -> dict[str, Any]:
    """Raw configuration for the four-column churn dataset."""
    return {
        "project": "churn",
        "workflow": {
            "algorithm_name": "LOGISTIC_REGRESSION",
            "response_variable": "churned",
            "features": [
                {"name": "age", "index": 0},
                {"name": "income", "index": 1},
                {"name": "zip", "index": 2, "include": False},
                {"name": "churned", "index": 3, "type": "CATEGORICAL"},
            ],
            "normalization": True,
        },
    }


@pytest.fixture
def people_config(people_config_data: dict[str, Any]) -> PlatformConfig:
    """Validated configuration for the churn dataset."""
    return build_config(people_config_data)


@pytest.fixture
def cluster_lines() -> list[str]:
    """Two well separated blobs plus a categorical colour column."""
    lines = ["x,y,colour"]
    for i in range(30):
        offset = (i % 5) * 0.1
        lines.append(f"{1.0 + offset},{1.0 - offset},red")
        lines.append(f"{10.0 + offset},{10.0 - offset},blue")
    return lines


@pytest.fixture
def anomaly_config() -> PlatformConfig:
    """K-means anomaly detection over the blob dataset."""
    return build_config(
        {
            "workflow": {
                "algorithm_name": "ANOMALY_DETECTION",
                "features": [
                    {"name": "x", "index": 0},
                    {"name": "y", "index": 1},
                    {"name": "colour", "index": 2, "type": "CATEGORICAL"},
                ],
                "hyperparameters": {"n_clusters": 2},
                "train_data_fraction": 1.0,
            },
        }
    )


@pytest.fixture
def churn_artifact(people_config: PlatformConfig, people_lines: list[str]):
    """Trained churn classifier."""
    return ModelBuilder(people_config).build(people_lines)


@pytest.fixture
def anomaly_artifact(anomaly_config: PlatformConfig, cluster_lines: list[str]):
    """Trained anomaly detector."""
    return ModelBuilder(anomaly_config).build(cluster_lines)


@pytest.fixture
def storage(tmp_path: Path) -> StorageResolver:
    """File and registry storage rooted in a temporary directory."""
    config = build_config(
        {"storage": {"root": str(tmp_path / "files"), "registry_root": str(tmp_path / "registry")}}
    )
    return StorageResolver.from_config(config.storage)


@pytest.fixture
def repository(storage: StorageResolver) -> ModelRepository:
    """Repository over the temporary storage."""
    return ModelRepository(storage)

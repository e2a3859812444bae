"""
Typed configuration models using Pydantic.

All configuration is defined here with explicit typing and validation.
Training and serving code receive these objects and never read raw YAML.
"""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modelhub.exceptions import ConfigurationError


class FeatureType(str, Enum):
    """Column type as declared in the dataset schema."""

    NUMERICAL = "NUMERICAL"
    CATEGORICAL = "CATEGORICAL"


class ImputeOption(str, Enum):
    """How missing values of a feature are handled at training time."""

    DISCARD = "DISCARD"  # drop the row
    REPLACE_WITH_MEAN = "REPLACE_WITH_MEAN"  # mean (numerical) or mode (categorical)


class AlgorithmClass(str, Enum):
    """Algorithm families supported by the trainers."""

    CLASSIFICATION = "Classification"
    NUMERICAL_PREDICTION = "Numerical_Prediction"
    CLUSTERING = "Clustering"
    ANOMALY_DETECTION = "Anomaly_Detection"
    DEEPLEARNING = "Deeplearning"
    RECOMMENDATION = "Recommendation"


class RowErrorPolicy(str, Enum):
    """What a batch prediction does when one row cannot be converted."""

    FAIL_BATCH = "fail_batch"
    FAIL_ROW = "fail_row"


def check_percentile(value: float) -> float:
    """
    Validate an anomaly percentile.

    Args:
        value: Percentile in (0, 100].

    Returns:
        The percentile as float.

    Raises:
        ConfigurationError: If the percentile is out of range.
    """
    percentile = float(value)
    if not 0.0 < percentile <= 100.0:
        msg = f"Percentile must be in (0, 100], got: {value!r}"
        raise ConfigurationError(msg)
    return percentile


class DatasetConfig(BaseModel):
    """Raw dataset layout."""

    model_config = ConfigDict(frozen=True)

    separator: str = Field(default=",", min_length=1, max_length=1)
    header: bool = Field(default=True, description="First line is a header row")
    missing_values: list[str] = Field(
        default_factory=lambda: ["", "NA", "N/A", "NaN", "?", "null"],
        description="Tokens treated as a missing value",
    )
    partition_size: int = Field(
        default=10_000, ge=1, description="Rows per partition for parallel transforms"
    )


class FeatureSpec(BaseModel):
    """One column of the dataset as declared by the user."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    index: int = Field(ge=0, description="Original column index in the dataset")
    type: FeatureType = FeatureType.NUMERICAL
    include: bool = True
    impute_option: ImputeOption = ImputeOption.DISCARD

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Reject blank feature names."""
        if not v.strip():
            msg = "Feature name must not be blank"
            raise ValueError(msg)
        return v.strip()


class WorkflowConfig(BaseModel):
    """Training workflow: algorithm, features and response variable."""

    model_config = ConfigDict(frozen=True)

    algorithm_name: str = Field(description="Registered algorithm name, e.g. K_MEANS")
    algorithm_class: AlgorithmClass | None = Field(
        default=None, description="Family; derived from the algorithm name if omitted"
    )
    response_variable: str | None = None
    features: list[FeatureSpec] = Field(min_length=1)
    hyperparameters: dict[str, Any] = Field(default_factory=dict)
    train_data_fraction: float = Field(default=0.7, gt=0.0, le=1.0)
    normalization: bool = False
    random_seed: int = 11
    dataset_version: str = "1"

    @model_validator(mode="after")
    def check_features(self) -> "WorkflowConfig":
        """Feature names and indices must be unique; response must be declared."""
        names = [f.name for f in self.features]
        duplicated_names = sorted({n for n in names if names.count(n) > 1})
        if duplicated_names:
            msg = f"Duplicate feature names: {duplicated_names}"
            raise ValueError(msg)

        indices = [f.index for f in self.features]
        duplicated_indices = sorted({i for i in indices if indices.count(i) > 1})
        if duplicated_indices:
            msg = f"Duplicate feature indices: {duplicated_indices}"
            raise ValueError(msg)

        if self.response_variable is not None and self.response_variable not in names:
            msg = f"Response variable {self.response_variable!r} is not a declared feature"
            raise ValueError(msg)
        return self

    @property
    def n_columns(self) -> int:
        """Width of a raw dataset row."""
        return max(f.index for f in self.features) + 1


class TrainingConfig(BaseModel):
    """Execution settings for the training job."""

    model_config = ConfigDict(frozen=True)

    n_jobs: int = Field(default=1, ge=1, description="Parallel workers for row transforms")
    summary_sample_size: int = Field(
        default=10_000, ge=1, description="Max training scores kept in the model summary"
    )


class StorageConfig(BaseModel):
    """Roots for the built-in storage adapters."""

    model_config = ConfigDict(frozen=True)

    root: Path | None = Field(
        default=None, description="Base directory for relative 'file:' locations"
    )
    registry_root: Path = Field(
        default=Path("./registry"), description="Directory backing 'registry:' locations"
    )


class BindingSpec(BaseModel):
    """A caller-declared feature binding: feature name plus value expression."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    expression: str = Field(min_length=1)


class ServingConfig(BaseModel):
    """Prediction endpoint definition."""

    model_config = ConfigDict(frozen=True)

    model_location: str = Field(min_length=1, description="Storage location key")
    features: list[BindingSpec] = Field(default_factory=list)
    percentile: float | None = Field(
        default=None, description="Anomaly percentile; enables anomaly decisions"
    )
    output_property: str = Field(default="prediction", min_length=1)
    row_error_policy: RowErrorPolicy = RowErrorPolicy.FAIL_BATCH
    check_versions: bool = Field(
        default=False, description="Reload when the stored object changes"
    )

    @field_validator("percentile")
    @classmethod
    def validate_percentile(cls, v: float | None) -> float | None:
        """Percentile must be in (0, 100]."""
        if v is None:
            return v
        return check_percentile(v)

    @field_validator("features")
    @classmethod
    def validate_bindings(cls, v: list[BindingSpec]) -> list[BindingSpec]:
        """Each feature may be bound once."""
        names = [b.name for b in v]
        duplicated = sorted({n for n in names if names.count(n) > 1})
        if duplicated:
            msg = f"Features bound more than once: {duplicated}"
            raise ValueError(msg)
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    json_output: bool = False


class PlatformConfig(BaseModel):
    """Complete configuration for training and serving."""

    model_config = ConfigDict(frozen=True)

    project: str = Field(default="modelhub", description="Project identifier")
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    workflow: WorkflowConfig | None = None
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    serving: ServingConfig | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def require_workflow(self) -> WorkflowConfig:
        """Return the workflow section or fail if training is not configured."""
        if self.workflow is None:
            msg = "Config must specify a 'workflow' section for training"
            raise ConfigurationError(msg)
        return self.workflow

    def require_serving(self) -> ServingConfig:
        """Return the serving section or fail if serving is not configured."""
        if self.serving is None:
            msg = "Config must specify a 'serving' section for prediction"
            raise ConfigurationError(msg)
        return self.serving

"""
Configuration management with typed Pydantic models.

Provides the dataset, workflow, storage and serving sections and
environment-aware YAML loading.
"""

from modelhub.config.loader import build_config, load_config
from modelhub.config.settings import (
    AlgorithmClass,
    BindingSpec,
    DatasetConfig,
    FeatureSpec,
    FeatureType,
    ImputeOption,
    LoggingConfig,
    PlatformConfig,
    RowErrorPolicy,
    ServingConfig,
    StorageConfig,
    TrainingConfig,
    WorkflowConfig,
)

__all__ = [
    "AlgorithmClass",
    "BindingSpec",
    "DatasetConfig",
    "FeatureSpec",
    "FeatureType",
    "ImputeOption",
    "LoggingConfig",
    "PlatformConfig",
    "RowErrorPolicy",
    "ServingConfig",
    "StorageConfig",
    "TrainingConfig",
    "WorkflowConfig",
    "build_config",
    "load_config",
]

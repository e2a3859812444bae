"""
Model artifact: the immutable bundle that travels from training to serving.

An artifact carries the trained estimator together with everything the
serving path needs to rebuild the model's input vector: the dataset schema,
the original-to-trained index mapping, the frozen categorical encodings and
the imputation values.

Persistence follows the calibrator pattern: a plain payload dictionary is
written with joblib. Unknown payload keys are ignored so that newer writers
can add fields without breaking older readers.
"""

import io
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from types import MappingProxyType
from typing import Any

import joblib

from modelhub.config.settings import (
    AlgorithmClass,
    FeatureSpec,
    FeatureType,
    ImputeOption,
)
from modelhub.exceptions import ConfigurationError, ModelLoadError
from modelhub.utils.hashing import hash_schema
from modelhub.utils.logging import get_logger

log = get_logger(__name__)

FORMAT_VERSION = 1

_REQUIRED_KEYS = (
    "format_version",
    "algorithm_name",
    "algorithm_class",
    "features",
    "response_variable",
    "response_index",
    "encodings",
    "new_to_old",
    "params",
    "normalization",
    "summary",
)


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy of a mapping."""
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class Feature:
    """
    One column of the dataset schema.

    Attributes:
        name: Column name.
        index: Original column index; unique and stable for a dataset version.
        type: Numerical or categorical.
        include: Whether the column is used for training.
        impute_option: Missing-value handling at training time.
    """

    name: str
    index: int
    type: FeatureType = FeatureType.NUMERICAL
    include: bool = True
    impute_option: ImputeOption = ImputeOption.DISCARD

    @property
    def is_categorical(self) -> bool:
        """Whether values are encoded to integer codes."""
        return self.type == FeatureType.CATEGORICAL

    @classmethod
    def from_spec(cls, spec: FeatureSpec) -> "Feature":
        """Build a feature from its configuration entry."""
        return cls(
            name=spec.name,
            index=spec.index,
            type=spec.type,
            include=spec.include,
            impute_option=spec.impute_option,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for persistence."""
        return {
            "name": self.name,
            "index": self.index,
            "type": self.type.value,
            "include": self.include,
            "impute_option": self.impute_option.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Feature":
        """Inverse of to_dict."""
        return cls(
            name=data["name"],
            index=int(data["index"]),
            type=FeatureType(data["type"]),
            include=bool(data["include"]),
            impute_option=ImputeOption(data["impute_option"]),
        )


@dataclass(frozen=True)
class ModelSummary:
    """
    Summary statistics computed at training time.

    Attributes:
        algorithm: Algorithm name.
        features: Trained feature names in input-slot order.
        dataset_version: Version of the dataset the model was trained on.
        n_train: Rows used for fitting.
        n_test: Rows held out for evaluation.
        metrics: Evaluation metrics on the held-out rows (or training rows).
        feature_means: Imputation value per numerical feature.
        feature_modes: Imputation label per categorical feature.
        anomaly_scores: Sorted sample of training anomaly scores; empty for
            models that do not produce anomaly scores.
    """

    algorithm: str
    features: tuple[str, ...] = ()
    dataset_version: str = "1"
    n_train: int = 0
    n_test: int = 0
    metrics: Mapping[str, float] = field(default_factory=dict)
    feature_means: Mapping[str, float] = field(default_factory=dict)
    feature_modes: Mapping[str, str] = field(default_factory=dict)
    anomaly_scores: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", tuple(self.features))
        object.__setattr__(self, "metrics", _freeze(self.metrics))
        object.__setattr__(self, "feature_means", _freeze(self.feature_means))
        object.__setattr__(self, "feature_modes", _freeze(self.feature_modes))
        object.__setattr__(self, "anomaly_scores", tuple(self.anomaly_scores))

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for persistence."""
        return {
            "algorithm": self.algorithm,
            "features": list(self.features),
            "dataset_version": self.dataset_version,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "metrics": dict(self.metrics),
            "feature_means": dict(self.feature_means),
            "feature_modes": dict(self.feature_modes),
            "anomaly_scores": list(self.anomaly_scores),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelSummary":
        """Inverse of to_dict; unknown keys are ignored."""
        return cls(
            algorithm=data["algorithm"],
            features=tuple(data.get("features", ())),
            dataset_version=str(data.get("dataset_version", "1")),
            n_train=int(data.get("n_train", 0)),
            n_test=int(data.get("n_test", 0)),
            metrics=data.get("metrics", {}),
            feature_means=data.get("feature_means", {}),
            feature_modes=data.get("feature_modes", {}),
            anomaly_scores=tuple(data.get("anomaly_scores", ())),
        )


def validate_index_map(new_to_old: Sequence[int], features: Sequence[Feature]) -> None:
    """
    Check the IndexMap invariants against a schema.

    Raises:
        ConfigurationError: If the map is empty, has duplicates, or points
            at an index that is not in the schema.
    """
    if not new_to_old:
        msg = "No features left for training: every column is excluded or the response"
        raise ConfigurationError(msg)

    duplicates = sorted({i for i in new_to_old if list(new_to_old).count(i) > 1})
    if duplicates:
        msg = f"Index map contains duplicate original indices: {duplicates}"
        raise ConfigurationError(msg)

    known = {f.index for f in features}
    unknown = [i for i in new_to_old if i not in known]
    if unknown:
        msg = f"Index map refers to unknown original indices: {unknown}"
        raise ConfigurationError(msg)


@dataclass(frozen=True)
class ModelArtifact:
    """
    Immutable, deployable model.

    ``params`` is the opaque trained estimator. It is excluded from equality
    so that two artifacts compare equal when all schema and encoding
    metadata match; estimator equivalence is checked through predictions.

    Attributes:
        algorithm_name: Registered algorithm name (e.g. ``K_MEANS``).
        algorithm_class: Algorithm family.
        features: Full dataset schema in original-index order.
        response_variable: Name of the response column, if supervised.
        response_index: Original index of the response column, -1 if none.
        encodings: Frozen label-to-code mappings per categorical feature.
        new_to_old: Original column index for each trained input slot.
        params: Trained estimator.
        normalization: Whether inputs are min-max normalized by the estimator.
        missing_values: Dataset tokens that were read as missing at training
            time; serving imputes them the same way.
        summary: Training-time summary statistics.
        created_at: ISO timestamp of creation.
    """

    algorithm_name: str
    algorithm_class: AlgorithmClass
    features: tuple[Feature, ...]
    response_variable: str | None
    response_index: int
    encodings: Mapping[str, Mapping[str, int]]
    new_to_old: tuple[int, ...]
    params: Any = field(compare=False, repr=False)
    normalization: bool = False
    missing_values: tuple[str, ...] = ()
    summary: ModelSummary = field(default_factory=lambda: ModelSummary(algorithm=""))
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self) -> None:
        features = tuple(sorted(self.features, key=lambda f: f.index))
        object.__setattr__(self, "features", features)
        object.__setattr__(self, "new_to_old", tuple(int(i) for i in self.new_to_old))
        object.__setattr__(self, "missing_values", tuple(str(v) for v in self.missing_values))
        object.__setattr__(
            self,
            "encodings",
            _freeze({name: _freeze(codes) for name, codes in self.encodings.items()}),
        )
        validate_index_map(self.new_to_old, features)

    @property
    def input_width(self) -> int:
        """Number of trained input slots."""
        return len(self.new_to_old)

    @cached_property
    def input_features(self) -> tuple[Feature, ...]:
        """Features in trained input-slot order."""
        by_index = {f.index: f for f in self.features}
        return tuple(by_index[i] for i in self.new_to_old)

    @cached_property
    def schema_digest(self) -> str:
        """Identifies the trained input space for skew detection."""
        return hash_schema(((f.name, f.index) for f in self.features), self.new_to_old)

    @property
    def is_supervised(self) -> bool:
        """Whether the model was trained against a response column."""
        return self.response_index >= 0

    @property
    def response_feature(self) -> Feature | None:
        """The response column, if any."""
        for feature in self.features:
            if feature.index == self.response_index:
                return feature
        return None

    def feature(self, name: str) -> Feature:
        """
        Look up a schema feature by name.

        Raises:
            KeyError: If the schema has no such feature.
        """
        for feature in self.features:
            if feature.name == name:
                return feature
        available = ", ".join(f.name for f in self.features)
        msg = f"Unknown feature '{name}'. Available: {available}"
        raise KeyError(msg)


def serialize(artifact: ModelArtifact) -> bytes:
    """
    Serialize an artifact to a versioned binary blob.

    Args:
        artifact: Artifact to serialize.

    Returns:
        Bytes suitable for any storage adapter.
    """
    payload: dict[str, Any] = {
        "format_version": FORMAT_VERSION,
        "algorithm_name": artifact.algorithm_name,
        "algorithm_class": artifact.algorithm_class.value,
        "features": [f.to_dict() for f in artifact.features],
        "response_variable": artifact.response_variable,
        "response_index": artifact.response_index,
        "encodings": {name: dict(codes) for name, codes in artifact.encodings.items()},
        "new_to_old": list(artifact.new_to_old),
        "params": artifact.params,
        "normalization": artifact.normalization,
        "missing_values": list(artifact.missing_values),
        "summary": artifact.summary.to_dict(),
        "created_at": artifact.created_at,
    }
    buffer = io.BytesIO()
    joblib.dump(payload, buffer)
    return buffer.getvalue()


def deserialize(data: bytes, location_key: str = "<memory>") -> ModelArtifact:
    """
    Rebuild an artifact from bytes produced by serialize().

    Args:
        data: Serialized artifact.
        location_key: Where the bytes came from, for error messages.

    Returns:
        The artifact.

    Raises:
        ModelLoadError: If the bytes are corrupt or the payload does not
            describe a valid artifact.
    """
    try:
        payload = joblib.load(io.BytesIO(data))
    except Exception as e:
        raise ModelLoadError(location_key, f"corrupt artifact bytes ({e})") from e

    if not isinstance(payload, dict):
        raise ModelLoadError(location_key, f"unexpected payload type {type(payload).__name__}")

    missing = [key for key in _REQUIRED_KEYS if key not in payload]
    if missing:
        raise ModelLoadError(location_key, f"artifact is missing fields {missing}")

    version = payload["format_version"]
    if not isinstance(version, int):
        raise ModelLoadError(location_key, f"invalid format version {version!r}")
    if version > FORMAT_VERSION:
        log.warning(
            "Artifact written by a newer format, reading known fields only",
            format_version=version,
            supported=FORMAT_VERSION,
        )

    try:
        return ModelArtifact(
            algorithm_name=payload["algorithm_name"],
            algorithm_class=AlgorithmClass(payload["algorithm_class"]),
            features=tuple(Feature.from_dict(f) for f in payload["features"]),
            response_variable=payload["response_variable"],
            response_index=int(payload["response_index"]),
            encodings=payload["encodings"],
            new_to_old=tuple(payload["new_to_old"]),
            params=payload["params"],
            normalization=bool(payload["normalization"]),
            missing_values=tuple(payload.get("missing_values", ())),
            summary=ModelSummary.from_dict(payload["summary"]),
            created_at=payload.get("created_at", ""),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ModelLoadError(location_key, f"schema mismatch ({e})") from e

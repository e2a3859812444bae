"""
Prediction and anomaly scoring on aligned vectors.

The predictor works purely in the model's trained slot space: it encodes
each aligned vector with the artifact's frozen encodings, imputes missing
slots with the training-time means and modes, and applies the trained
estimator. Anomaly models additionally threshold their scores against a
percentile of the training score distribution.
"""

import math
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from modelhub.config.settings import RowErrorPolicy, check_percentile
from modelhub.exceptions import (
    ConfigurationError,
    MalformedValueError,
    RowError,
    SchemaSkewError,
    UnseenCategoryError,
)
from modelhub.modeling.artifact import ModelArtifact
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class AnomalyDecision:
    """
    Thresholded anomaly score.

    Attributes:
        is_anomaly: Whether the score exceeds the threshold.
        score: Raw anomaly score.
        threshold: Score at the requested percentile of training scores.
        percentile: The requested percentile.
    """

    is_anomaly: bool
    score: float
    threshold: float
    percentile: float

    @property
    def label(self) -> str:
        return "anomaly" if self.is_anomaly else "normal"


@dataclass(frozen=True)
class Prediction:
    """
    Result for one input row.

    Attributes:
        row: Position of the row in the request.
        value: Predicted value (decoded label, number or cluster id), None
            if the row failed.
        error: Row error when the FAIL_ROW policy kept the batch going.
        decision: Anomaly decision when a percentile was requested.
    """

    row: int
    value: Any = None
    error: RowError | None = None
    decision: AnomalyDecision | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_missing(token: Any, missing_values: Collection[str] = ()) -> bool:
    if token is None:
        return True
    if isinstance(token, str):
        stripped = token.strip()
        return not stripped or stripped in missing_values
    return isinstance(token, float) and math.isnan(token)


def _to_python(value: Any) -> Any:
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


class Predictor:
    """
    Applies artifacts to aligned vectors.

    Args:
        row_error_policy: FAIL_BATCH re-raises the first row error;
            FAIL_ROW reports it on the affected prediction and continues.
    """

    def __init__(self, row_error_policy: RowErrorPolicy = RowErrorPolicy.FAIL_BATCH) -> None:
        self.row_error_policy = RowErrorPolicy(row_error_policy)

    def encode_row(self, artifact: ModelArtifact, vector: Sequence[Any], row: int = 0) -> np.ndarray:
        """
        Convert one aligned vector to the model's numeric space.

        Missing tokens (None, blanks, NaN and the dataset's missing-value
        markers recorded on the artifact) are imputed with the training
        mean or mode.

        Raises:
            UnseenCategoryError: If a categorical value has no frozen code.
            MalformedValueError: If a numerical value is not a finite number.
        """
        summary = artifact.summary
        missing_values = frozenset(artifact.missing_values)
        values = np.empty(artifact.input_width, dtype=np.float64)

        for slot, (feature, token) in enumerate(zip(artifact.input_features, vector)):
            if feature.is_categorical:
                codes = artifact.encodings.get(feature.name, {})
                if _is_missing(token, missing_values):
                    label = summary.feature_modes.get(feature.name)
                    values[slot] = codes.get(label, 0) if label is not None else 0
                    continue
                label = str(token).strip()
                if label not in codes:
                    raise UnseenCategoryError(row, feature.name, label, len(codes))
                values[slot] = codes[label]
                continue

            if _is_missing(token, missing_values):
                values[slot] = summary.feature_means.get(feature.name, 0.0)
                continue
            try:
                number = float(token)
            except (TypeError, ValueError) as e:
                raise MalformedValueError(row, feature.name, str(token)) from e
            if math.isnan(number):
                number = summary.feature_means.get(feature.name, 0.0)
            elif math.isinf(number):
                raise MalformedValueError(row, feature.name, str(token))
            values[slot] = number

        return values

    def _decode(self, artifact: ModelArtifact, value: Any) -> Any:
        """Map a predicted response code back to its label."""
        value = _to_python(value)
        response = artifact.response_feature
        if value is None or not artifact.is_supervised or response is None:
            return value
        if not response.is_categorical:
            return value
        labels = {code: label for label, code in artifact.encodings.get(response.name, {}).items()}
        return labels.get(int(round(float(value))), value)

    def classify(self, artifact: ModelArtifact, score: float, percentile: float) -> AnomalyDecision:
        """
        Threshold an anomaly score.

        Args:
            artifact: Anomaly model whose summary holds training scores.
            score: Raw score from predict().
            percentile: Cutoff percentile in (0, 100].

        Raises:
            ConfigurationError: If the percentile is out of range or the
                model has no training score distribution.
        """
        percentile = check_percentile(percentile)
        scores = artifact.summary.anomaly_scores
        if not scores:
            msg = f"Model '{artifact.algorithm_name}' has no anomaly score distribution"
            raise ConfigurationError(msg)
        threshold = float(np.percentile(np.asarray(scores), percentile))
        score = float(score)
        return AnomalyDecision(
            is_anomaly=score > threshold,
            score=score,
            threshold=threshold,
            percentile=percentile,
        )

    def predict(
        self,
        artifact: ModelArtifact,
        vectors: Iterable[Sequence[Any]],
        percentile: float | None = None,
    ) -> list[Prediction]:
        """
        Predict for a batch of aligned vectors.

        Args:
            artifact: Loaded model.
            vectors: Aligned vectors in trained slot order.
            percentile: If given, attach an anomaly decision to each result.

        Returns:
            One Prediction per vector, in input order.

        Raises:
            ConfigurationError: On an invalid percentile, before any scoring.
            SchemaSkewError: If a vector's width differs from the model's.
            RowError: Under FAIL_BATCH, the first row that cannot be encoded.
        """
        if percentile is not None:
            percentile = check_percentile(percentile)
            if not artifact.summary.anomaly_scores:
                msg = f"Model '{artifact.algorithm_name}' does not support anomaly decisions"
                raise ConfigurationError(msg)

        vectors = list(vectors)
        for vector in vectors:
            if len(vector) != artifact.input_width:
                raise SchemaSkewError(artifact.input_width, len(vector))

        encoded: list[np.ndarray] = []
        positions: list[int] = []
        errors: dict[int, RowError] = {}
        for row, vector in enumerate(vectors):
            try:
                encoded.append(self.encode_row(artifact, vector, row))
                positions.append(row)
            except RowError as e:
                if self.row_error_policy == RowErrorPolicy.FAIL_BATCH:
                    raise
                log.warning("Row skipped", row=row, feature=e.feature, error=str(e))
                errors[row] = e

        raw: dict[int, Any] = {}
        if encoded:
            outputs = artifact.params.predict(np.vstack(encoded))
            raw = dict(zip(positions, outputs))

        results = []
        for row in range(len(vectors)):
            if row in errors:
                results.append(Prediction(row=row, error=errors[row]))
                continue
            decision = None
            if percentile is not None:
                decision = self.classify(artifact, raw[row], percentile)
            results.append(
                Prediction(row=row, value=self._decode(artifact, raw[row]), decision=decision)
            )
        return results


def predict(
    artifact: ModelArtifact,
    vectors: Iterable[Sequence[Any]],
    percentile: float | None = None,
) -> list[Prediction]:
    """Predict with the default FAIL_BATCH policy."""
    return Predictor().predict(artifact, vectors, percentile)


def classify(artifact: ModelArtifact, score: float, percentile: float) -> AnomalyDecision:
    """Threshold one anomaly score."""
    return Predictor().classify(artifact, score, percentile)

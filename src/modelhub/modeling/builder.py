"""
Model building: preprocessing, training and artifact assembly.

The builder validates the workflow before touching any data, runs the
preprocessing pipeline, splits the rows, trains with the family trainer and
packages the result as an immutable ModelArtifact.
"""

import math
import time
from collections.abc import Iterable

import numpy as np
from sklearn.model_selection import train_test_split

from modelhub.config.settings import PlatformConfig
from modelhub.exceptions import ConfigurationError
from modelhub.modeling.algorithms import resolve_algorithm_class
from modelhub.modeling.artifact import ModelArtifact, ModelSummary
from modelhub.modeling.trainers import create_trainer
from modelhub.preprocessing.pipeline import PreprocessedData, PreprocessingPipeline
from modelhub.utils.logging import get_logger, log_context

log = get_logger(__name__)


class ModelBuilder:
    """
    Builds a ModelArtifact from a dataset and a workflow.

    Args:
        config: Platform configuration with a ``workflow`` section.

    Raises:
        ConfigurationError: If the workflow is missing or inconsistent
            (unknown algorithm, supervised algorithm without response, no
            trainable feature).
    """

    def __init__(self, config: PlatformConfig) -> None:
        self.config = config
        self.workflow = config.require_workflow()
        self.algorithm_class = resolve_algorithm_class(
            self.workflow.algorithm_name, self.workflow.algorithm_class
        )
        self.trainer = create_trainer(self.workflow)

        if self.trainer.requires_response and self.workflow.response_variable is None:
            msg = (
                f"Algorithm '{self.workflow.algorithm_name}' "
                f"({self.algorithm_class.value}) requires a response variable"
            )
            raise ConfigurationError(msg)

        self.pipeline = PreprocessingPipeline(
            config.dataset,
            self.workflow,
            config.training,
            use_response=self.trainer.requires_response,
        )

    def _split(
        self, data: PreprocessedData
    ) -> tuple[np.ndarray, np.ndarray | None, np.ndarray, np.ndarray | None]:
        """Split into train and test rows by the configured fraction."""
        n_rows = len(data.X)
        n_train = math.floor(self.workflow.train_data_fraction * n_rows)
        empty = data.X[:0]

        if n_train < 1 or n_train >= n_rows:
            y_empty = None if data.y is None else data.y[:0]
            return data.X, data.y, empty, y_empty

        if data.y is None:
            X_train, X_test = train_test_split(
                data.X, train_size=n_train, random_state=self.workflow.random_seed
            )
            return X_train, None, X_test, None

        X_train, X_test, y_train, y_test = train_test_split(
            data.X, data.y, train_size=n_train, random_state=self.workflow.random_seed
        )
        return X_train, y_train, X_test, y_test

    def _sample_scores(self, scores: np.ndarray | None) -> tuple[float, ...]:
        """Sorted, bounded sample of training anomaly scores."""
        if scores is None:
            return ()
        limit = self.config.training.summary_sample_size
        if len(scores) > limit:
            rng = np.random.default_rng(self.workflow.random_seed)
            scores = rng.choice(scores, size=limit, replace=False)
        return tuple(float(s) for s in np.sort(scores))

    def build(self, lines: Iterable[str]) -> ModelArtifact:
        """
        Train a model on raw dataset lines.

        Args:
            lines: Dataset lines, e.g. a FileLines view of a CSV file.

        Returns:
            The trained, immutable artifact.

        Raises:
            ConfigurationError: If no usable row remains after filtering.
        """
        start_time = time.perf_counter()
        workflow = self.workflow

        with log_context(algorithm=workflow.algorithm_name):
            data = self.pipeline.run(lines)
            if len(data.X) == 0:
                msg = f"No usable rows after filtering: {data.row_counts}"
                raise ConfigurationError(msg)

            X_train, y_train, X_test, y_test = self._split(data)
            outcome = self.trainer.train(X_train, y_train, X_test, y_test)

            supervised = self.pipeline.use_response
            summary = ModelSummary(
                algorithm=workflow.algorithm_name,
                features=tuple(data.feature_names),
                dataset_version=workflow.dataset_version,
                n_train=len(X_train),
                n_test=len(X_test),
                metrics=outcome.metrics,
                feature_means=data.fitted.means,
                feature_modes=data.fitted.modes,
                anomaly_scores=self._sample_scores(outcome.anomaly_scores),
            )

            artifact = ModelArtifact(
                algorithm_name=workflow.algorithm_name,
                algorithm_class=self.algorithm_class,
                features=self.pipeline.features,
                response_variable=workflow.response_variable if supervised else None,
                response_index=data.response_index if supervised else -1,
                encodings=data.fitted.encodings,
                new_to_old=data.new_to_old,
                params=outcome.model,
                normalization=workflow.normalization,
                missing_values=tuple(self.config.dataset.missing_values),
                summary=summary,
            )

            log.info(
                "Built model",
                algorithm_class=self.algorithm_class.value,
                new_to_old=list(artifact.new_to_old),
                n_train=summary.n_train,
                n_test=summary.n_test,
                elapsed_s=round(time.perf_counter() - start_time, 3),
            )
        return artifact


def train_model(config: PlatformConfig, lines: Iterable[str]) -> ModelArtifact:
    """Convenience wrapper around ModelBuilder."""
    return ModelBuilder(config).build(lines)

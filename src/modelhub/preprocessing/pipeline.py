"""
Training-time preprocessing pipeline.

Runs tokenizer -> row filter -> feature selection/encoding -> vectorizer
over a lazily read dataset. The encodings and imputation values come from a
single coordinated fit pass; the transform pass is a pure map over
partitions and runs in parallel.
"""

from collections import Counter
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import partial
from itertools import islice

import numpy as np

from modelhub.config.settings import DatasetConfig, TrainingConfig, WorkflowConfig
from modelhub.modeling.artifact import Feature
from modelhub.preprocessing.selection import FeatureEncoder, FeatureSelector, FittedEncoding
from modelhub.preprocessing.tokenizer import LineTokenizer, RowFilter
from modelhub.preprocessing.vectorizer import Vectorizer
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class PreprocessedData:
    """
    Container for the vectorized dataset and its side artifacts.

    Attributes:
        X: Feature matrix in trained slot order.
        y: Response values, or None for unsupervised workflows.
        feature_names: Names of the trained slots.
        new_to_old: Index map for the trained input space.
        response_index: Original index of the response column, -1 if none.
        fitted: Frozen encodings and imputation values.
        row_counts: Accepted/malformed/discarded row counts.
    """

    X: np.ndarray
    y: np.ndarray | None
    feature_names: list[str]
    new_to_old: tuple[int, ...]
    response_index: int
    fitted: FittedEncoding
    row_counts: dict[str, int] = field(default_factory=dict)


def _partitions(rows: Iterable[Sequence[str]], size: int) -> Iterator[list[Sequence[str]]]:
    """Chunk an iterable into lists of at most ``size`` rows."""
    iterator = iter(rows)
    while chunk := list(islice(iterator, size)):
        yield chunk


class PreprocessingPipeline:
    """
    Pipeline from raw lines to a numeric training matrix.

    Args:
        dataset: Dataset layout.
        workflow: Workflow with the feature schema and response variable.
        training: Execution settings (parallelism).
        use_response: Whether the response column is part of the output.
            Unsupervised algorithms keep it out of the inputs but ignore
            its values.
    """

    def __init__(
        self,
        dataset: DatasetConfig,
        workflow: WorkflowConfig,
        training: TrainingConfig | None = None,
        *,
        use_response: bool = True,
    ) -> None:
        self.dataset = dataset
        self.training = training or TrainingConfig()
        self.features = tuple(Feature.from_spec(spec) for spec in workflow.features)

        self.selector = FeatureSelector(self.features, workflow.response_variable)
        self.use_response = use_response and self.selector.response_index >= 0
        checked = self.features
        if not self.use_response and self.selector.response_feature is not None:
            # response stays out of the inputs and its values are never read
            response = self.selector.response_feature
            self.selector.response_feature = None
            checked = tuple(
                replace(f, include=False) if f.index == response.index else f
                for f in self.features
            )

        self.tokenizer = LineTokenizer(dataset)
        self.row_filter = RowFilter(
            checked,
            dataset,
            response_index=self.selector.response_index if self.use_response else -1,
        )
        self.encoder = FeatureEncoder(self.selector, dataset.missing_values)
        self.vectorizer = Vectorizer([f.name for f in self.selector.selected_features])

    @property
    def new_to_old(self) -> tuple[int, ...]:
        """Index map of the trained input space."""
        return self.selector.new_to_old

    def clean_rows(
        self,
        lines: Iterable[str],
        stats: Counter[str] | None = None,
    ) -> Iterator[Sequence[str]]:
        """Tokenize and filter lines lazily."""
        return self.row_filter.filter(self.tokenizer.rows(lines), stats)

    def _transform_partition(
        self,
        partition: list[Sequence[str]],
        fitted: FittedEncoding,
    ) -> np.ndarray:
        encoded = [self.encoder.transform(row, fitted) for row in partition]
        return self.vectorizer.to_matrix(encoded)

    def run(self, lines: Iterable[str]) -> PreprocessedData:
        """
        Preprocess a dataset.

        Args:
            lines: Raw lines. Re-iterable sources (lists, FileLines) are read
                twice; one-shot iterators are materialized first.

        Returns:
            PreprocessedData with the matrix and side artifacts.
        """
        if iter(lines) is lines:
            log.debug("Materializing one-shot line iterator")
            lines = list(lines)

        stats: Counter[str] = Counter()
        fitted = self.encoder.fit(self.clean_rows(lines, stats))

        partitions = _partitions(self.clean_rows(lines), self.dataset.partition_size)
        transform = partial(self._transform_partition, fitted=fitted)
        if self.training.n_jobs > 1:
            with ThreadPoolExecutor(max_workers=self.training.n_jobs) as executor:
                blocks = list(executor.map(transform, partitions))
        else:
            blocks = [transform(partition) for partition in partitions]
        width = self.vectorizer.width
        matrix = np.vstack(blocks) if blocks else np.empty((0, width), dtype=np.float64)
        self.vectorizer.to_frame(matrix)

        n_inputs = len(self.new_to_old)
        X = matrix[:, :n_inputs]
        y = matrix[:, n_inputs] if self.use_response else None

        row_counts = {key: int(stats.get(key, 0)) for key in ("accepted", "malformed", "discarded")}
        log.info(
            "Preprocessing complete",
            n_rows=len(X),
            n_features=n_inputs,
            **row_counts,
        )

        return PreprocessedData(
            X=X,
            y=y,
            feature_names=[f.name for f in self.selector.input_features],
            new_to_old=self.new_to_old,
            response_index=self.selector.response_index,
            fitted=fitted,
            row_counts=row_counts,
        )

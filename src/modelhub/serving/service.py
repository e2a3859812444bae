"""
Prediction service for one serving configuration.

Ties the repository, the binding set and the predictor together. The
binding set is compiled once at construction; the alignment table is bound
once per loaded artifact and replaced, together with the artifact, when the
repository returns a different one.
"""

import threading
from collections.abc import Callable, Iterable, MutableMapping
from dataclasses import dataclass
from typing import Any

from modelhub.config.settings import ServingConfig, check_percentile
from modelhub.modeling.artifact import ModelArtifact
from modelhub.serving.alignment import AlignmentTable, bind
from modelhub.serving.bindings import BindingSet, ValueExtractor, compile_extractor
from modelhub.serving.predictor import Prediction, Predictor
from modelhub.serving.repository import ModelRepository
from modelhub.storage.adapters import StorageResolver
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class BoundModel:
    """An artifact with the alignment table bound to it."""

    artifact: ModelArtifact
    table: AlignmentTable


class PredictionService:
    """
    Serves predictions for request contexts.

    Args:
        config: Serving section of the platform configuration.
        repository: Model repository to load the artifact from.
        compiler: Turns binding expressions into extractors.
        predictor: Predictor to apply; defaults to one with the configured
            row error policy.

    Raises:
        ConfigurationError: If a binding expression is invalid.
    """

    def __init__(
        self,
        config: ServingConfig,
        repository: ModelRepository,
        compiler: Callable[[str], ValueExtractor] = compile_extractor,
        predictor: Predictor | None = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.bindings = BindingSet.from_specs(config.features, compiler)
        self.predictor = predictor or Predictor(config.row_error_policy)
        self._bound: BoundModel | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_storage(
        cls,
        config: ServingConfig,
        storage: StorageResolver,
        predictor: Predictor | None = None,
    ) -> "PredictionService":
        """
        Build a service with its own repository over ``storage``.

        The repository checks storage versions on every load when the
        serving config sets ``check_versions``, so updated models are
        picked up without an explicit refresh.
        """
        repository = ModelRepository(storage, check_versions=config.check_versions)
        return cls(config, repository, predictor=predictor)

    def _current(self, force_refresh: bool = False) -> BoundModel:
        artifact = self.repository.load(self.config.model_location, force_refresh=force_refresh)
        bound = self._bound
        if bound is not None and bound.artifact is artifact:
            return bound

        with self._lock:
            bound = self._bound
            if bound is None or bound.artifact is not artifact:
                bound = BoundModel(artifact=artifact, table=bind(artifact, self.bindings))
                self._bound = bound
                log.info(
                    "Bound features",
                    location=self.config.model_location,
                    width=bound.table.width,
                    unbound=list(bound.table.unbound_names),
                )
        return bound

    def refresh(self) -> ModelArtifact:
        """Reload the model from storage and rebind."""
        return self._current(force_refresh=True).artifact

    def predict_many(
        self,
        contexts: Iterable[Any],
        percentile: float | None = None,
    ) -> list[Prediction]:
        """
        Predict for a batch of request contexts.

        Args:
            contexts: Request contexts the extractors read from.
            percentile: Overrides the configured percentile.
        """
        if percentile is None:
            percentile = self.config.percentile
        else:
            percentile = check_percentile(percentile)

        bound = self._current()
        bound.table.check(bound.artifact)
        vectors = [bound.table.assemble(context) for context in contexts]
        return self.predictor.predict(bound.artifact, vectors, percentile)

    def predict(self, context: Any, percentile: float | None = None) -> Prediction:
        """Predict for a single request context."""
        return self.predict_many([context], percentile)[0]

    def apply(self, context: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        """
        Predict and write the result into the context.

        The value goes to the configured output property. With a percentile,
        the property holds the anomaly label instead.
        """
        prediction = self.predict(context)
        if prediction.decision is not None:
            context[self.config.output_property] = prediction.decision.label
        else:
            context[self.config.output_property] = prediction.value
        return context

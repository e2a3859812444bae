"""Tests for PredictionService."""

import pytest

from modelhub.config.settings import BindingSpec, RowErrorPolicy, ServingConfig
from modelhub.exceptions import ConfigurationError, ModelLoadError, UnseenCategoryError
from modelhub.modeling.artifact import ModelArtifact, serialize
from modelhub.serving.repository import ModelRepository
from modelhub.serving.service import PredictionService
from modelhub.storage.adapters import StorageResolver

LOCATION = "registry:models/churn"


def churn_serving(**overrides) -> ServingConfig:
    values = {
        "model_location": LOCATION,
        "features": [
            BindingSpec(name="age", expression="$.customer.age"),
            BindingSpec(name="income", expression="income"),
            BindingSpec(name="zipcode", expression="$.customer.zip"),
        ],
    }
    return ServingConfig(**{**values, **overrides})


class TestPredictionService:
    """Tests for serving churn predictions from request contexts."""

    def test_predict(self, repository: ModelRepository, churn_artifact: ModelArtifact) -> None:
        """Test a prediction from a nested request."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(churn_serving(), repository)

        result = service.predict({"customer": {"age": 58, "zip": "24103"}, "income": "77000"})
        assert result.value == "yes"

    def test_predict_many_keeps_order(
        self, repository: ModelRepository, churn_artifact: ModelArtifact
    ) -> None:
        """Test that batch results follow the request order."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(churn_serving(), repository)

        results = service.predict_many(
            [
                {"customer": {"age": 21}, "income": "21000"},
                {"customer": {"age": 58}, "income": "77000"},
            ]
        )
        assert [(r.row, r.value) for r in results] == [(0, "no"), (1, "yes")]

    def test_apply_writes_output_property(
        self, repository: ModelRepository, churn_artifact: ModelArtifact
    ) -> None:
        """Test that apply stores the prediction on the context."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(churn_serving(output_property="will_churn"), repository)

        context = {"customer": {"age": 21}, "income": "21000"}
        assert service.apply(context)["will_churn"] == "no"

    def test_fail_row_policy_from_config(
        self, repository: ModelRepository, churn_artifact: ModelArtifact
    ) -> None:
        """Test that the configured row policy reaches the predictor."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(
            churn_serving(row_error_policy=RowErrorPolicy.FAIL_ROW), repository
        )

        results = service.predict_many([{"customer": {"age": "old"}}, {"income": "77000"}])
        assert results[0].error is not None
        assert results[1].ok

    def test_invalid_binding(self, repository: ModelRepository) -> None:
        """Test that malformed expressions fail at construction."""
        config = ServingConfig(
            model_location=LOCATION,
            features=[BindingSpec(name="age", expression="$.customer..age")],
        )
        with pytest.raises(ConfigurationError):
            PredictionService(config, repository)

    def test_missing_model(self, repository: ModelRepository) -> None:
        """Test that a missing artifact surfaces as ModelLoadError."""
        service = PredictionService(churn_serving(), repository)
        with pytest.raises(ModelLoadError):
            service.predict({"income": "1"})

    def test_invalid_percentile_override(
        self, repository: ModelRepository, churn_artifact: ModelArtifact
    ) -> None:
        """Test that a per-call percentile is validated."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(churn_serving(), repository)
        with pytest.raises(ConfigurationError, match="Percentile"):
            service.predict({"income": "1"}, percentile=0)

    def test_rebinds_after_refresh(
        self,
        repository: ModelRepository,
        churn_artifact: ModelArtifact,
        anomaly_artifact: ModelArtifact,
    ) -> None:
        """Test that a refreshed model gets a fresh alignment table."""
        repository.save(churn_artifact, LOCATION)
        service = PredictionService(churn_serving(), repository)
        assert service.predict({"income": "77000"}).value in {"yes", "no"}

        repository.save(anomaly_artifact, LOCATION)
        assert service.refresh().algorithm_name == "ANOMALY_DETECTION"

        # every anomaly feature is unbound here, so all slots are imputed
        result = service.predict({"income": "77000"})
        assert isinstance(result.value, float)


class TestVersionChecks:
    """Tests for picking up models replaced in storage."""

    def test_replaced_model_served(
        self,
        storage: StorageResolver,
        churn_artifact: ModelArtifact,
        anomaly_artifact: ModelArtifact,
    ) -> None:
        """Test that check_versions reloads a model overwritten in storage."""
        storage.write("file:m.bin", serialize(churn_artifact))
        service = PredictionService.from_storage(
            churn_serving(model_location="file:m.bin", check_versions=True), storage
        )
        assert service.predict({"income": "77000"}).value in {"yes", "no"}

        storage.write("file:m.bin", serialize(anomaly_artifact))

        assert isinstance(service.predict({"income": "77000"}).value, float)
        assert service.refresh().algorithm_name == "ANOMALY_DETECTION"

    def test_cached_model_without_checks(
        self,
        storage: StorageResolver,
        churn_artifact: ModelArtifact,
        anomaly_artifact: ModelArtifact,
    ) -> None:
        """Test that without check_versions the cached model keeps serving."""
        storage.write("file:m.bin", serialize(churn_artifact))
        service = PredictionService.from_storage(
            churn_serving(model_location="file:m.bin"), storage
        )
        service.predict({"income": "77000"})

        storage.write("file:m.bin", serialize(anomaly_artifact))

        assert service.predict({"income": "77000"}).value in {"yes", "no"}
        assert not service.repository.check_versions

class TestAnomalyService:
    """Tests for percentile decisions through the service."""

    @pytest.fixture
    def service(
        self, repository: ModelRepository, anomaly_artifact: ModelArtifact
    ) -> PredictionService:
        repository.save(anomaly_artifact, "file:anomaly.bin")
        config = ServingConfig(
            model_location="file:anomaly.bin",
            features=[
                BindingSpec(name="x", expression="$.point[0]"),
                BindingSpec(name="y", expression="$.point[1]"),
                BindingSpec(name="colour", expression="colour"),
            ],
            percentile=99,
            output_property="status",
        )
        return PredictionService(config, repository)

    def test_apply_labels(self, service: PredictionService) -> None:
        """Test that apply writes the anomaly label."""
        assert service.apply({"point": [1.2, 0.8], "colour": "red"})["status"] == "normal"
        assert service.apply({"point": [90.0, -40.0], "colour": "red"})["status"] == "anomaly"

    def test_unseen_category(self, service: PredictionService) -> None:
        """Test that an unseen colour fails the request."""
        with pytest.raises(UnseenCategoryError) as exc_info:
            service.predict({"point": [1.0, 1.0], "colour": "green"})
        assert exc_info.value.n_known == 2

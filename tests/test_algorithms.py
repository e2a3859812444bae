"""Tests for the algorithm registry and trainers."""

import numpy as np
import pytest
from sklearn.cluster import KMeans
from sklearn.pipeline import Pipeline

from modelhub.config.settings import AlgorithmClass, WorkflowConfig
from modelhub.exceptions import AlgorithmNameError, ConfigurationError
from modelhub.modeling.algorithms import (
    ALGORITHM_REGISTRY,
    create_estimator,
    get_algorithm,
    list_algorithms,
    resolve_algorithm_class,
)
from modelhub.modeling.trainers import (
    AnomalyDetectionTrainer,
    ClassificationTrainer,
    ClusteringTrainer,
    MatrixFactorizationModel,
    RecommendationTrainer,
    RegressionTrainer,
    create_trainer,
)


class TestRegistry:
    """Tests for the algorithm registry."""

    def test_every_family_has_an_algorithm(self) -> None:
        """Test that each algorithm class is backed by the registry."""
        for algorithm_class in AlgorithmClass:
            assert list_algorithms(algorithm_class)

    def test_unknown_algorithm(self) -> None:
        """Test that unknown names raise AlgorithmNameError."""
        with pytest.raises(AlgorithmNameError, match="Unknown algorithm 'GRADIENT_MAGIC'"):
            get_algorithm("GRADIENT_MAGIC")

    def test_class_mismatch(self) -> None:
        """Test that an algorithm must fit its declared family."""
        with pytest.raises(AlgorithmNameError, match="belongs to Clustering"):
            resolve_algorithm_class("K_MEANS", AlgorithmClass.CLASSIFICATION)

    def test_class_derived(self) -> None:
        """Test that the family is derived from the name."""
        assert resolve_algorithm_class("LINEAR_REGRESSION") == AlgorithmClass.NUMERICAL_PREDICTION

    def test_defaults_and_overrides(self) -> None:
        """Test that defaults apply and hyperparameters override them."""
        estimator = create_estimator("K_MEANS", random_state=3, n_clusters=5)
        assert isinstance(estimator, KMeans)
        assert estimator.n_clusters == 5
        assert estimator.n_init == ALGORITHM_REGISTRY["K_MEANS"].defaults["n_init"]
        assert estimator.random_state == 3

    def test_random_state_skipped_when_unsupported(self) -> None:
        """Test that estimators without a seed parameter still build."""
        estimator = create_estimator("NAIVE_BAYES", random_state=3)
        assert "random_state" not in estimator.get_params()

    def test_invalid_hyperparameter(self) -> None:
        """Test that an unknown hyperparameter raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid hyperparameters"):
            create_estimator("K_MEANS", clusters=4)


class TestTrainers:
    """Tests for the family trainers."""

    @pytest.fixture
    def blobs(self) -> np.ndarray:
        rng = np.random.default_rng(0)
        return np.vstack([rng.normal(0, 0.1, (20, 2)), rng.normal(5, 0.1, (20, 2))])

    def test_create_trainer_dispatch(self) -> None:
        """Test that the family decides the trainer type."""
        workflow = WorkflowConfig(
            algorithm_name="STACKED_AUTOENCODERS",
            response_variable="y",
            features=[{"name": "x", "index": 0}, {"name": "y", "index": 1}],
        )
        assert isinstance(create_trainer(workflow), ClassificationTrainer)

    def test_classification(self, blobs: np.ndarray) -> None:
        """Test classifier metrics on separable data."""
        y = np.repeat([0.0, 1.0], 20)
        outcome = ClassificationTrainer("DECISION_TREE", random_state=1).train(blobs, y)
        assert outcome.metrics["accuracy"] == 1.0

    def test_classification_needs_two_classes(self, blobs: np.ndarray) -> None:
        """Test that a single response class is rejected."""
        with pytest.raises(ConfigurationError, match="two response classes"):
            ClassificationTrainer("NAIVE_BAYES").train(blobs, np.zeros(40))

    def test_supervised_without_response(self, blobs: np.ndarray) -> None:
        """Test that supervised trainers need a response."""
        with pytest.raises(ConfigurationError, match="requires a response variable"):
            RegressionTrainer("LINEAR_REGRESSION").train(blobs, None)

    def test_regression_metrics(self, blobs: np.ndarray) -> None:
        """Test regression metrics on an exact linear target."""
        y = 2 * blobs[:, 0] + blobs[:, 1]
        outcome = RegressionTrainer("LINEAR_REGRESSION").train(blobs, y)
        assert outcome.metrics["r2"] == pytest.approx(1.0)
        assert outcome.metrics["rmse"] == pytest.approx(0.0, abs=1e-9)

    def test_normalization_wraps_estimator(self) -> None:
        """Test that normalization adds a scaling step."""
        trainer = ClusteringTrainer("K_MEANS", normalization=True)
        estimator = trainer.build_estimator()
        assert isinstance(estimator, Pipeline)
        assert list(estimator.named_steps) == ["scaler", "model"]

    def test_clustering(self, blobs: np.ndarray) -> None:
        """Test that clustering needs no response and predicts cluster ids."""
        trainer = ClusteringTrainer("K_MEANS", {"n_clusters": 2}, random_state=0)
        outcome = trainer.train(blobs, None)
        labels = outcome.model.predict(blobs)
        assert len(set(labels[:20])) == 1
        assert labels[0] != labels[-1]

    def test_too_few_rows_for_clusters(self, blobs: np.ndarray) -> None:
        """Test that more clusters than rows is a configuration error."""
        trainer = ClusteringTrainer("K_MEANS", {"n_clusters": 50})
        with pytest.raises(ConfigurationError, match="Cannot form 50 clusters"):
            trainer.train(blobs, None)

    def test_anomaly_scores(self, blobs: np.ndarray) -> None:
        """Test that far points score higher than training points."""
        trainer = AnomalyDetectionTrainer("ANOMALY_DETECTION", {"n_clusters": 2}, random_state=0)
        outcome = trainer.train(blobs, None)

        assert outcome.anomaly_scores is not None
        assert len(outcome.anomaly_scores) == len(blobs)
        far = outcome.model.predict(np.array([[20.0, -20.0]]))
        assert far[0] > outcome.anomaly_scores.max()


class TestRecommendation:
    """Tests for collaborative filtering."""

    @pytest.fixture
    def ratings(self) -> tuple[np.ndarray, np.ndarray]:
        X = np.array(
            [[1, 10], [1, 11], [2, 10], [2, 12], [3, 11], [3, 12], [4, 10]],
            dtype=float,
        )
        y = np.array([5, 1, 4, 2, 1, 5, 5], dtype=float)
        return X, y

    def test_predict_known_and_unknown(self, ratings: tuple[np.ndarray, np.ndarray]) -> None:
        """Test predictions for known pairs and NaN for unknown ids."""
        X, y = ratings
        outcome = RecommendationTrainer(
            "COLLABORATIVE_FILTERING", {"n_components": 2}, random_state=0
        ).train(X, y)

        predicted = outcome.model.predict(np.array([[1, 10], [99, 10]], dtype=float))
        assert predicted[0] > 0
        assert np.isnan(predicted[1])

    def test_recommendations(self, ratings: tuple[np.ndarray, np.ndarray]) -> None:
        """Test top-n products and users."""
        X, y = ratings
        model = RecommendationTrainer("COLLABORATIVE_FILTERING", random_state=0).fit(X, y)

        assert isinstance(model, MatrixFactorizationModel)
        products = model.recommend_products(1.0, n=2)
        assert len(products) == 2
        assert products[0][1] >= products[1][1]
        assert {user for user, _ in model.recommend_users(10.0, n=10)} == {1.0, 2.0, 3.0, 4.0}

        with pytest.raises(ValueError, match="Unknown user id"):
            model.recommend_products(42.0)

    def test_requires_two_inputs(self, ratings: tuple[np.ndarray, np.ndarray]) -> None:
        """Test that the inputs must be exactly (user, product)."""
        X, y = ratings
        with pytest.raises(ConfigurationError, match="exactly two input features"):
            RecommendationTrainer("COLLABORATIVE_FILTERING").fit(X[:, :1], y)

    def test_negative_ratings(self, ratings: tuple[np.ndarray, np.ndarray]) -> None:
        """Test that negative ratings are rejected."""
        X, y = ratings
        with pytest.raises(ConfigurationError, match="non-negative"):
            RecommendationTrainer("COLLABORATIVE_FILTERING").fit(X, -y)

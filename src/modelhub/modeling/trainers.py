"""
Trainers for each algorithm family.

A trainer turns the vectorized training matrix into a fitted estimator and
evaluation metrics. Every fitted model exposes ``predict(X)`` on matrices
in trained slot order, so the serving path does not need to know the
family. Normalization is applied inside the estimator as a min-max scaling
step, which keeps serving inputs in the raw (encoded) space.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from sklearn.base import BaseEstimator
from sklearn.metrics import (
    accuracy_score,
    f1_score,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
)
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import MinMaxScaler

from modelhub.config.settings import AlgorithmClass, WorkflowConfig
from modelhub.exceptions import ConfigurationError
from modelhub.modeling.algorithms import create_estimator, resolve_algorithm_class
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class TrainingOutcome:
    """
    Result of fitting one model.

    Attributes:
        model: Fitted model exposing ``predict(X)``.
        metrics: Evaluation metrics.
        anomaly_scores: Training anomaly scores, for anomaly detection only.
    """

    model: Any
    metrics: dict[str, float] = field(default_factory=dict)
    anomaly_scores: np.ndarray | None = None


def _final_estimator(model: BaseEstimator) -> BaseEstimator:
    """The estimator at the end of a normalization pipeline."""
    return model[-1] if isinstance(model, Pipeline) else model


class Trainer(ABC):
    """
    Base class for family trainers.

    Attributes:
        algorithm_name: Registered algorithm name.
        hyperparameters: Overrides for the estimator defaults.
        normalization: Scale inputs to [0, 1] inside the estimator.
        random_state: Seed for estimators that accept one.
    """

    requires_response: bool = True

    def __init__(
        self,
        algorithm_name: str,
        hyperparameters: dict[str, Any] | None = None,
        *,
        normalization: bool = False,
        random_state: int | None = None,
    ) -> None:
        self.algorithm_name = algorithm_name
        self.hyperparameters = dict(hyperparameters or {})
        self.normalization = normalization
        self.random_state = random_state

    def build_estimator(self) -> BaseEstimator:
        """Create the unfitted estimator, wrapped with a scaler if configured."""
        estimator = create_estimator(
            self.algorithm_name, random_state=self.random_state, **self.hyperparameters
        )
        if self.normalization:
            return Pipeline([("scaler", MinMaxScaler()), ("model", estimator)])
        return estimator

    @abstractmethod
    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        """Fit a model on the training rows."""

    @abstractmethod
    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        """Compute metrics on evaluation rows."""

    def train(
        self,
        X_train: np.ndarray,
        y_train: np.ndarray | None,
        X_test: np.ndarray | None = None,
        y_test: np.ndarray | None = None,
    ) -> TrainingOutcome:
        """
        Fit and evaluate.

        Metrics are computed on the held-out rows when there are any, and on
        the training rows otherwise.
        """
        if self.requires_response and y_train is None:
            msg = f"Algorithm '{self.algorithm_name}' requires a response variable"
            raise ConfigurationError(msg)

        model = self.fit(X_train, y_train)

        if X_test is not None and len(X_test) > 0:
            metrics = self.evaluate(model, X_test, y_test)
        else:
            metrics = self.evaluate(model, X_train, y_train)

        log.info(
            "Trained model",
            algorithm=self.algorithm_name,
            n_train=len(X_train),
            metrics=metrics,
        )
        return TrainingOutcome(model=model, metrics=metrics)


class ClassificationTrainer(Trainer):
    """Classifiers, including the multilayer perceptron."""

    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        classes = np.unique(y)
        if len(classes) < 2:
            msg = (
                f"Algorithm '{self.algorithm_name}' needs at least two response classes, "
                f"got {len(classes)}"
            )
            raise ConfigurationError(msg)
        model = self.build_estimator()
        model.fit(X, y)
        return model

    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        y_pred = model.predict(X)
        return {
            "accuracy": float(accuracy_score(y, y_pred)),
            "f1_macro": float(f1_score(y, y_pred, average="macro", zero_division=0)),
        }


class RegressionTrainer(Trainer):
    """Numerical prediction."""

    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        model = self.build_estimator()
        model.fit(X, y)
        return model

    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        y_pred = model.predict(X)
        metrics = {
            "rmse": float(np.sqrt(mean_squared_error(y, y_pred))),
            "mae": float(mean_absolute_error(y, y_pred)),
        }
        # r2 is undefined for a single sample
        if len(y) > 1:
            metrics["r2"] = float(r2_score(y, y_pred))
        return metrics


class ClusteringTrainer(Trainer):
    """K-means clustering; ``predict`` returns the cluster id."""

    requires_response = False

    def _check_clusters(self, model: BaseEstimator, n_rows: int) -> None:
        n_clusters = _final_estimator(model).get_params().get("n_clusters", 1)
        if n_rows < n_clusters:
            msg = f"Cannot form {n_clusters} clusters from {n_rows} rows"
            raise ConfigurationError(msg)

    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        model = self.build_estimator()
        self._check_clusters(model, len(X))
        model.fit(X)
        return model

    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        estimator = _final_estimator(model)
        return {
            "inertia": float(estimator.inertia_),
            "n_clusters": float(estimator.n_clusters),
        }


class KMeansAnomalyModel:
    """
    Anomaly scorer backed by k-means.

    The score of a row is its distance to the nearest cluster centre found
    on the training data; larger means more anomalous.
    """

    def __init__(self, clusterer: BaseEstimator) -> None:
        self.clusterer = clusterer

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Anomaly score per row."""
        return np.asarray(self.clusterer.transform(X)).min(axis=1)


class AnomalyDetectionTrainer(ClusteringTrainer):
    """Anomaly detection on distances to k-means cluster centres."""

    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        return KMeansAnomalyModel(super().fit(X, y))

    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        scores = model.predict(X)
        return {
            "mean_score": float(scores.mean()),
            "max_score": float(scores.max()),
        }

    def train(
        self,
        X_train: np.ndarray,
        y_train: np.ndarray | None,
        X_test: np.ndarray | None = None,
        y_test: np.ndarray | None = None,
    ) -> TrainingOutcome:
        outcome = super().train(X_train, y_train, X_test, y_test)
        outcome.anomaly_scores = outcome.model.predict(X_train)
        return outcome


class MatrixFactorizationModel:
    """
    Collaborative filtering model over (user, product) -> rating.

    Ratings are laid out in a user-by-product matrix, unobserved cells as
    zero, and factorized with non-negative matrix factorization.

    Attributes:
        users: Known user ids in row order.
        products: Known product ids in column order.
        user_factors: Latent user factors (n_users, k).
        product_factors: Latent product factors (k, n_products).
    """

    def __init__(self, factorizer: BaseEstimator) -> None:
        self.factorizer = factorizer
        self.users: np.ndarray = np.empty(0)
        self.products: np.ndarray = np.empty(0)
        self.user_factors: np.ndarray = np.empty((0, 0))
        self.product_factors: np.ndarray = np.empty((0, 0))

    def fit(self, X: np.ndarray, y: np.ndarray) -> "MatrixFactorizationModel":
        """Factorize the ratings given as rows of (user, product)."""
        self.users, user_rows = np.unique(X[:, 0], return_inverse=True)
        self.products, product_cols = np.unique(X[:, 1], return_inverse=True)

        ratings = np.zeros((len(self.users), len(self.products)))
        counts = np.zeros_like(ratings)
        np.add.at(ratings, (user_rows, product_cols), y)
        np.add.at(counts, (user_rows, product_cols), 1)
        np.divide(ratings, counts, out=ratings, where=counts > 0)

        n_components = min(
            self.factorizer.get_params()["n_components"],
            len(self.users),
            len(self.products),
        )
        self.factorizer.set_params(n_components=n_components)
        self.user_factors = self.factorizer.fit_transform(ratings)
        self.product_factors = self.factorizer.components_
        return self

    def _position(self, ids: np.ndarray, value: float) -> int | None:
        pos = int(np.searchsorted(ids, value))
        if pos < len(ids) and ids[pos] == value:
            return pos
        return None

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Predicted rating per row; NaN for unknown users or products."""
        out = np.full(len(X), np.nan)
        for i, (user, product) in enumerate(X[:, :2]):
            u = self._position(self.users, user)
            p = self._position(self.products, product)
            if u is not None and p is not None:
                out[i] = self.user_factors[u] @ self.product_factors[:, p]
        return out

    def recommend_products(self, user: float, n: int = 10) -> list[tuple[float, float]]:
        """
        Top products for a user.

        Returns:
            (product id, predicted rating) pairs, best first.

        Raises:
            ValueError: If the user was not seen during training.
        """
        u = self._position(self.users, user)
        if u is None:
            msg = f"Unknown user id: {user}"
            raise ValueError(msg)
        scores = self.user_factors[u] @ self.product_factors
        top = np.argsort(-scores, kind="stable")[:n]
        return [(float(self.products[j]), float(scores[j])) for j in top]

    def recommend_users(self, product: float, n: int = 10) -> list[tuple[float, float]]:
        """
        Top users for a product.

        Raises:
            ValueError: If the product was not seen during training.
        """
        p = self._position(self.products, product)
        if p is None:
            msg = f"Unknown product id: {product}"
            raise ValueError(msg)
        scores = self.user_factors @ self.product_factors[:, p]
        top = np.argsort(-scores, kind="stable")[:n]
        return [(float(self.users[j]), float(scores[j])) for j in top]


class RecommendationTrainer(Trainer):
    """Collaborative filtering on (user, product) inputs with a rating response."""

    def fit(self, X: np.ndarray, y: np.ndarray | None) -> Any:
        if X.shape[1] != 2:
            msg = (
                "Collaborative filtering needs exactly two input features "
                f"(user, product), got {X.shape[1]}"
            )
            raise ConfigurationError(msg)
        if (y < 0).any():
            msg = "Collaborative filtering needs non-negative ratings"
            raise ConfigurationError(msg)
        if self.normalization:
            log.warning("Normalization is ignored for collaborative filtering")

        factorizer = create_estimator(
            self.algorithm_name, random_state=self.random_state, **self.hyperparameters
        )
        return MatrixFactorizationModel(factorizer).fit(X, y)

    def evaluate(self, model: Any, X: np.ndarray, y: np.ndarray | None) -> dict[str, float]:
        y_pred = model.predict(X)
        known = ~np.isnan(y_pred)
        if not known.any():
            return {"coverage": 0.0}
        return {
            "rmse": float(np.sqrt(mean_squared_error(y[known], y_pred[known]))),
            "coverage": float(known.mean()),
        }


TRAINERS: dict[AlgorithmClass, type[Trainer]] = {
    AlgorithmClass.CLASSIFICATION: ClassificationTrainer,
    AlgorithmClass.DEEPLEARNING: ClassificationTrainer,
    AlgorithmClass.NUMERICAL_PREDICTION: RegressionTrainer,
    AlgorithmClass.CLUSTERING: ClusteringTrainer,
    AlgorithmClass.ANOMALY_DETECTION: AnomalyDetectionTrainer,
    AlgorithmClass.RECOMMENDATION: RecommendationTrainer,
}


def create_trainer(workflow: WorkflowConfig) -> Trainer:
    """
    Create the trainer for a workflow.

    Raises:
        AlgorithmNameError: If the algorithm is unknown or does not match
            the declared family.
    """
    algorithm_class = resolve_algorithm_class(workflow.algorithm_name, workflow.algorithm_class)
    trainer_class = TRAINERS[algorithm_class]
    return trainer_class(
        workflow.algorithm_name,
        workflow.hyperparameters,
        normalization=workflow.normalization,
        random_state=workflow.random_seed,
    )

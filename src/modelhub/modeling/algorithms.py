"""
Algorithm registry and factory.

Maps the registered algorithm names to their family and scikit-learn
estimator with default parameters.
"""

from dataclasses import dataclass, field
from typing import Any

from sklearn.base import BaseEstimator
from sklearn.cluster import KMeans
from sklearn.decomposition import NMF
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import Lasso, LinearRegression, LogisticRegression, Ridge
from sklearn.naive_bayes import GaussianNB
from sklearn.neural_network import MLPClassifier
from sklearn.svm import LinearSVC
from sklearn.tree import DecisionTreeClassifier

from modelhub.config.settings import AlgorithmClass
from modelhub.exceptions import AlgorithmNameError, ConfigurationError
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class AlgorithmSpec:
    """
    Registered algorithm.

    Attributes:
        name: Registered name, e.g. ``LOGISTIC_REGRESSION``.
        algorithm_class: Family the algorithm belongs to.
        estimator: scikit-learn estimator class.
        defaults: Default constructor parameters.
    """

    name: str
    algorithm_class: AlgorithmClass
    estimator: type[BaseEstimator]
    defaults: dict[str, Any] = field(default_factory=dict)


def _spec(
    name: str,
    algorithm_class: AlgorithmClass,
    estimator: type[BaseEstimator],
    **defaults: Any,
) -> tuple[str, AlgorithmSpec]:
    return name, AlgorithmSpec(name, algorithm_class, estimator, defaults)


ALGORITHM_REGISTRY: dict[str, AlgorithmSpec] = dict(
    [
        _spec("LOGISTIC_REGRESSION", AlgorithmClass.CLASSIFICATION, LogisticRegression, max_iter=1000),
        _spec("DECISION_TREE", AlgorithmClass.CLASSIFICATION, DecisionTreeClassifier),
        _spec(
            "RANDOM_FOREST_CLASSIFICATION",
            AlgorithmClass.CLASSIFICATION,
            RandomForestClassifier,
            n_estimators=100,
        ),
        _spec("NAIVE_BAYES", AlgorithmClass.CLASSIFICATION, GaussianNB),
        _spec("SVM", AlgorithmClass.CLASSIFICATION, LinearSVC),
        _spec("LINEAR_REGRESSION", AlgorithmClass.NUMERICAL_PREDICTION, LinearRegression),
        _spec("RIDGE_REGRESSION", AlgorithmClass.NUMERICAL_PREDICTION, Ridge, alpha=1.0),
        _spec("LASSO_REGRESSION", AlgorithmClass.NUMERICAL_PREDICTION, Lasso, alpha=1.0),
        _spec(
            "RANDOM_FOREST_REGRESSION",
            AlgorithmClass.NUMERICAL_PREDICTION,
            RandomForestRegressor,
            n_estimators=100,
        ),
        _spec("K_MEANS", AlgorithmClass.CLUSTERING, KMeans, n_clusters=3, n_init=10),
        # distance to the nearest training cluster centre is the anomaly score
        _spec("ANOMALY_DETECTION", AlgorithmClass.ANOMALY_DETECTION, KMeans, n_clusters=3, n_init=10),
        _spec(
            "STACKED_AUTOENCODERS",
            AlgorithmClass.DEEPLEARNING,
            MLPClassifier,
            hidden_layer_sizes=(50, 25),
            max_iter=500,
        ),
        _spec(
            "COLLABORATIVE_FILTERING",
            AlgorithmClass.RECOMMENDATION,
            NMF,
            n_components=10,
            init="nndsvda",
            max_iter=500,
        ),
    ]
)


def get_algorithm(name: str) -> AlgorithmSpec:
    """
    Look up a registered algorithm.

    Raises:
        AlgorithmNameError: If the name is not registered.
    """
    if name not in ALGORITHM_REGISTRY:
        available = ", ".join(ALGORITHM_REGISTRY)
        msg = f"Unknown algorithm '{name}'. Available: {available}"
        raise AlgorithmNameError(msg)
    return ALGORITHM_REGISTRY[name]


def resolve_algorithm_class(name: str, declared: AlgorithmClass | None = None) -> AlgorithmClass:
    """
    Determine the family of an algorithm.

    Args:
        name: Registered algorithm name.
        declared: Family declared in the workflow, if any.

    Returns:
        The algorithm family.

    Raises:
        AlgorithmNameError: If the name is unknown or does not belong to the
            declared family.
    """
    spec = get_algorithm(name)
    if declared is not None and declared != spec.algorithm_class:
        msg = (
            f"Algorithm '{name}' belongs to {spec.algorithm_class.value}, "
            f"not {declared.value}"
        )
        raise AlgorithmNameError(msg)
    return spec.algorithm_class


def create_estimator(name: str, random_state: int | None = None, **hyperparameters: Any) -> BaseEstimator:
    """
    Create an unfitted estimator.

    Args:
        name: Registered algorithm name.
        random_state: Seed, applied when the estimator accepts one.
        **hyperparameters: Override default parameters.

    Returns:
        Estimator instance.

    Raises:
        AlgorithmNameError: If the name is unknown.
        ConfigurationError: If a hyperparameter is not accepted.
    """
    spec = get_algorithm(name)
    params = {**spec.defaults, **hyperparameters}

    try:
        estimator = spec.estimator(**params)
    except TypeError as e:
        msg = f"Invalid hyperparameters for '{name}': {e}"
        raise ConfigurationError(msg) from e

    if random_state is not None and "random_state" in estimator.get_params():
        estimator.set_params(random_state=random_state)

    log.debug("Creating estimator", name=name, params=params)
    return estimator


def list_algorithms(algorithm_class: AlgorithmClass | None = None) -> list[str]:
    """Registered algorithm names, optionally limited to one family."""
    return [
        name
        for name, spec in ALGORITHM_REGISTRY.items()
        if algorithm_class is None or spec.algorithm_class == algorithm_class
    ]

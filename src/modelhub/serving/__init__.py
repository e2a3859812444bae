"""
Serving path: load, align, predict.

Usage:
    >>> from modelhub.serving import ModelRepository, PredictionService
    >>> repository = ModelRepository(StorageResolver.from_config(config.storage))
    >>> service = PredictionService(config.require_serving(), repository)
    >>> service.predict({"age": "42", "income": "51000"}).value
"""

from modelhub.serving.alignment import AlignmentTable, align, bind, project_row
from modelhub.serving.bindings import BindingSet, ValueExtractor, compile_extractor
from modelhub.serving.predictor import AnomalyDecision, Prediction, Predictor, classify, predict
from modelhub.serving.repository import CacheEntry, ModelRepository
from modelhub.serving.service import PredictionService

__all__ = [
    "AlignmentTable",
    "AnomalyDecision",
    "BindingSet",
    "CacheEntry",
    "ModelRepository",
    "Prediction",
    "PredictionService",
    "Predictor",
    "ValueExtractor",
    "align",
    "bind",
    "classify",
    "compile_extractor",
    "predict",
    "project_row",
]

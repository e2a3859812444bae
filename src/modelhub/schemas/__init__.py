"""
Pandera schemas for data validation at system boundaries.
"""

from modelhub.schemas.dataset import build_feature_frame_schema
from modelhub.schemas.output import PredictionOutputSchema

__all__ = [
    "PredictionOutputSchema",
    "build_feature_frame_schema",
]

"""
Pandera schema for batch prediction output.
"""

from typing import Optional

import pandera.pandas as pa
from pandera.typing import Series


class PredictionOutputSchema(pa.DataFrameModel):
    """
    Schema for batch prediction output.

    Predictions mix numbers, cluster ids and decoded labels, so the
    prediction column carries no dtype constraint.
    """

    row: Series[int] = pa.Field(
        ge=0,
        unique=True,
        description="Position of the request row",
    )
    prediction: Series[object] = pa.Field(
        nullable=True,
        description="Predicted value, empty for failed rows",
    )
    is_anomaly: Optional[Series[bool]] = pa.Field(
        nullable=True,
        description="Anomaly decision (percentile requests only)",
    )
    threshold: Optional[Series[float]] = pa.Field(
        ge=0,
        nullable=True,
        description="Score threshold at the requested percentile",
    )
    error: Optional[Series[object]] = pa.Field(
        nullable=True,
        description="Row error message when bad rows are skipped",
    )

    class Config:
        """Schema configuration."""

        name = "PredictionOutputSchema"
        strict = False
        coerce = True

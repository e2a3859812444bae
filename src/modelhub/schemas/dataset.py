"""
Pandera schemas for vectorized training data.

The trained input space is only known once the index map is computed, so
the schema is built per model from its feature names.
"""

from collections.abc import Sequence

import numpy as np
import pandera.pandas as pa


def build_feature_frame_schema(names: Sequence[str]) -> pa.DataFrameSchema:
    """
    Schema for a vectorized feature frame.

    Every trained slot must be a finite float64 with no nulls, in the
    trained column order.

    Args:
        names: Column names in trained slot order.

    Returns:
        DataFrameSchema for the frame.
    """
    finite = pa.Check(
        lambda s: np.isfinite(s),
        element_wise=False,
        error="values must be finite",
    )
    return pa.DataFrameSchema(
        {name: pa.Column(float, checks=finite, nullable=False) for name in names},
        name="FeatureFrameSchema",
        strict=True,
        ordered=True,
    )

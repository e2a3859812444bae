"""
Conversion of encoded rows to numeric feature matrices.
"""

from collections.abc import Iterable, Sequence

import numpy as np
import pandas as pd

from modelhub.schemas.dataset import build_feature_frame_schema


class Vectorizer:
    """
    Converts encoded rows into float64 arrays of a fixed width.

    Attributes:
        names: Column names, one per vector slot.
    """

    def __init__(self, names: Sequence[str]) -> None:
        self.names = list(names)

    @property
    def width(self) -> int:
        """Number of slots per vector."""
        return len(self.names)

    def to_vector(self, values: Sequence[float | int | str]) -> np.ndarray:
        """
        Convert one row.

        Raises:
            ValueError: If the row width is wrong or a value is not numeric.
        """
        if len(values) != self.width:
            msg = f"Expected {self.width} values, got {len(values)}"
            raise ValueError(msg)
        return np.asarray([float(v) for v in values], dtype=np.float64)

    def to_matrix(self, rows: Iterable[Sequence[float | int | str]]) -> np.ndarray:
        """Convert many rows into an (n_rows, width) matrix."""
        vectors = [self.to_vector(row) for row in rows]
        if not vectors:
            return np.empty((0, self.width), dtype=np.float64)
        return np.vstack(vectors)

    def to_frame(self, matrix: np.ndarray, *, validate: bool = True) -> pd.DataFrame:
        """
        Wrap a matrix in a named DataFrame.

        Args:
            matrix: Output of to_matrix().
            validate: Check that every value is a finite float.

        Raises:
            pandera.errors.SchemaError: If validation fails.
        """
        frame = pd.DataFrame(matrix, columns=self.names)
        if validate:
            frame = build_feature_frame_schema(self.names).validate(frame)
        return frame

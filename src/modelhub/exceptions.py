"""
Error taxonomy for training and serving.

Every error here describes a data or configuration inconsistency that only
the caller can resolve (reconfigure, retrain, fix storage). Nothing in this
package retries on them.
"""


class ModelHubError(Exception):
    """Base class for all modelhub errors."""


class ConfigurationError(ModelHubError, ValueError):
    """Invalid configuration: percentile, feature set, binding, workflow.

    Raised before any data is touched.
    """


class AlgorithmNameError(ConfigurationError):
    """Unknown algorithm name or a name that does not fit its algorithm class."""


class StorageError(ModelHubError):
    """A storage adapter could not read or write an object."""


class ModelLoadError(ModelHubError):
    """A model artifact could not be read or deserialized.

    Attributes:
        location_key: Storage location the load was attempted from.
    """

    def __init__(self, location_key: str, reason: str) -> None:
        self.location_key = location_key
        self.reason = reason
        super().__init__(f"Failed to load model from {location_key!r}: {reason}")


class SchemaSkewError(ModelHubError):
    """An aligned vector does not match the loaded model's input space.

    The alignment table was built for a different (usually superseded)
    model. Rebuild the alignment table against the current artifact.
    """

    def __init__(self, expected_width: int, actual_width: int, detail: str = "") -> None:
        self.expected_width = expected_width
        self.actual_width = actual_width
        msg = (
            f"Aligned vector has width {actual_width}, model expects {expected_width}. "
            "Rebuild the alignment table after a model refresh."
        )
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class RowError(ModelHubError):
    """A single input row could not be converted to the model's feature space.

    Attributes:
        row: Position of the row in the request batch (0-based).
        feature: Name of the offending feature.
    """

    def __init__(self, row: int, feature: str, message: str) -> None:
        self.row = row
        self.feature = feature
        super().__init__(f"Row {row}, feature {feature!r}: {message}")


class UnseenCategoryError(RowError):
    """A categorical value at serving time is absent from the frozen encodings."""

    def __init__(self, row: int, feature: str, value: str, n_known: int) -> None:
        self.value = value
        self.n_known = n_known
        super().__init__(
            row,
            feature,
            f"category {value!r} was not seen during training ({n_known} known categories)",
        )


class MalformedValueError(RowError):
    """A numerical feature value cannot be parsed as a number."""

    def __init__(self, row: int, feature: str, value: str) -> None:
        self.value = value
        super().__init__(row, feature, f"value {value!r} is not numeric")

"""
Feature selection and encoding.

The selector derives the index map (``new_to_old``) from configuration
alone: walking the schema in original-index order, every included,
non-response column gets the next trained input slot. The encoder makes one
coordinated pass over the data to freeze categorical codes (first-seen
order) and the imputation values, then transforms rows with them.
"""

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from modelhub.exceptions import ConfigurationError
from modelhub.modeling.artifact import Feature, validate_index_map
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


def compute_index_map(features: Sequence[Feature], response_index: int = -1) -> tuple[int, ...]:
    """
    Compute the original-to-trained column mapping.

    Args:
        features: Dataset schema (any order).
        response_index: Original index of the response column, -1 if none.

    Returns:
        ``new_to_old`` where position is the trained slot and the value is
        the original column index.

    Raises:
        ConfigurationError: If no column is left for training.
    """
    new_to_old = tuple(
        f.index
        for f in sorted(features, key=lambda f: f.index)
        if f.include and f.index != response_index
    )
    validate_index_map(new_to_old, features)
    return new_to_old


class FeatureSelector:
    """
    Selects the trained columns (and the response) from raw rows.

    Attributes:
        features: Dataset schema in original-index order.
        response_index: Original index of the response column, -1 if none.
        new_to_old: Index map for the trained input space.
    """

    def __init__(self, features: Sequence[Feature], response_variable: str | None = None) -> None:
        ordered = tuple(sorted(features, key=lambda f: f.index))
        self._check_schema(ordered)
        self.features = ordered

        self.response_index = -1
        if response_variable is not None:
            matches = [f for f in ordered if f.name == response_variable]
            if not matches:
                msg = f"Response variable {response_variable!r} is not in the feature schema"
                raise ConfigurationError(msg)
            self.response_index = matches[0].index

        self.new_to_old = compute_index_map(ordered, self.response_index)
        by_index = {f.index: f for f in ordered}
        self.input_features = tuple(by_index[i] for i in self.new_to_old)
        self.response_feature = by_index.get(self.response_index)

        log.debug(
            "Computed index map",
            new_to_old=list(self.new_to_old),
            response_index=self.response_index,
        )

    @staticmethod
    def _check_schema(features: Sequence[Feature]) -> None:
        names = [f.name for f in features]
        indices = [f.index for f in features]
        if len(set(names)) != len(names):
            msg = f"Feature names must be unique, got: {names}"
            raise ConfigurationError(msg)
        if len(set(indices)) != len(indices):
            msg = f"Feature indices must be unique, got: {indices}"
            raise ConfigurationError(msg)
        negative = [i for i in indices if i < 0]
        if negative:
            msg = f"Feature indices must be non-negative, got: {negative}"
            raise ConfigurationError(msg)

    @property
    def selected_features(self) -> tuple[Feature, ...]:
        """Trained features followed by the response feature, if any."""
        if self.response_feature is None:
            return self.input_features
        return (*self.input_features, self.response_feature)

    def select(self, row: Sequence[str]) -> list[str]:
        """Project a raw row onto the trained slots (response last)."""
        return [row[f.index] for f in self.selected_features]


@dataclass(frozen=True)
class FittedEncoding:
    """
    Frozen result of the encoder's fit pass.

    Attributes:
        encodings: Label to code per categorical feature, first-seen order.
        means: Mean per numerical feature over non-missing values.
        modes: Most frequent label per categorical feature.
        n_rows: Rows seen during the pass.
    """

    encodings: Mapping[str, Mapping[str, int]]
    means: Mapping[str, float] = field(default_factory=dict)
    modes: Mapping[str, str] = field(default_factory=dict)
    n_rows: int = 0


class FeatureEncoder:
    """Encodes categorical values and imputes missing ones."""

    def __init__(self, selector: FeatureSelector, missing_values: Iterable[str]) -> None:
        self.selector = selector
        self.missing_values = frozenset(missing_values)

    def _is_missing(self, token: str | None) -> bool:
        return token is None or token in self.missing_values

    def fit(self, rows: Iterable[Sequence[str]]) -> FittedEncoding:
        """
        Make the single coordinated pass over the data.

        Args:
            rows: Filtered raw rows (full original width).

        Returns:
            Frozen encodings and imputation values.
        """
        features = self.selector.selected_features
        codes: dict[str, dict[str, int]] = {f.name: {} for f in features if f.is_categorical}
        frequencies: dict[str, Counter[str]] = {name: Counter() for name in codes}
        sums: dict[str, float] = {f.name: 0.0 for f in features if not f.is_categorical}
        counts: dict[str, int] = dict.fromkeys(sums, 0)

        n_rows = 0
        for row in rows:
            n_rows += 1
            for feature in features:
                token = row[feature.index]
                if self._is_missing(token):
                    continue
                if feature.is_categorical:
                    column_codes = codes[feature.name]
                    if token not in column_codes:
                        column_codes[token] = len(column_codes)
                    frequencies[feature.name][token] += 1
                else:
                    sums[feature.name] += float(token)
                    counts[feature.name] += 1

        means = {
            name: (sums[name] / counts[name]) if counts[name] else 0.0 for name in sums
        }
        # most_common keeps first-seen order between equal counts
        modes = {
            name: freq.most_common(1)[0][0] for name, freq in frequencies.items() if freq
        }

        log.info(
            "Fitted feature encodings",
            n_rows=n_rows,
            categorical={name: len(c) for name, c in codes.items()},
        )
        return FittedEncoding(encodings=codes, means=means, modes=modes, n_rows=n_rows)

    def transform(self, row: Sequence[str], fitted: FittedEncoding) -> list[float | int]:
        """
        Select, encode and impute one raw row.

        Args:
            row: Filtered raw row.
            fitted: Result of fit().

        Returns:
            Numeric-ready values in trained slot order, response last.
        """
        values: list[float | int] = []
        for feature, token in zip(self.selector.selected_features, self.selector.select(row)):
            if feature.is_categorical:
                label = fitted.modes.get(feature.name) if self._is_missing(token) else token
                # column with no observed label at all
                values.append(0 if label is None else fitted.encodings[feature.name][label])
            elif self._is_missing(token):
                values.append(fitted.means[feature.name])
            else:
                values.append(float(token))
        return values

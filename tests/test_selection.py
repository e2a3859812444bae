"""Tests for feature selection, index map and encoding."""

import pytest

from modelhub.config.settings import FeatureType, ImputeOption
from modelhub.exceptions import ConfigurationError
from modelhub.modeling.artifact import Feature
from modelhub.preprocessing.selection import (
    FeatureEncoder,
    FeatureSelector,
    compute_index_map,
)

MISSING = ["", "NA", "?"]


class TestComputeIndexMap:
    """Tests for the original-to-trained index map."""

    def test_excluded_and_response_dropped(self) -> None:
        """Test the four-column layout with an excluded column and a response."""
        features = [
            Feature("age", 0),
            Feature("income", 1),
            Feature("zip", 2, include=False),
            Feature("churned", 3),
        ]
        assert compute_index_map(features, response_index=3) == (0, 1)

    def test_follows_original_index_order(self) -> None:
        """Test that declaration order does not matter."""
        features = [Feature("c", 5), Feature("a", 0), Feature("b", 2)]
        assert compute_index_map(features) == (0, 2, 5)

    @pytest.mark.parametrize(
        "flags",
        [
            (True, True, True, True),
            (False, True, False, True),
            (True, False, True, False),
            (False, False, False, True),
        ],
    )
    def test_length_and_uniqueness(self, flags: tuple[bool, ...]) -> None:
        """Test that the map has one unique entry per included feature."""
        features = [Feature(f"f{i}", i, include=flag) for i, flag in enumerate(flags)]
        new_to_old = compute_index_map(features)
        assert len(new_to_old) == sum(flags)
        assert len(set(new_to_old)) == len(new_to_old)

    def test_all_excluded_raises(self) -> None:
        """Test that an empty trained input space is a configuration error."""
        features = [Feature("a", 0, include=False), Feature("label", 1)]
        with pytest.raises(ConfigurationError, match="No features left"):
            compute_index_map(features, response_index=1)


class TestFeatureSelector:
    """Tests for FeatureSelector."""

    def test_response_kept_separately(self) -> None:
        """Test that the response is excluded from inputs but remembered."""
        features = [Feature("x", 0), Feature("label", 1), Feature("y", 2)]
        selector = FeatureSelector(features, "label")

        assert selector.response_index == 1
        assert selector.new_to_old == (0, 2)
        assert [f.name for f in selector.selected_features] == ["x", "y", "label"]
        assert selector.select(["1", "yes", "2"]) == ["1", "2", "yes"]

    def test_unknown_response(self) -> None:
        """Test that a response outside the schema raises error."""
        with pytest.raises(ConfigurationError, match="not in the feature schema"):
            FeatureSelector([Feature("x", 0)], "label")

    def test_duplicate_indices(self) -> None:
        """Test that duplicate original indices raise error."""
        with pytest.raises(ConfigurationError, match="indices must be unique"):
            FeatureSelector([Feature("x", 0), Feature("y", 0)])

    def test_duplicate_names(self) -> None:
        """Test that duplicate names raise error."""
        with pytest.raises(ConfigurationError, match="names must be unique"):
            FeatureSelector([Feature("x", 0), Feature("x", 1)])


class TestFeatureEncoder:
    """Tests for FeatureEncoder."""

    @pytest.fixture
    def encoder(self) -> FeatureEncoder:
        features = [
            Feature("size", 0, impute_option=ImputeOption.REPLACE_WITH_MEAN),
            Feature(
                "colour",
                1,
                FeatureType.CATEGORICAL,
                impute_option=ImputeOption.REPLACE_WITH_MEAN,
            ),
            Feature("label", 2, FeatureType.CATEGORICAL),
        ]
        return FeatureEncoder(FeatureSelector(features, "label"), MISSING)

    def test_first_seen_codes(self, encoder: FeatureEncoder) -> None:
        """Test that codes follow first appearance per column."""
        rows = [["1", "green", "b"], ["2", "red", "a"], ["3", "green", "b"], ["4", "blue", "a"]]
        fitted = encoder.fit(rows)

        assert dict(fitted.encodings["colour"]) == {"green": 0, "red": 1, "blue": 2}
        assert dict(fitted.encodings["label"]) == {"b": 0, "a": 1}
        assert fitted.n_rows == 4

    def test_means_and_modes_ignore_missing(self, encoder: FeatureEncoder) -> None:
        """Test imputation values computed over non-missing values only."""
        rows = [["2", "red", "a"], ["NA", "blue", "a"], ["4", "blue", "b"], ["6", "", "b"]]
        fitted = encoder.fit(rows)

        assert fitted.means["size"] == pytest.approx(4.0)
        assert fitted.modes["colour"] == "blue"

    def test_mode_tie_keeps_first_seen(self, encoder: FeatureEncoder) -> None:
        """Test that equally frequent labels resolve to the first seen."""
        fitted = encoder.fit([["1", "red", "a"], ["1", "blue", "a"]])
        assert fitted.modes["colour"] == "red"

    def test_transform_imputes(self, encoder: FeatureEncoder) -> None:
        """Test that missing values take the mean or the mode's code."""
        rows = [["2", "red", "a"], ["4", "blue", "b"], ["6", "blue", "b"]]
        fitted = encoder.fit(rows)

        assert encoder.transform(["NA", "?", "a"], fitted) == [4.0, 1, 0]
        assert encoder.transform(["8", "red", "b"], fitted) == [8.0, 0, 1]

    def test_fit_is_deterministic(self, encoder: FeatureEncoder) -> None:
        """Test that fitting twice on the same rows gives the same result."""
        rows = [["1", "x", "a"], ["2", "y", "b"], ["3", "x", "a"]]
        assert encoder.fit(rows) == encoder.fit(rows)

"""
Tests for input coercion and method parsing.
"""

import pytest
import numpy as np
import polars as pl

from fitcheck.exceptions import ValidationError
from fitcheck.outliers.methods import (
    ALL_DATA_METHODS,
    MODEL_METHODS,
    Method,
    parse_methods,
)
from fitcheck.validation import (
    as_numeric_matrix,
    coerce_to_float64,
    validate_group_labels,
    validate_min_columns,
)


class TestAsNumericMatrix:

    def test_polars_drops_non_numeric(self):
        df = pl.DataFrame({"a": [1, 2, 3], "s": ["x", "y", "z"], "b": [0.5, 1.5, 2.5]})
        X, names = as_numeric_matrix(df)
        assert names == ["a", "b"]
        assert X.dtype == np.float64
        assert X.shape == (3, 2)

    def test_exclude(self):
        df = pl.DataFrame({"a": [1, 2, 3], "b": [4, 5, 6]})
        _, names = as_numeric_matrix(df, exclude=["a"])
        assert names == ["b"]

    def test_vector_named_x(self):
        X, names = as_numeric_matrix([1, 2, 3])
        assert X.shape == (3, 1)
        assert names == ["x"]

    def test_matrix_names(self):
        _, names = as_numeric_matrix(np.zeros((4, 3)))
        assert names == ["x0", "x1", "x2"]

    def test_inf_becomes_nan(self):
        X, _ = as_numeric_matrix(np.array([1.0, np.inf, -np.inf]))
        assert np.isnan(X[1:, 0]).all()

    def test_three_dimensional(self):
        with pytest.raises(ValidationError, match="1-D or 2-D"):
            as_numeric_matrix(np.zeros((2, 2, 2)))

    def test_strings(self):
        with pytest.raises(ValidationError, match="cannot be converted"):
            as_numeric_matrix(["a", "b"])


class TestHelpers:

    def test_coerce_rejects_nan(self):
        with pytest.raises(ValidationError, match="NaN"):
            coerce_to_float64([1.0, np.nan], allow_nan=False)

    def test_min_columns(self):
        with pytest.raises(ValidationError, match="at least 2"):
            validate_min_columns(np.zeros((5, 1)), 2, "ics")

    def test_group_labels(self):
        labels = validate_group_labels(["a", "b", "a"], 3)
        assert labels.tolist() == ["a", "b", "a"]


class TestParseMethods:

    def test_default(self):
        assert parse_methods(None, (Method.MAHALANOBIS,)) == [Method.MAHALANOBIS]

    def test_case_and_alias(self):
        assert parse_methods(["IQR", "robust"], ()) == [Method.IQR, Method.MAHALANOBIS_ROBUST]

    def test_all_for_data(self):
        assert parse_methods("all", ()) == list(ALL_DATA_METHODS)

    def test_all_with_model(self):
        methods = parse_methods("all", (), with_model=True)
        assert methods[-2:] == list(MODEL_METHODS)

    def test_empty_selection(self):
        with pytest.raises(ValidationError, match="At least one"):
            parse_methods([], ())

    def test_non_string(self):
        with pytest.raises(ValidationError, match="must be a string"):
            parse_methods([3], ())

    def test_labels(self):
        assert Method.CI.label == Method.ETI.label == "ETI"
        assert Method.MAHALANOBIS_ROBUST.threshold_key == "robust"
        assert Method.COOK.is_model_based

"""
Tests for check_outliers: method selection, composite scoring and reporting.
"""

import json
import warnings

import pytest
import numpy as np
import polars as pl

from fitcheck import check_outliers, detect_outliers, OutlierResult
from fitcheck.exceptions import ValidationError, OutlierDetectionWarning
from fitcheck.outliers import aggregate, Method, resolve_thresholds
from fitcheck.outliers import registry


@pytest.fixture
def frame():
    """Three numeric columns, one label column, one planted outlier."""
    np.random.seed(42)
    n = 200
    X = np.random.randn(n, 3)
    X[0] = 12.0
    return pl.DataFrame({
        "a": X[:, 0],
        "b": X[:, 1],
        "c": X[:, 2],
        "label": np.random.choice(["x", "y"], n),
    })


class TestDefaults:

    def test_vector_defaults_to_robust_zscore(self):
        result = check_outliers([1, 2, 3, 4, 100])
        assert result.detectors == ["Zscore_robust"]
        assert result.outlier_indices == [4]

    def test_dataframe_defaults_to_mahalanobis(self, frame):
        result = check_outliers(frame)
        assert result.detectors == ["Mahalanobis"]
        assert 0 in result.outlier_indices

    def test_non_numeric_columns_ignored(self, frame):
        result = check_outliers(frame)
        assert result.thresholds["mahalanobis"] == pytest.approx(9.348404, abs=1e-5)

    def test_series_input(self):
        result = check_outliers(pl.Series("x", [1.0, 2.0, 3.0, 4.0, 100.0]), method="iqr")
        assert result.outlier_indices == [4]

    def test_alias(self):
        assert detect_outliers is check_outliers


class TestComposite:

    def test_score_is_mean_of_flags(self, frame):
        result = check_outliers(frame, method=["zscore", "iqr", "mahalanobis"])
        flags = result.data.select(pl.col("^Outlier_.*$")).to_numpy()
        np.testing.assert_allclose(result.scores, flags.mean(axis=1))

    def test_half_is_not_an_outlier(self):
        # iqr flags only 100; the 95% ETI of five points also excludes 1
        result = check_outliers([1, 2, 3, 4, 100], method=["iqr", "ci"])
        assert result.scores[0] == 0.5
        assert result.scores[4] == 1.0
        assert result.outlier_indices == [4]

    def test_columns_per_detector(self, frame):
        result = check_outliers(frame, method=["zscore", "mahalanobis"])
        assert result.data.columns == [
            "Distance_Zscore",
            "Outlier_Zscore",
            "Distance_Mahalanobis",
            "Outlier_Mahalanobis",
            "Outlier",
        ]

    def test_one_row_per_observation(self, frame):
        result = check_outliers(frame, method=["zscore", "iqr"])
        assert len(result) == frame.height
        assert result.data.height == frame.height

    def test_ci_and_eti_collapse(self):
        result = check_outliers(np.arange(50.0), method=["ci", "eti"])
        assert result.detectors == ["ETI"]

    def test_duplicate_methods_run_once(self, frame):
        result = check_outliers(frame, method=["iqr", "iqr"])
        assert result.detectors == ["IQR"]

    def test_enum_members_accepted(self, frame):
        result = check_outliers(frame, method=[Method.IQR, "zscore"])
        assert result.detectors == ["IQR", "Zscore"]

    def test_all_excludes_model_methods(self, frame):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", OutlierDetectionWarning)
            result = check_outliers(frame, method="all")
        assert "Cook" not in result.detectors
        assert "Pareto" not in result.detectors
        assert "Mahalanobis" in result.detectors
        assert result.methods[0] == "zscore_robust"


class TestThresholdOverrides:

    def test_scalar_applies_to_every_detector(self, frame):
        result = check_outliers(frame, method=["zscore", "mahalanobis"], threshold=3)
        assert result.thresholds["zscore"] == 3.0
        assert result.thresholds["mahalanobis"] == 3.0
        z = result.data["Distance_Zscore"].to_numpy()
        np.testing.assert_array_equal(result.data["Outlier_Zscore"].to_numpy(), (z > 3).astype(float))

    def test_mapping_override(self, frame):
        result = check_outliers(frame, method="mahalanobis", threshold={"mahalanobis": 1000})
        assert result.n_outliers == 0

    def test_bad_threshold(self, frame):
        with pytest.raises(ValidationError):
            check_outliers(frame, threshold="high")


class TestFailures:

    def test_unknown_method(self, frame):
        with pytest.raises(ValidationError, match="Unknown outlier method"):
            check_outliers(frame, method="magic")

    def test_no_numeric_columns(self):
        with pytest.raises(ValidationError, match="No numeric columns"):
            check_outliers(pl.DataFrame({"a": ["x", "y", "z"]}))

    def test_empty_data(self):
        with pytest.raises(ValidationError):
            check_outliers(np.array([]))

    def test_missing_dependency_is_skipped(self, frame, monkeypatch):
        monkeypatch.setitem(registry.AVAILABLE, registry.SKLEARN, False)
        with pytest.warns(OutlierDetectionWarning, match="scikit-learn"):
            result = check_outliers(frame, method=["mahalanobis", "lof", "mcd"])
        assert result.detectors == ["Mahalanobis"]
        assert result.methods == ["mahalanobis", "lof", "mcd"]

    def test_failed_detector_is_omitted(self):
        with pytest.warns(OutlierDetectionWarning, match="ics"):
            result = check_outliers(np.random.randn(50), method=["ics", "zscore"])
        assert result.detectors == ["Zscore"]

    def test_warning_points_at_caller(self):
        with pytest.warns(OutlierDetectionWarning, match="ics") as record:
            check_outliers(np.random.randn(50), method=["ics", "zscore"])
        assert record[0].filename == __file__

    def test_verbose_false_is_silent(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = check_outliers(np.random.randn(50), method=["ics", "zscore"], verbose=False)
        assert result.detectors == ["Zscore"]

    def test_nothing_computed(self):
        with pytest.warns(OutlierDetectionWarning, match="could be computed"):
            result = check_outliers(np.random.randn(50), method="ics")
        assert result.data.columns == ["Outlier"]
        assert result.n_outliers == 0


class TestMissingValues:

    def test_infinite_treated_as_missing(self):
        x = np.array([1.0, 2.0, 3.0, np.inf, 2.5, 1.5, 100.0])
        result = check_outliers(x, method="zscore_robust")
        assert np.isnan(result.data["Distance_Zscore_robust"][3])
        assert result.data["Outlier_Zscore_robust"][3] == 0
        assert result.outlier_indices == [6]

    def test_multivariate_incomplete_row(self, frame):
        a = frame["a"].to_list()
        a[5] = None
        df = frame.with_columns(pl.Series("a", a))
        result = check_outliers(df, method="mahalanobis")
        assert result.data["Outlier_Mahalanobis"][5] == 0
        assert 0 in result.outlier_indices


class TestResultObject:

    @pytest.fixture
    def result(self):
        return check_outliers([1, 2, 3, 4, 100], method="iqr")

    def test_boolean_vector(self, result):
        assert list(result) == [False, False, False, False, True]
        assert np.asarray(result).dtype == bool
        assert result[4]
        assert len(result) == 5

    def test_summary(self, result):
        assert str(result) == "Warning: 1 outlier detected (rows 4)."

    def test_summary_no_outliers(self):
        result = check_outliers([1, 2, 3, 4, 5], method="iqr")
        assert result.summary() == "OK: No outliers detected."

    def test_summary_plural(self):
        result = check_outliers([-100, 1, 2, 3, 4, 100], method="iqr")
        assert result.summary() == "Warning: 2 outliers detected (rows 0, 5)."

    def test_json(self, result):
        payload = json.loads(result.to_json())
        assert payload["n_obs"] == 5
        assert payload["outliers"] == [4]
        assert payload["methods"] == ["iqr"]
        assert payload["thresholds"]["iqr"] == 1.5

    def test_repr(self, result):
        assert "1/5" in repr(result)

    def test_flags_are_read_only(self, result):
        with pytest.raises(ValueError):
            np.asarray(result)[0] = True
        with pytest.raises(ValueError):
            result.flags[0] = True
        assert result.outlier_indices == [4]

    def test_copies_are_writable(self, result):
        flags = np.array(result, copy=True)
        flags[0] = True
        as_int = np.asarray(result, dtype=np.int64)
        as_int[1] = 1
        assert result.outlier_indices == [4]


class TestAggregate:

    def test_direct_call(self):
        X = np.array([1.0, 2.0, 3.0, 4.0, 100.0]).reshape(-1, 1)
        result = aggregate(X, [Method.IQR, Method.ZSCORE], resolve_thresholds(X))
        assert isinstance(result, OutlierResult)
        assert result.outlier_indices == [4]

    def test_eti_member(self):
        X = np.array([1.0, 2.0, 3.0, 4.0, 100.0]).reshape(-1, 1)
        result = aggregate(X, [Method.ETI], resolve_thresholds(X))
        assert result.detectors == ["ETI"]

    def test_ci_and_eti_run_once(self):
        X = np.array([1.0, 2.0, 3.0, 4.0, 100.0]).reshape(-1, 1)
        result = aggregate(X, [Method.CI, Method.ETI], resolve_thresholds(X))
        assert result.detectors == ["ETI"]
        assert result.methods == ["ci"]

    def test_warning_points_at_caller(self):
        X = np.random.randn(50, 1)
        with pytest.warns(OutlierDetectionWarning, match="ics") as record:
            aggregate(X, [Method.ICS, Method.ZSCORE], resolve_thresholds(X))
        assert record[0].filename == __file__

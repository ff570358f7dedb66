"""
Tests for model wrappers and the model-based detectors.

statsmodels is used as the reference implementation for Cook's distance.
"""

import warnings

import pytest
import numpy as np
from scipy import stats

from fitcheck import check_outliers
from fitcheck.exceptions import (
    OutlierDetectionWarning,
    UnsupportedModelError,
    ValidationError,
)
from fitcheck.models import (
    BayesianModel,
    FrequentistModel,
    UnsupportedModel,
    get_influence_distances,
    get_numeric_matrix,
    get_pareto_shape,
    is_model,
    model_class,
    model_is_bayesian,
    psis_pareto_k,
    wrap_model,
)

sm = pytest.importorskip("statsmodels.api")


@pytest.fixture
def regression():
    """Linear data with one high-leverage, badly fitted observation."""
    np.random.seed(42)
    n = 100
    X = np.random.randn(n, 2)
    y = 1.0 + X @ np.array([2.0, -1.0]) + np.random.randn(n)
    X[0] = [10.0, 10.0]
    y[0] = -50.0
    return X, y


@pytest.fixture
def ols(regression):
    X, y = regression
    return sm.OLS(y, sm.add_constant(X)).fit()


@pytest.fixture
def posterior():
    """Pointwise log-likelihood of a normal mean model; observation 0 is far out."""
    np.random.seed(7)
    y = np.random.randn(30)
    y[0] = 20.0
    mu = np.random.normal(0.0, 0.5, size=1000)
    log_lik = stats.norm.logpdf(y[None, :], loc=mu[:, None], scale=1.0)
    return log_lik, y.reshape(-1, 1)


class TestFrequentistModel:

    def test_cooks_distance_matches_statsmodels(self, regression, ols):
        X, y = regression
        model = FrequentistModel.from_arrays(X, y)
        expected = ols.get_influence().cooks_distance[0]
        np.testing.assert_allclose(model.influence_distances(), expected, rtol=1e-6)

    def test_loglik_matches_statsmodels(self, regression, ols):
        X, y = regression
        model = FrequentistModel.from_arrays(X, y)
        assert model.loglik == pytest.approx(ols.llf)
        np.testing.assert_allclose(model.residuals(), ols.resid, atol=1e-8)

    def test_n_params_includes_intercept(self, regression):
        X, y = regression
        assert FrequentistModel.from_arrays(X, y).n_params == 3
        assert FrequentistModel.from_arrays(X, y, add_intercept=False).n_params == 2

    def test_too_few_observations(self):
        with pytest.raises(ValidationError, match="more observations"):
            FrequentistModel.from_arrays(np.random.randn(3, 2), np.random.randn(3))

    def test_length_mismatch(self):
        with pytest.raises(ValidationError, match="rows"):
            FrequentistModel.from_arrays(np.random.randn(10, 2), np.random.randn(9))


class TestWrapStatsmodels:

    def test_ols_is_frequentist(self, ols):
        model = wrap_model(ols)
        assert isinstance(model, FrequentistModel)
        assert model.model_class == "OLS"
        assert model.n_params == 3
        assert not model.is_bayesian

    def test_intercept_dropped_from_numeric_matrix(self, regression, ols):
        X, _ = regression
        np.testing.assert_array_equal(get_numeric_matrix(ols), X)

    def test_influence_accessor(self, ols):
        np.testing.assert_allclose(
            get_influence_distances(ols), ols.get_influence().cooks_distance[0]
        )

    def test_functional_accessors(self, ols):
        assert is_model(ols)
        assert not is_model(np.zeros(3))
        assert model_class(ols) == "OLS"
        assert not model_is_bayesian(ols)
        with pytest.raises(UnsupportedModelError):
            get_pareto_shape(ols)

    def test_not_a_model(self):
        with pytest.raises(ValidationError, match="Cannot extract"):
            wrap_model("not a model")

    def test_from_statsmodels(self, ols):
        assert isinstance(FrequentistModel.from_statsmodels(ols), FrequentistModel)


class TestCheckModel:

    def test_default_runs_cook_only(self, ols):
        result = check_outliers(ols)
        assert result.detectors == ["Cook"]
        assert result.methods == ["cook", "pareto"]
        assert 0 in result.outlier_indices

    def test_cook_threshold_is_f_median(self, ols):
        result = check_outliers(ols, method="cook")
        assert result.thresholds["cook"] == pytest.approx(stats.f.ppf(0.5, 3, 97))

    def test_model_with_data_methods(self, ols):
        result = check_outliers(ols, method=["cook", "mahalanobis"])
        assert result.detectors == ["Cook", "Mahalanobis"]
        assert result.thresholds["mahalanobis"] == pytest.approx(stats.chi2.ppf(0.975, 2))

    def test_wrapped_model_accepted(self, regression):
        X, y = regression
        result = check_outliers(FrequentistModel.from_arrays(X, y))
        assert result.detectors == ["Cook"]
        assert 0 in result.outlier_indices

    def test_unsupported_model_warns(self, regression):
        X, y = regression
        rlm = sm.RLM(y, sm.add_constant(X)).fit()
        assert isinstance(wrap_model(rlm), UnsupportedModel)
        with pytest.warns(OutlierDetectionWarning, match="RLM"):
            assert check_outliers(rlm) is None

    def test_unsupported_model_silent(self, regression):
        X, y = regression
        rlm = sm.RLM(y, sm.add_constant(X)).fit()
        with warnings.catch_warnings():
            warnings.simplefilter("error", OutlierDetectionWarning)
            assert check_outliers(rlm, verbose=False) is None

    def test_by_not_allowed_with_model(self, ols):
        with pytest.raises(ValidationError, match="by"):
            check_outliers(ols, by=np.zeros(100))


class TestCorrelatedErrors:

    @pytest.fixture
    def gls(self, regression):
        X, y = regression
        return sm.GLS(y, sm.add_constant(X)).fit()

    def test_allowed_method(self, gls):
        result = check_outliers(gls, method="iqr")
        assert result.detectors == ["IQR"]

    def test_disallowed_method_falls_back_to_pareto(self, gls):
        with pytest.warns(OutlierDetectionWarning, match="could be computed"):
            result = check_outliers(gls, method="cook")
        assert result.methods == ["pareto"]
        assert result.detectors == []

    def test_all_restricted(self, gls):
        result = check_outliers(gls, method="all", verbose=False)
        assert result.methods == ["zscore_robust", "iqr", "ci", "pareto", "optics"]
        assert "Cook" not in result.detectors


class TestBayesianModel:

    def test_pareto_k_flags_far_observation(self, posterior):
        log_lik, X = posterior
        k = psis_pareto_k(log_lik)
        assert k.shape == (30,)
        assert np.argmax(k) == 0
        assert k[0] > 0.7
        assert np.median(k[1:]) < 0.7

    def test_check_runs_pareto_only(self, posterior):
        log_lik, X = posterior
        model = BayesianModel.from_log_likelihood(log_lik, X)
        assert model.is_bayesian
        result = check_outliers(model)
        assert result.detectors == ["Pareto"]
        assert 0 in result.outlier_indices

    def test_no_cooks_distance(self, posterior):
        log_lik, X = posterior
        model = BayesianModel.from_log_likelihood(log_lik, X)
        with pytest.raises(UnsupportedModelError):
            get_influence_distances(model)

    def test_few_draws_give_infinite_k(self):
        k = psis_pareto_k(np.random.randn(10, 4))
        assert np.all(np.isinf(k))

    def test_log_lik_must_be_matrix(self):
        with pytest.raises(ValidationError, match="draws"):
            BayesianModel.from_log_likelihood(np.zeros(10), np.zeros(10))

    def test_precomputed_values(self):
        model = BayesianModel(np.zeros((4, 1)), pareto_k=[0.1, 0.9, 0.2, 0.3])
        result = check_outliers(model, method="pareto")
        assert result.outlier_indices == [1]

    def test_wrong_length(self):
        model = BayesianModel(np.zeros((4, 1)), pareto_k=[0.1, 0.9])
        with pytest.raises(ValidationError, match="Pareto-k"):
            model.pareto_shape()

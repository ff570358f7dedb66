"""
Model introspection for post-hoc diagnostics.

fitcheck never fits models itself. Fitted models are wrapped in a small
capability object that exposes just what the diagnostics consume:

- ``FrequentistModel``: numeric design matrix, Cook's distances,
  residuals and log-likelihood.
- ``BayesianModel``: numeric design matrix and PSIS Pareto-k values.
- ``UnsupportedModel``: a model class fitcheck does not handle, with the
  reason.

Example
-------
>>> import statsmodels.api as sm
>>> from fitcheck.models import wrap_model
>>>
>>> results = sm.OLS(y, sm.add_constant(X)).fit()
>>> model = wrap_model(results)
>>> model.influence_distances()  # Cook's distances
"""

from __future__ import annotations

import math
from typing import Any, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import logsumexp

from fitcheck.constants import EPSILON, PSIS_MIN_TAIL, PSIS_MIN_GRID_POINTS
from fitcheck.exceptions import UnsupportedModelError, ValidationError
from fitcheck.validation import coerce_to_float64

__all__ = [
    "INFLUENCE",
    "PARETO",
    "CORRELATED_ERROR_METHODS",
    "ModelCapability",
    "FrequentistModel",
    "BayesianModel",
    "UnsupportedModel",
    "psis_pareto_k",
    "is_model",
    "wrap_model",
    "get_numeric_matrix",
    "get_influence_distances",
    "get_pareto_shape",
    "model_is_bayesian",
    "model_class",
]

INFLUENCE = "influence"
PARETO = "pareto"

# Models with correlated errors only support these detectors
CORRELATED_ERROR_METHODS: Tuple[str, ...] = (
    "zscore_robust",
    "iqr",
    "ci",
    "pareto",
    "optics",
)

_CORRELATED_ERROR_CLASSES = frozenset({"GLS", "GLSAR", "MixedLM"})
_UNSUPPORTED_CLASSES = {
    "RLM": "robust linear models",
    "BinomialBayesMixedGLM": "Bayesian mixed GLMs",
    "PoissonBayesMixedGLM": "Bayesian mixed GLMs",
}


# =============================================================================
# Capability Variants
# =============================================================================

class ModelCapability:
    """
    Base class for wrapped models.

    Parameters
    ----------
    X : array-like, shape (n, k)
        Numeric predictor matrix (without the intercept column).
    column_names : list of str, optional
        Names of the columns of X.
    n_params : int, optional
        Number of estimated coefficients, including the intercept.
        Defaults to the number of columns of X.
    model_class : str
        Name of the wrapped model class, for messages.
    valid_methods : tuple of str, optional
        Restricts which detectors may run on this model.
    """

    capabilities: FrozenSet[str] = frozenset()
    is_bayesian = False

    def __init__(
        self,
        X: Any,
        column_names: Optional[List[str]] = None,
        n_params: Optional[int] = None,
        model_class: str = "model",
        valid_methods: Optional[Tuple[str, ...]] = None,
    ):
        X = coerce_to_float64(X, name="design matrix", allow_nan=True)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        self._X = X
        self.column_names = column_names or [f"x{i}" for i in range(X.shape[1])]
        self.n_params = n_params if n_params is not None else X.shape[1]
        self.model_class = model_class
        self.valid_methods = valid_methods

    @property
    def n_obs(self) -> int:
        return self._X.shape[0]

    def numeric_matrix(self) -> np.ndarray:
        return self._X

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}: {self.model_class}, "
            f"{self.n_obs} observations, {self.n_params} parameters>"
        )


class FrequentistModel(ModelCapability):
    """
    A fitted frequentist regression model.

    Parameters
    ----------
    X : array-like, shape (n, k)
        Numeric predictor matrix.
    cooks_distance : array-like or callable
        Cook's distances, or a zero-argument callable computing them.
    residuals : array-like, optional
        Response residuals.
    loglik : float, optional
        Maximized log-likelihood.
    **kwargs
        Passed to ``ModelCapability``.
    """

    capabilities = frozenset({INFLUENCE})

    def __init__(
        self,
        X: Any,
        cooks_distance: Any,
        residuals: Optional[Any] = None,
        loglik: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(X, **kwargs)
        self._cooks = cooks_distance
        self._residuals = None if residuals is None else np.asarray(residuals, dtype=np.float64)
        self.loglik = loglik

    def influence_distances(self) -> np.ndarray:
        """Cook's distance for each observation."""
        if callable(self._cooks):
            self._cooks = self._cooks()
        d = np.asarray(self._cooks, dtype=np.float64)
        if d.shape != (self.n_obs,):
            raise ValidationError(
                f"Expected {self.n_obs} Cook's distances, got shape {d.shape}."
            )
        return d

    def residuals(self) -> np.ndarray:
        if self._residuals is None:
            raise UnsupportedModelError(f"No residuals available for {self.model_class}.")
        return self._residuals

    @classmethod
    def from_arrays(
        cls,
        X: Any,
        y: Any,
        add_intercept: bool = True,
        column_names: Optional[List[str]] = None,
    ) -> "FrequentistModel":
        """
        Fit ordinary least squares and keep its diagnostics.

        Parameters
        ----------
        X : array-like, shape (n, k)
            Predictors.
        y : array-like, shape (n,)
            Response.
        add_intercept : bool
            Prepend a column of ones to the design matrix.
        column_names : list of str, optional
            Names of the predictors.
        """
        X = coerce_to_float64(X, name="X", allow_nan=False)
        y = coerce_to_float64(y, name="y", allow_nan=False)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if len(y) != X.shape[0]:
            raise ValidationError(
                f"X has {X.shape[0]} rows but y has {len(y)} values."
            )

        design = np.column_stack([np.ones(len(y)), X]) if add_intercept else X
        n, p = design.shape
        if n <= p:
            raise ValidationError(
                f"Need more observations ({n}) than parameters ({p}) to compute influence."
            )

        beta, *_ = np.linalg.lstsq(design, y, rcond=None)
        resid = y - design @ beta
        rss = float(resid @ resid)

        # Leverage: diagonal of the hat matrix
        xtx_inv = np.linalg.pinv(design.T @ design)
        h = np.einsum("ij,jk,ik->i", design, xtx_inv, design)
        s2 = rss / (n - p)
        with np.errstate(divide="ignore", invalid="ignore"):
            cooks = resid ** 2 / (p * s2) * h / (1 - h) ** 2

        loglik = -n / 2 * (math.log(2 * math.pi) + math.log(rss / n) + 1)
        return cls(
            X,
            cooks_distance=cooks,
            residuals=resid,
            loglik=loglik,
            column_names=column_names,
            n_params=p,
            model_class="OLS",
        )

    @classmethod
    def from_statsmodels(cls, results: Any) -> "ModelCapability":
        """Wrap a fitted statsmodels results object."""
        return wrap_model(results)


class BayesianModel(ModelCapability):
    """
    A fitted Bayesian model.

    Parameters
    ----------
    X : array-like, shape (n, k)
        Numeric predictor matrix.
    pareto_k : array-like or callable
        Per-observation Pareto-k values, or a zero-argument callable
        computing them.
    **kwargs
        Passed to ``ModelCapability``.
    """

    capabilities = frozenset({PARETO})
    is_bayesian = True

    def __init__(self, X: Any, pareto_k: Any, **kwargs):
        super().__init__(X, **kwargs)
        self._pareto_k = pareto_k

    def pareto_shape(self) -> np.ndarray:
        """Generalized Pareto shape estimate for each observation."""
        if callable(self._pareto_k):
            self._pareto_k = self._pareto_k()
        k = np.asarray(self._pareto_k, dtype=np.float64)
        if k.shape != (self.n_obs,):
            raise ValidationError(
                f"Expected {self.n_obs} Pareto-k values, got shape {k.shape}."
            )
        return k

    @classmethod
    def from_log_likelihood(
        cls,
        log_lik: Any,
        X: Any,
        column_names: Optional[List[str]] = None,
        n_params: Optional[int] = None,
    ) -> "BayesianModel":
        """
        Build from a pointwise log-likelihood matrix.

        Parameters
        ----------
        log_lik : array-like, shape (n_draws, n_obs)
            Log-likelihood of each observation under each posterior draw.
        X : array-like, shape (n_obs, k)
            Numeric predictor matrix.
        """
        log_lik = coerce_to_float64(log_lik, name="log_lik", allow_nan=False)
        if log_lik.ndim != 2:
            raise ValidationError(
                f"log_lik must be a (draws, observations) matrix, got {log_lik.ndim} dimensions."
            )
        return cls(
            X,
            pareto_k=lambda: psis_pareto_k(log_lik),
            column_names=column_names,
            n_params=n_params,
            model_class="Bayesian",
        )


class UnsupportedModel(ModelCapability):
    """A model class that outlier detection does not handle."""

    def __init__(self, model_class: str, reason: str = ""):
        self.model_class = model_class
        self.reason = reason
        self.column_names = []
        self.n_params = 0
        self.valid_methods = ()

    @property
    def n_obs(self) -> int:
        return 0

    def numeric_matrix(self) -> np.ndarray:
        raise UnsupportedModelError(self.message)

    @property
    def message(self) -> str:
        msg = f"`check_outliers()` does not yet support models of class {self.model_class}"
        if self.reason:
            msg += f" ({self.reason})"
        return msg + "."


# =============================================================================
# Pareto smoothed importance sampling
# =============================================================================

def _gpd_shape(x: np.ndarray) -> float:
    """
    Shape of a generalized Pareto fit to sorted exceedances.

    Empirical Bayes estimate of Zhang and Stephens (2009) with a weakly
    informative prior pulling the shape towards 0.5.
    """
    n = len(x)
    if x[-1] <= EPSILON:
        return math.nan
    prior = 3.0
    m = PSIS_MIN_GRID_POINTS + int(math.floor(math.sqrt(n)))
    jj = np.arange(1, m + 1)
    xstar = x[int(math.floor(n / 4 + 0.5)) - 1]
    if xstar <= 0:
        xstar = x[x > 0][0]
    theta = 1 / x[-1] + (1 - np.sqrt(m / (jj - 0.5))) / prior / xstar

    with np.errstate(divide="ignore", invalid="ignore"):
        k = np.mean(np.log1p(-theta[:, None] * x[None, :]), axis=1)
        l_theta = n * (np.log(-theta / k) - k - 1)
    l_theta[~np.isfinite(l_theta)] = -np.inf
    w = np.exp(l_theta - logsumexp(l_theta))
    theta_hat = float(np.sum(theta * w))

    k_hat = float(np.mean(np.log1p(-theta_hat * x)))
    return (k_hat * n + 0.5 * 10) / (n + 10)


def psis_pareto_k(log_lik: np.ndarray) -> np.ndarray:
    """
    PSIS-LOO Pareto-k diagnostic per observation.

    Parameters
    ----------
    log_lik : np.ndarray, shape (n_draws, n_obs)
        Pointwise log-likelihood.

    Returns
    -------
    np.ndarray, shape (n_obs,)
        Shape estimate of the generalized Pareto distribution fit to the
        upper tail of the leave-one-out importance ratios. Values above 0.7
        indicate unreliable importance sampling, i.e. influential points.
    """
    n_draws, n_obs = log_lik.shape
    tail_len = int(math.ceil(min(0.2 * n_draws, 3 * math.sqrt(n_draws))))
    out = np.full(n_obs, np.inf)
    if tail_len < PSIS_MIN_TAIL:
        return out
    for i in range(n_obs):
        log_ratios = -log_lik[:, i]
        log_ratios = np.sort(log_ratios - log_ratios.max())
        cutoff = log_ratios[-tail_len - 1]
        tail = np.exp(log_ratios[-tail_len:]) - np.exp(cutoff)
        out[i] = _gpd_shape(tail)
    return out


# =============================================================================
# Adapters
# =============================================================================

def _class_name(obj: Any) -> str:
    return type(obj).__name__


def is_model(obj: Any) -> bool:
    """Whether ``obj`` is a wrapped model or a fitted statsmodels results object."""
    if isinstance(obj, ModelCapability):
        return True
    module = type(obj).__module__ or ""
    return module.startswith("statsmodels") and hasattr(obj, "model") and hasattr(obj, "params")


def _non_constant(exog: np.ndarray, names: Sequence[str]) -> Tuple[np.ndarray, List[str]]:
    keep = np.ptp(exog, axis=0) > EPSILON
    return exog[:, keep], [n for n, k in zip(names, keep) if k]


def wrap_model(obj: Any) -> ModelCapability:
    """
    Wrap a fitted model in its capability object.

    Parameters
    ----------
    obj : ModelCapability or statsmodels results
        A fitted model.

    Returns
    -------
    ModelCapability
        ``FrequentistModel`` for statsmodels regression results (restricted
        to ``CORRELATED_ERROR_METHODS`` for GLS, GLSAR and mixed models),
        ``UnsupportedModel`` for robust linear models and Bayesian mixed GLMs.

    Raises
    ------
    ValidationError
        If ``obj`` is not a recognized model.
    """
    if isinstance(obj, ModelCapability):
        return obj
    if not is_model(obj):
        raise ValidationError(
            f"Cannot extract model information from an object of class {_class_name(obj)}."
        )

    sm_model = obj.model
    model_name = _class_name(sm_model)
    if model_name in _UNSUPPORTED_CLASSES:
        return UnsupportedModel(model_name, _UNSUPPORTED_CLASSES[model_name])

    exog = np.asarray(sm_model.exog, dtype=np.float64)
    names = list(getattr(sm_model, "exog_names", None) or [f"x{i}" for i in range(exog.shape[1])])
    X, names = _non_constant(exog, names)

    valid = CORRELATED_ERROR_METHODS if model_name in _CORRELATED_ERROR_CLASSES else None

    def _cooks() -> np.ndarray:
        if not hasattr(obj, "get_influence"):
            raise UnsupportedModelError(f"{model_name} results do not provide influence measures.")
        return np.asarray(obj.get_influence().cooks_distance[0])

    resid = getattr(obj, "resid", None)
    return FrequentistModel(
        X,
        cooks_distance=_cooks,
        residuals=None if resid is None else np.asarray(resid),
        loglik=getattr(obj, "llf", None),
        column_names=names,
        n_params=exog.shape[1],
        model_class=model_name,
        valid_methods=valid,
    )


# =============================================================================
# Functional accessors
# =============================================================================

def get_numeric_matrix(model: Any) -> np.ndarray:
    return wrap_model(model).numeric_matrix()


def get_influence_distances(model: Any) -> np.ndarray:
    m = wrap_model(model)
    if not m.supports(INFLUENCE):
        raise UnsupportedModelError(
            f"Influence distances are not available for {m.model_class} models."
        )
    return m.influence_distances()


def get_pareto_shape(model: Any) -> np.ndarray:
    m = wrap_model(model)
    if not m.supports(PARETO):
        raise UnsupportedModelError(
            f"Pareto-k values are only available for Bayesian models, not {m.model_class}."
        )
    return m.pareto_shape()


def model_is_bayesian(model: Any) -> bool:
    return wrap_model(model).is_bayesian


def model_class(model: Any) -> str:
    return wrap_model(model).model_class

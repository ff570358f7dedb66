"""
fitcheck: Outlier Detection for Data and Fitted Models
======================================================

Checks datasets and fitted regression models for outliers with a panel
of univariate, multivariate, density-based and model-based detectors, and
combines their votes into a single composite score.

Quick Start
-----------
>>> import fitcheck as fc
>>> import numpy as np
>>>
>>> np.random.seed(42)
>>> X = np.random.randn(100, 3)
>>> X[0] = [8, 8, 8]
>>>
>>> result = fc.check_outliers(X, method=["mahalanobis", "zscore_robust"])
>>> print(result)
>>> result.to_frame()  # per-method distances and the composite score

Available Methods
-----------------
- **zscore**, **zscore_robust**: per-column standardized distance
- **iqr**: Tukey's fences
- **ci** / **eti**, **hdi**, **bci**: outside an interval of each column
- **mahalanobis**, **mahalanobis_robust**: distance to the centroid
- **mcd**: Minimum Covariance Determinant distance
- **ics**: Invariant Coordinate Selection distance
- **optics**, **lof**: density-based
- **cook**: Cook's distance (frequentist models)
- **pareto**: PSIS Pareto-k (Bayesian models)

Fitted Models
-------------
>>> import statsmodels.api as sm
>>> results = sm.OLS(y, sm.add_constant(X)).fit()
>>> fc.check_outliers(results)  # Cook's distance
"""

__version__ = "0.1.0"

from fitcheck.outliers import (
    Method,
    OutlierResult,
    check_outliers,
    detect_outliers,
    default_thresholds,
    resolve_thresholds,
)
from fitcheck.models import (
    FrequentistModel,
    BayesianModel,
    UnsupportedModel,
    wrap_model,
    psis_pareto_k,
)
from fitcheck.performance import ModelPerformance, model_performance
from fitcheck.exceptions import (
    FitCheckError,
    ValidationError,
    UnsupportedModelError,
    DetectorError,
    DependencyUnavailableError,
    OutlierDetectionWarning,
)

__all__ = [
    "__version__",
    # Outlier detection
    "check_outliers",
    "detect_outliers",
    "OutlierResult",
    "Method",
    "default_thresholds",
    "resolve_thresholds",
    # Models
    "FrequentistModel",
    "BayesianModel",
    "UnsupportedModel",
    "wrap_model",
    "psis_pareto_k",
    "ModelPerformance",
    "model_performance",
    # Exceptions
    "FitCheckError",
    "ValidationError",
    "UnsupportedModelError",
    "DetectorError",
    "DependencyUnavailableError",
    "OutlierDetectionWarning",
]

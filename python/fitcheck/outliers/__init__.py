"""
fitcheck Outlier Detection Package
==================================

Locates influential observations with several distance and clustering
methods and combines them into a composite outlier score.

Features:
- Univariate detectors (Z-scores, Tukey's fences, equal-tailed / highest
  density / bias-corrected intervals)
- Multivariate detectors (Mahalanobis, robust OGK Mahalanobis, MCD, ICS)
- Density and clustering detectors (OPTICS, Local Outlier Factor)
- Model-based detectors (Cook's distance, PSIS Pareto-k)
- Grouped checks, optionally run concurrently

Usage:
------
>>> import polars as pl
>>> from fitcheck.outliers import check_outliers
>>> result = check_outliers(data, method=["mahalanobis", "iqr", "zscore"])
>>> print(result)
>>> result.to_frame()  # per-method distances and the composite score
"""

from fitcheck.outliers.methods import Method, ALL_DATA_METHODS, MODEL_METHODS, parse_methods
from fitcheck.outliers.thresholds import THRESHOLD_KEYS, default_thresholds, resolve_thresholds
from fitcheck.outliers.result import OutlierResult
from fitcheck.outliers.api import check_outliers, detect_outliers, aggregate

__all__ = [
    "Method",
    "ALL_DATA_METHODS",
    "MODEL_METHODS",
    "parse_methods",
    "THRESHOLD_KEYS",
    "default_thresholds",
    "resolve_thresholds",
    "OutlierResult",
    "check_outliers",
    "detect_outliers",
    "aggregate",
]

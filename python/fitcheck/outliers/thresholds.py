"""
Default decision thresholds for the outlier detectors.

Defaults depend on the shape of the observation matrix: chi-squared cutoffs
use one degree of freedom per column, the Cook's distance cutoff is the
median of an F(p, n - p) distribution, and the OPTICS neighbourhood grows
with the number of columns.
"""

from __future__ import annotations

import math
import numbers
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np
from scipy import stats

from fitcheck.constants import (
    DEFAULT_TAIL_PROBABILITY,
    DEFAULT_IQR_MULTIPLIER,
    DEFAULT_CI_LEVEL,
    DEFAULT_PARETO_K,
    DEFAULT_COOK_QUANTILE,
    DEFAULT_OPTICS_MULTIPLIER,
)
from fitcheck.exceptions import ValidationError
from fitcheck.outliers.methods import Method

__all__ = [
    "THRESHOLD_KEYS",
    "ThresholdOverride",
    "default_thresholds",
    "resolve_thresholds",
]

THRESHOLD_KEYS: Tuple[str, ...] = (
    "zscore",
    "iqr",
    "ci",
    "cook",
    "pareto",
    "mahalanobis",
    "robust",
    "mcd",
    "ics",
    "optics",
    "lof",
)

ThresholdOverride = Union[None, float, Mapping[str, float]]


def _shape(data: Any) -> Tuple[int, int]:
    if isinstance(data, tuple) and len(data) == 2:
        return int(data[0]), int(data[1])
    arr = np.asarray(data) if not hasattr(data, "shape") else data
    if len(arr.shape) == 1:
        return int(arr.shape[0]), 1
    return int(arr.shape[0]), int(arr.shape[1])


def _f_median(p: int, n: int) -> float:
    # Undefined when there are no residual degrees of freedom
    if p < 1 or n - p < 1:
        return float("nan")
    return float(stats.f.ppf(DEFAULT_COOK_QUANTILE, p, n - p))


def default_thresholds(n_obs: int, n_cols: int, n_params: Optional[int] = None) -> Dict[str, float]:
    """
    Compute the default threshold table for an ``n_obs x n_cols`` matrix.

    Parameters
    ----------
    n_obs : int
        Number of observations (rows).
    n_cols : int
        Number of numeric columns.
    n_params : int, optional
        Number of model parameters, used for the Cook's distance cutoff.
        Defaults to ``n_cols``.

    Returns
    -------
    dict
        Threshold per key in ``THRESHOLD_KEYS``.
    """
    chisq = float(stats.chi2.ppf(1 - DEFAULT_TAIL_PROBABILITY, df=n_cols))
    return {
        "zscore": float(stats.norm.ppf(1 - DEFAULT_TAIL_PROBABILITY)),
        "iqr": DEFAULT_IQR_MULTIPLIER,
        "ci": DEFAULT_CI_LEVEL,
        "cook": _f_median(n_params if n_params is not None else n_cols, n_obs),
        "pareto": DEFAULT_PARETO_K,
        "mahalanobis": chisq,
        "robust": chisq,
        "mcd": chisq,
        "ics": DEFAULT_TAIL_PROBABILITY,
        "optics": DEFAULT_OPTICS_MULTIPLIER * n_cols,
        "lof": DEFAULT_TAIL_PROBABILITY,
    }


def _override_key(key: Any) -> str:
    if isinstance(key, Method):
        return key.threshold_key
    if isinstance(key, str):
        k = key.strip().lower()
        if k in THRESHOLD_KEYS:
            return k
        if k == "mahalanobis_robust":
            return "robust"
        try:
            return Method(k).threshold_key
        except ValueError:
            pass
    raise ValidationError(
        f"Unknown threshold key {key!r}. Valid keys: {list(THRESHOLD_KEYS)}."
    )


def _check_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(
            f"Threshold for '{name}' must be a number, got {type(value).__name__}: {value!r}"
        )
    value = float(value)
    if math.isnan(value):
        raise ValidationError(f"Threshold for '{name}' is NaN.")
    return value


def resolve_thresholds(
    data: Any,
    overrides: ThresholdOverride = None,
    n_params: Optional[int] = None,
) -> Dict[str, float]:
    """
    Resolve the threshold table for a dataset.

    Parameters
    ----------
    data : array-like or (n_obs, n_cols) tuple
        The observation matrix, or just its shape.
    overrides : None, number or mapping
        ``None`` keeps every default. A mapping replaces the entries it
        names; method names are accepted for their threshold key
        (``"mahalanobis_robust"`` sets ``"robust"``, ``"hdi"`` sets
        ``"ci"``). A single number replaces every entry.
    n_params : int, optional
        Number of model parameters for the Cook's distance cutoff.

    Returns
    -------
    dict
        The resolved threshold table.

    Raises
    ------
    ValidationError
        If ``overrides`` has any other shape, an unknown key or a
        non-numeric value.

    Examples
    --------
    >>> resolve_thresholds((100, 2))["mahalanobis"]  # doctest: +ELLIPSIS
    7.37...
    >>> resolve_thresholds((100, 2), 2)["iqr"]
    2.0
    """
    n_obs, n_cols = _shape(data)
    thresholds = default_thresholds(n_obs, n_cols, n_params=n_params)

    if overrides is None:
        return thresholds

    if isinstance(overrides, Mapping):
        for key, value in overrides.items():
            k = _override_key(key)
            thresholds[k] = _check_number(value, k)
        return thresholds

    if isinstance(overrides, numbers.Real) and not isinstance(overrides, bool):
        value = _check_number(overrides, "all methods")
        return {k: value for k in thresholds}

    raise ValidationError(
        "The `threshold` argument must be None (for default values), a number "
        "(applied to every method) or a mapping of threshold values for the "
        "desired methods (e.g., {'mahalanobis': 7}). "
        f"Got {type(overrides).__name__}."
    )

"""
Univariate outlier detectors.

These detectors work column by column and then summarise each row across
columns: an observation that is extreme on at least one variable can be
flagged. Missing values are excluded from the column statistics; a row
whose values are all missing gets a NaN distance and is never flagged.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from scipy import stats

from fitcheck.constants import (
    DEFAULT_IQR_MULTIPLIER,
    DEFAULT_CI_LEVEL,
    EPSILON,
)
from fitcheck.exceptions import ValidationError

__all__ = [
    "zscore_distance",
    "detect_zscore",
    "detect_iqr",
    "eti_interval",
    "hdi_interval",
    "bci_interval",
    "detect_interval",
]

DetectorOutput = Tuple[np.ndarray, np.ndarray]


def _row_reduce(values: np.ndarray, reducer) -> np.ndarray:
    """Reduce each row ignoring NaN; all-NaN rows give NaN."""
    out = np.full(values.shape[0], np.nan)
    has_value = ~np.all(np.isnan(values), axis=1)
    if np.any(has_value):
        out[has_value] = reducer(values[has_value], axis=1)
    return out


def _column_reduce(X: np.ndarray, reducer) -> np.ndarray:
    """Column statistic over the columns holding at least one value; others give NaN."""
    out = np.full(X.shape[1], np.nan)
    has_value = ~np.all(np.isnan(X), axis=0)
    if np.any(has_value):
        out[has_value] = reducer(X[:, has_value])
    return out


def _flag(distance: np.ndarray, threshold: float) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        return np.where(distance > threshold, 1.0, 0.0)


# =============================================================================
# Z-scores
# =============================================================================

def zscore_distance(X: np.ndarray, robust: bool = False) -> np.ndarray:
    """
    Absolute standardized values, column by column.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix.
    robust : bool
        Standardize with median and MAD (scaled to the normal SD) instead
        of mean and standard deviation.

    Returns
    -------
    np.ndarray, shape (n, k)
        ``|x - center| / scale``. A column with zero spread gives 0 where
        the value equals the center and inf elsewhere.
    """
    if robust:
        center = _column_reduce(X, lambda A: np.nanmedian(A, axis=0))
        scale = _column_reduce(
            X, lambda A: stats.median_abs_deviation(A, axis=0, scale="normal", nan_policy="omit")
        )
    else:
        center = _column_reduce(X, lambda A: np.nanmean(A, axis=0))
        scale = _column_reduce(X, lambda A: np.nanstd(A, axis=0))

    dev = np.abs(X - center)
    with np.errstate(divide="ignore", invalid="ignore"):
        z = dev / scale
    # 0 / 0 on a constant column means "at the center"
    z[(dev == 0) & (scale < EPSILON)] = 0.0
    return z


def detect_zscore(X: np.ndarray, threshold: float, robust: bool = False) -> DetectorOutput:
    """
    Z-score detector: row-wise maximum absolute Z-score.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix.
    threshold : float
        Cutoff on the maximum absolute Z-score.
    robust : bool
        Use median/MAD instead of mean/SD.

    Returns
    -------
    (distance, flag)
        Per-observation maximum |z| and 0/1 flags.
    """
    distance = _row_reduce(zscore_distance(X, robust=robust), np.nanmax)
    return distance, _flag(distance, threshold)


# =============================================================================
# Tukey fences
# =============================================================================

def detect_iqr(X: np.ndarray, threshold: float = DEFAULT_IQR_MULTIPLIER) -> DetectorOutput:
    """
    Tukey's fences: values beyond ``threshold`` IQRs from the quartiles.

    The distance is the fraction of columns on which the observation lies
    outside the fences; the flag is set when it does so on any column.
    """
    q1 = _column_reduce(X, lambda A: np.nanquantile(A, 0.25, axis=0))
    q3 = _column_reduce(X, lambda A: np.nanquantile(A, 0.75, axis=0))
    iqr = q3 - q1
    lower = q1 - threshold * iqr
    upper = q3 + threshold * iqr

    with np.errstate(invalid="ignore"):
        outside = ((X < lower) | (X > upper)).astype(np.float64)
    outside[np.isnan(X)] = np.nan

    distance = _row_reduce(outside, np.nanmean)
    flag = _row_reduce(outside, np.nanmax)
    return distance, np.nan_to_num(flag, nan=0.0)


# =============================================================================
# Interval-based
# =============================================================================

def eti_interval(x: np.ndarray, ci: float = DEFAULT_CI_LEVEL) -> Tuple[float, float]:
    """Equal-tailed interval: the (1-ci)/2 and (1+ci)/2 quantiles."""
    x = x[~np.isnan(x)]
    if len(x) == 0:
        return math.nan, math.nan
    low, high = np.quantile(x, [(1 - ci) / 2, (1 + ci) / 2])
    return float(low), float(high)


def hdi_interval(x: np.ndarray, ci: float = DEFAULT_CI_LEVEL) -> Tuple[float, float]:
    """
    Highest density interval: the narrowest window holding ``ci`` of the values.

    Returns NaN bounds when the sample is too small to hold a window.
    """
    x = np.sort(x[~np.isnan(x)])
    window = int(math.ceil(ci * len(x)))
    n_windows = len(x) - window
    if window < 2 or n_windows < 1:
        return math.nan, math.nan
    widths = x[window:window + n_windows] - x[:n_windows]
    i = int(np.argmin(widths))
    return float(x[i]), float(x[i + window])


def bci_interval(x: np.ndarray, ci: float = DEFAULT_CI_LEVEL) -> Tuple[float, float]:
    """
    Bias-corrected and accelerated interval.

    The bias correction comes from the share of values below the mean and
    the acceleration from the skewness of the jackknife-style deviations.
    """
    x = x[~np.isnan(x)]
    n = len(x)
    if n == 0:
        return math.nan, math.nan
    low = (1 - ci) / 2
    high = 1 - low

    z0 = stats.norm.ppf(np.sum(x < np.mean(x)) / n)
    u = (n - 1) * (np.mean(x) - x)
    denom = 6 * np.sum(u ** 2) ** 1.5
    accel = np.sum(u ** 3) / denom if denom > 0 else 0.0

    def _adjusted(p: float) -> float:
        zp = stats.norm.ppf(p)
        return float(stats.norm.cdf(z0 + (z0 + zp) / (1 - accel * (z0 + zp))))

    p_low, p_high = _adjusted(low), _adjusted(high)
    if not (np.isfinite(p_low) and np.isfinite(p_high)):
        return math.nan, math.nan
    lo, hi = np.quantile(x, [p_low, p_high])
    return float(lo), float(hi)


_INTERVALS = {
    "eti": eti_interval,
    "ci": eti_interval,
    "hdi": hdi_interval,
    "bci": bci_interval,
}


def detect_interval(X: np.ndarray, threshold: float = DEFAULT_CI_LEVEL, kind: str = "eti") -> DetectorOutput:
    """
    Interval detector: values outside a per-column interval of coverage ``threshold``.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix.
    threshold : float
        Interval coverage, in (0, 1).
    kind : {"eti", "hdi", "bci"}
        Interval type.

    Returns
    -------
    (distance, flag)
        Fraction of columns outside their interval, and 1 when that
        fraction is positive.
    """
    if kind not in _INTERVALS:
        raise ValidationError(f"Unknown interval type '{kind}'. Use one of {sorted(_INTERVALS)}.")
    if not 0 < threshold < 1:
        raise ValidationError(
            f"Interval coverage for '{kind}' must be in (0, 1), got {threshold}."
        )

    interval = _INTERVALS[kind]
    outside = np.full(X.shape, np.nan)
    for j in range(X.shape[1]):
        col = X[:, j]
        lo, hi = interval(col, threshold)
        if np.isnan(lo) or np.isnan(hi):
            continue
        valid = ~np.isnan(col)
        outside[valid, j] = ((col[valid] < lo) | (col[valid] > hi)).astype(np.float64)

    distance = _row_reduce(outside, np.nanmean)
    return distance, _flag(distance, 0.0)

"""
Density and clustering based outlier detectors (scikit-learn backed).
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy import stats

from fitcheck.constants import OPTICS_XI
from fitcheck.exceptions import ValidationError

__all__ = [
    "detect_optics",
    "detect_lof",
]

DetectorOutput = Tuple[np.ndarray, np.ndarray]


def _complete(X: np.ndarray, detector: str) -> np.ndarray:
    complete = ~np.isnan(X).any(axis=1)
    if complete.sum() < 2:
        raise ValidationError(f"Detector '{detector}' needs at least 2 complete observations.")
    return complete


def detect_optics(X: np.ndarray, threshold: float, xi: float = OPTICS_XI) -> DetectorOutput:
    """
    OPTICS detector.

    ``threshold`` is the minimum cluster size (``min_samples``). The
    distance is the core distance; observations left in the noise cluster
    by the xi extraction are flagged. When no cluster structure is found
    nothing is flagged.
    """
    from sklearn.cluster import OPTICS

    complete = _complete(X, "optics")
    n_complete = int(complete.sum())
    min_samples = int(round(threshold))
    if min_samples < 2:
        raise ValidationError(f"OPTICS min_samples must be at least 2, got {threshold}.")
    min_samples = min(min_samples, n_complete)

    # Infinite reachability for isolated points is expected here
    with np.errstate(divide="ignore", invalid="ignore"):
        rez = OPTICS(min_samples=min_samples, cluster_method="xi", xi=xi).fit(X[complete])

    distance = np.full(X.shape[0], np.nan)
    distance[complete] = rez.core_distances_
    flag = np.zeros(X.shape[0])
    labels = rez.labels_
    if np.any(labels >= 0):
        flag[complete] = (labels == -1).astype(np.float64)
    return distance, flag


def detect_lof(X: np.ndarray, threshold: float) -> DetectorOutput:
    """
    Local Outlier Factor detector.

    The distance is ``log(LOF)`` with ``k - 1`` neighbours (k = number of
    columns). Observations further than ``norm.ppf(1 - threshold)``
    standard deviations of that log-distance are flagged.
    """
    from sklearn.neighbors import LocalOutlierFactor

    n_neighbors = X.shape[1] - 1
    if n_neighbors < 1:
        raise ValidationError(
            f"Detector 'lof' requires at least 2 numeric columns, got {X.shape[1]}."
        )
    if not 0 < threshold < 1:
        raise ValidationError(f"LOF tail probability must be in (0, 1), got {threshold}.")

    complete = _complete(X, "lof")
    n_neighbors = min(n_neighbors, int(complete.sum()) - 1)
    lof = LocalOutlierFactor(n_neighbors=n_neighbors).fit(X[complete])

    distance = np.full(X.shape[0], np.nan)
    distance[complete] = np.log(-lof.negative_outlier_factor_)

    cutoff = stats.norm.ppf(1 - threshold) * np.nanstd(distance, ddof=1)
    with np.errstate(invalid="ignore"):
        flag = np.where(distance > cutoff, 1.0, 0.0)
    return distance, flag

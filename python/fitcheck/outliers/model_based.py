"""
Detectors that need the fitted model rather than a data matrix.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from fitcheck.models import FrequentistModel, BayesianModel

__all__ = ["detect_cook", "detect_pareto"]


def _flag(distance: np.ndarray, threshold: float) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        return np.where(distance > threshold, 1.0, 0.0)


def detect_cook(model: FrequentistModel, threshold: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cook's distance detector.

    Cook's distance is in the metric of an F(p, n - p) distribution, so the
    default cutoff is its median.
    """
    distance = model.influence_distances()
    return distance, _flag(distance, threshold)


def detect_pareto(model: BayesianModel, threshold: float) -> Tuple[np.ndarray, np.ndarray]:
    """Pareto-k detector: observations whose PSIS shape estimate exceeds ``threshold``."""
    distance = model.pareto_shape()
    return distance, _flag(distance, threshold)

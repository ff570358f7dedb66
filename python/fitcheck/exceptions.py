"""
Custom exceptions for fitcheck with actionable error messages.

This module provides a hierarchy of exceptions that give users clear
guidance on how to resolve issues.
"""

__all__ = [
    "FitCheckError",
    "ValidationError",
    "UnsupportedModelError",
    "DetectorError",
    "DependencyUnavailableError",
    "OutlierDetectionWarning",
    "wrap_detector_error",
]


class FitCheckError(Exception):
    """Base exception for all fitcheck errors."""
    pass


class ValidationError(FitCheckError):
    """
    Input validation error.

    Common causes:
    - Unknown outlier detection method
    - Malformed threshold overrides
    - No numeric columns in the data
    - Too few columns for a multivariate detector
    """
    pass


class UnsupportedModelError(FitCheckError):
    """
    The model does not provide what a diagnostic needs.

    Common causes:
    - Asking a Bayesian model for Cook's distance
    - Asking a frequentist model for Pareto-k values
    - Model classes fitcheck does not handle (robust linear models)
    """
    pass


class DetectorError(FitCheckError):
    """
    A single outlier detector failed to compute its distances.

    The aggregation catches this at the detector boundary, warns,
    and continues with the remaining detectors.
    """
    pass


class DependencyUnavailableError(DetectorError):
    """
    An optional library required by a detector is not installed.

    Try:
    - pip install scikit-learn
    """
    pass


class OutlierDetectionWarning(UserWarning):
    """Warning emitted when a detector is skipped or degrades."""
    pass


def wrap_detector_error(original_error: Exception, detector: str) -> DetectorError:
    """
    Wrap a low-level error raised inside a detector.

    Parameters
    ----------
    original_error : Exception
        The original exception
    detector : str
        Name of the detector that failed

    Returns
    -------
    DetectorError
        Wrapped exception naming the detector
    """
    if isinstance(original_error, DetectorError):
        return original_error

    msg = str(original_error).lower()

    if "singular" in msg or "positive definite" in msg:
        return DetectorError(
            f"Detector '{detector}' failed: covariance matrix is singular. "
            f"This usually means:\n"
            f"  1. Perfectly collinear columns\n"
            f"  2. A constant column\n"
            f"  3. Fewer observations than columns\n"
            f"Original error: {original_error}"
        )

    return DetectorError(
        f"Detector '{detector}' failed.\n"
        f"Original error: {original_error}"
    )

"""
Input validation for outlier detection.

Turns the many shapes callers hand us (polars DataFrames, numpy arrays,
plain sequences) into a float64 observation matrix with column names,
and catches common data issues early with actionable error messages.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl
import polars.selectors as cs

from fitcheck.exceptions import ValidationError


__all__ = [
    "coerce_to_float64",
    "as_numeric_matrix",
    "validate_min_columns",
    "validate_group_labels",
]


# =============================================================================
# Array Coercion
# =============================================================================

def coerce_to_float64(
    arr: Any,
    name: str = "array",
    allow_nan: bool = True,
    allow_inf: bool = False,
) -> np.ndarray:
    """
    Convert observations or model quantities to a float64 array.

    Parameters
    ----------
    arr : array-like
        Values to convert; integers, floats and numeric objects are accepted.
    name : str
        What the values are, for error messages ("data", "log_lik", ...).
    allow_nan : bool
        Accept missing values. Detectors skip them, model fits cannot.
    allow_inf : bool
        Accept infinite values.

    Returns
    -------
    np.ndarray
        The values as float64.

    Raises
    ------
    ValidationError
        If the values are not numeric, or contain disallowed NaN or Inf.
    """
    try:
        values = np.asarray(arr, dtype=np.float64)
    except (ValueError, TypeError) as e:
        raise ValidationError(
            f"{name} cannot be converted to numeric values; outlier checks "
            f"only use numeric variables. Error: {e}"
        ) from e

    if not allow_nan and np.isnan(values).any():
        n_missing = int(np.isnan(values).sum())
        raise ValidationError(
            f"{name} has {n_missing} NaN values out of {values.size}. "
            "Drop incomplete observations before fitting."
        )

    if not allow_inf and np.isinf(values).any():
        raise ValidationError(
            f"{name} has {int(np.isinf(values).sum())} infinite values. "
            "Replace them with finite values or drop those observations."
        )

    return values


# =============================================================================
# Observation Matrix
# =============================================================================

def as_numeric_matrix(
    data: Any,
    exclude: Optional[Sequence[str]] = None,
) -> Tuple[np.ndarray, List[str]]:
    """
    Extract the numeric observation matrix from a dataset.

    Non-numeric columns of a DataFrame are dropped. A 1-D input becomes a
    single column named ``x``; unnamed 2-D columns are named ``x0, x1, ...``.

    Parameters
    ----------
    data : pl.DataFrame, pl.Series, np.ndarray or sequence
        The dataset.
    exclude : sequence of str, optional
        DataFrame columns to leave out (e.g. grouping columns).

    Returns
    -------
    X : np.ndarray
        Float64 matrix of shape (n, k).
    names : list of str
        Column names, one per column of X.

    Raises
    ------
    ValidationError
        If the data is empty or has no numeric column.
    """
    if isinstance(data, pl.Series):
        data = data.to_frame()

    if isinstance(data, pl.DataFrame):
        frame = data.drop(list(exclude)) if exclude else data
        numeric = frame.select(cs.numeric().cast(pl.Float64))
        if numeric.width == 0:
            raise ValidationError(
                f"No numeric columns found in data (columns: {frame.columns}). "
                "Outlier detection needs at least one numeric variable."
            )
        names = list(numeric.columns)
        X = numeric.to_numpy()
    else:
        X = coerce_to_float64(data, name="data", allow_inf=True)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
            names = ["x"]
        elif X.ndim == 2:
            names = [f"x{i}" for i in range(X.shape[1])]
        else:
            raise ValidationError(
                f"data must be 1-D or 2-D, got an array with {X.ndim} dimensions."
            )
        if X.shape[1] == 0:
            raise ValidationError("data has no columns.")

    if X.shape[0] == 0:
        raise ValidationError("data is empty. Cannot detect outliers with no observations.")

    X = np.array(X, dtype=np.float64)
    X[np.isinf(X)] = np.nan
    return X, names


def validate_min_columns(X: np.ndarray, minimum: int, detector: str) -> None:
    """Raise if a multivariate detector gets too few columns."""
    if X.shape[1] < minimum:
        raise ValidationError(
            f"Detector '{detector}' requires at least {minimum} numeric columns, "
            f"got {X.shape[1]}."
        )


def validate_group_labels(labels: Any, n_obs: int) -> np.ndarray:
    """Validate a vector of group labels passed alongside an array."""
    labels = np.asarray(labels, dtype=object)
    if labels.ndim != 1:
        raise ValidationError(
            f"Group labels must be 1-D, got an array with {labels.ndim} dimensions."
        )
    if len(labels) != n_obs:
        raise ValidationError(
            f"Group labels have length {len(labels)} but data has {n_obs} rows."
        )
    return labels

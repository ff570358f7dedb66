"""
Top-level outlier detection API.

check_outliers() is the main entry point. It accepts a fitted model, a
polars DataFrame, or an array, runs the selected detectors, and combines
them into a composite score: the fraction of detectors that flag each
observation. Observations flagged by more than half of the detectors are
reported as outliers.
"""

from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from fitcheck.constants import COMPOSITE_CUTOFF, DEFAULT_MAX_WORKERS
from fitcheck.exceptions import (
    FitCheckError,
    DependencyUnavailableError,
    OutlierDetectionWarning,
    ValidationError,
    wrap_detector_error,
)
from fitcheck.models import ModelCapability, UnsupportedModel, is_model, wrap_model
from fitcheck.outliers.methods import Method, MethodSpec, MODEL_METHODS, parse_methods
from fitcheck.outliers.registry import DETECTORS, Detector, is_available
from fitcheck.outliers.result import OutlierResult
from fitcheck.outliers.thresholds import ThresholdOverride, resolve_thresholds
from fitcheck.validation import as_numeric_matrix, validate_group_labels

__all__ = [
    "check_outliers",
    "detect_outliers",
    "aggregate",
]


def _emit(notes: List[str], verbose: bool) -> None:
    """Issue collected notes as warnings attributed to the public caller.

    Called directly from ``check_outliers`` and ``aggregate``, so level 3
    is the frame that called them.
    """
    if not verbose:
        return
    for message in notes:
        warnings.warn(message, OutlierDetectionWarning, stacklevel=3)


def _is_vector(x: Any) -> bool:
    if isinstance(x, pl.Series):
        return True
    if isinstance(x, pl.DataFrame):
        return False
    return np.ndim(x) == 1


# =============================================================================
# Aggregator
# =============================================================================

def _run_detector(
    detector: Detector,
    X: np.ndarray,
    model: Optional[ModelCapability],
    threshold: float,
    kwargs: Dict[str, Any],
    notes: List[str],
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Run one detector; failures are recorded in ``notes`` and return None."""
    name = detector.method.value

    if detector.method.is_model_based:
        # Cook's distance on a Bayesian model (or Pareto-k on a frequentist
        # one) does not apply and is skipped without comment
        if model is None or not model.supports(detector.model_capability):
            return None

    if not is_available(detector.requires):
        err = DependencyUnavailableError(
            f"Detector '{name}' requires {detector.requires}, which is not installed. "
            f"Skipping it."
        )
        notes.append(str(err))
        return None

    try:
        if detector.method.is_model_based:
            distance, flag = detector.compute(model, threshold)
        else:
            extra = kwargs if detector.accepts_kwargs else {}
            distance, flag = detector.compute(X, threshold, **extra)
    except (FitCheckError, np.linalg.LinAlgError, ValueError, ArithmeticError) as e:
        notes.append(f"{wrap_detector_error(e, name)}\nDetector '{name}' was omitted.")
        return None

    distance = np.asarray(distance, dtype=np.float64)
    flag = np.asarray(flag, dtype=np.float64)
    if distance.shape != (X.shape[0],) or flag.shape != (X.shape[0],):
        notes.append(
            f"Detector '{name}' returned {distance.shape[0]} values for "
            f"{X.shape[0]} observations and was omitted."
        )
        return None
    return distance, flag


def _aggregate(
    X: np.ndarray,
    methods: List[Method],
    thresholds: Dict[str, float],
    model: Optional[ModelCapability],
    kwargs: Dict[str, Any],
    notes: List[str],
) -> OutlierResult:
    n = X.shape[0]
    columns: Dict[str, np.ndarray] = {}
    flags: List[np.ndarray] = []

    for method in methods:
        out = _run_detector(DETECTORS[method], X, model, thresholds[method.threshold_key], kwargs, notes)
        if out is None:
            continue
        distance, flag = out
        columns[f"Distance_{method.label}"] = distance
        columns[f"Outlier_{method.label}"] = flag
        flags.append(flag)

    if flags:
        composite = np.column_stack(flags).mean(axis=1)
    else:
        notes.append(
            f"None of the requested methods ({[m.value for m in methods]}) could be "
            "computed; no observation is flagged."
        )
        composite = np.zeros(n)

    columns["Outlier"] = composite
    return OutlierResult(
        pl.DataFrame(columns),
        thresholds=thresholds,
        methods=[m.value for m in methods],
        cutoff=COMPOSITE_CUTOFF,
    )


def aggregate(
    X: np.ndarray,
    methods: Sequence[Method],
    thresholds: Dict[str, float],
    model: Optional[ModelCapability] = None,
    verbose: bool = True,
    **kwargs,
) -> OutlierResult:
    """
    Run the detectors and combine them into a composite score.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix.
    methods : sequence of Method or str
        Detector selection. ``eti`` is run as ``ci`` and duplicates once.
    thresholds : dict
        Resolved threshold table.
    model : ModelCapability, optional
        Wrapped model for the model-based detectors.
    verbose : bool
        Emit warnings for skipped or failed detectors.
    **kwargs
        Forwarded to the ICS detector.

    Returns
    -------
    OutlierResult
        The composite ``Outlier`` score is the mean of the binary
        ``Outlier_*`` columns; observations scoring above 0.5 are flagged.
    """
    notes: List[str] = []
    result = _aggregate(X, parse_methods(methods, default=()), thresholds, model, kwargs, notes)
    _emit(notes, verbose)
    return result


# =============================================================================
# Models
# =============================================================================

def _model_methods(model: ModelCapability, method: MethodSpec) -> List[Method]:
    if model.valid_methods is None:
        return parse_methods(method, default=MODEL_METHODS, with_model=True)

    valid = parse_methods(model.valid_methods, default=())
    methods = parse_methods(method, default=(Method.PARETO,), all_methods=valid)
    if any(m not in valid for m in methods):
        return [Method.PARETO]
    return methods


def _check_model(
    model: ModelCapability,
    method: MethodSpec,
    threshold: ThresholdOverride,
    kwargs: Dict[str, Any],
    notes: List[str],
) -> Optional[OutlierResult]:
    if isinstance(model, UnsupportedModel):
        notes.append(model.message)
        return None

    methods = _model_methods(model, method)
    X = model.numeric_matrix()
    thresholds = resolve_thresholds((model.n_obs, max(X.shape[1], 1)), threshold, n_params=model.n_params)
    return _aggregate(X, methods, thresholds, model, kwargs, notes)


# =============================================================================
# Group dispatcher
# =============================================================================

def _names_columns(x: pl.DataFrame, by: Any) -> bool:
    if isinstance(by, str):
        return True
    return (
        isinstance(by, (list, tuple))
        and len(by) > 0
        and all(isinstance(b, str) and b in x.columns for b in by)
    )


def _group_labels(x: Any, by: Any) -> Tuple[List[Any], pl.DataFrame, Optional[List[str]]]:
    """Split ``by`` into (labels, group columns, data columns to leave out)."""
    if isinstance(x, pl.DataFrame) and _names_columns(x, by):
        keys = [by] if isinstance(by, str) else list(by)
        missing = [k for k in keys if k not in x.columns]
        if missing:
            raise ValidationError(
                f"Grouping column(s) {missing} not found in data columns: {x.columns}"
            )
        group_frame = x.select(keys)
        rows = group_frame.rows()
        labels = [r[0] for r in rows] if len(keys) == 1 else rows
        return labels, group_frame, keys

    n = x.height if isinstance(x, pl.DataFrame) else len(x)
    labels = validate_group_labels(by, n).tolist()
    return labels, pl.DataFrame({"Group": labels}, strict=False), None


def _check_grouped(
    x: Any,
    by: Any,
    method: MethodSpec,
    threshold: ThresholdOverride,
    n_jobs: Optional[int],
    kwargs: Dict[str, Any],
    notes: List[str],
) -> OutlierResult:
    labels, group_frame, exclude = _group_labels(x, by)
    X, _ = as_numeric_matrix(x, exclude=exclude)
    default = (Method.ZSCORE_ROBUST,) if _is_vector(x) else (Method.MAHALANOBIS,)
    methods = parse_methods(method, default)

    # Groups in order of first appearance
    groups: Dict[Any, List[int]] = {}
    for i, label in enumerate(labels):
        groups.setdefault(label, []).append(i)

    def _one(rows: List[int]) -> Tuple[OutlierResult, List[str]]:
        # Each partition records its own notes; warnings are issued by the caller
        Xg = X[rows]
        group_notes: List[str] = []
        result = _aggregate(Xg, methods, resolve_thresholds(Xg, threshold), None, kwargs, group_notes)
        return result, group_notes

    row_lists = list(groups.values())
    if n_jobs is not None and (n_jobs > 1 or n_jobs == -1) and len(row_lists) > 1:
        workers = min(DEFAULT_MAX_WORKERS if n_jobs == -1 else n_jobs, len(row_lists))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_one, row_lists))
    else:
        outcomes = [_one(rows) for rows in row_lists]

    results = [r for r, _ in outcomes]
    for key, (_, group_notes) in zip(groups, outcomes):
        notes.extend(f"Group {key}: {message}" for message in group_notes)

    tables = [
        r.data.with_columns(pl.Series("__row", rows, dtype=pl.Int64))
        for r, rows in zip(results, row_lists)
    ]
    merged = pl.concat(tables, how="diagonal").sort("__row").drop("__row")
    ordered = [c for c in merged.columns if c != "Outlier"] + ["Outlier"]
    merged = pl.concat([group_frame, merged.select(ordered)], how="horizontal")

    return OutlierResult(
        merged,
        thresholds={key: r.thresholds for key, r in zip(groups, results)},
        methods=[m.value for m in methods],
        cutoff=COMPOSITE_CUTOFF,
    )


# =============================================================================
# Entry point
# =============================================================================

def check_outliers(
    x: Any,
    method: MethodSpec = None,
    threshold: ThresholdOverride = None,
    *,
    by: Any = None,
    verbose: bool = True,
    n_jobs: Optional[int] = None,
    **kwargs,
) -> Optional[OutlierResult]:
    """
    Detect outliers (influential observations).

    Parameters
    ----------
    x : model, pl.DataFrame, pl.Series, np.ndarray or sequence
        A fitted model (statsmodels results or a ``fitcheck.models``
        wrapper) or a dataset. Non-numeric DataFrame columns are ignored.
    method : str or list of str, optional
        Detection method(s): ``"zscore"``, ``"zscore_robust"``, ``"iqr"``,
        ``"ci"``/``"eti"``, ``"hdi"``, ``"bci"``, ``"mahalanobis"``,
        ``"mahalanobis_robust"``, ``"mcd"``, ``"ics"``, ``"optics"``,
        ``"lof"``, ``"cook"``, ``"pareto"``, or ``"all"``. Defaults to
        ``"zscore_robust"`` for a single variable, ``"mahalanobis"`` for a
        dataset and ``["cook", "pareto"]`` for a model.
    threshold : float or dict, optional
        A number used as threshold for every method, or a dict of
        per-method thresholds (e.g. ``{"mahalanobis": 7}``). Missing
        entries use the defaults.
    by : str, list of str or array-like, optional
        Grouping column(s) of a DataFrame, or one label per observation.
        Each group is checked independently.
    verbose : bool, default=True
        Warn about detectors that were skipped or failed.
    n_jobs : int, optional
        Number of threads used to check groups concurrently; -1 uses
        the default pool size.
    **kwargs
        Passed to the ICS detector (``level_test``, ``n_replicates``,
        ``random_state``).

    Returns
    -------
    OutlierResult or None
        Boolean vector of outliers with the full score table attached.
        ``None`` (with a warning) for unsupported model classes.

    Raises
    ------
    ValidationError
        For unknown methods, malformed thresholds or data without any
        numeric column.

    Examples
    --------
    >>> check_outliers([1, 2, 3, 4, 100], method="iqr").outlier_indices
    [4]
    """
    notes: List[str] = []
    if is_model(x):
        if by is not None:
            raise ValidationError("`by` cannot be used when checking a fitted model.")
        result = _check_model(wrap_model(x), method, threshold, kwargs, notes)
    elif by is not None:
        result = _check_grouped(x, by, method, threshold, n_jobs, kwargs, notes)
    else:
        X, _ = as_numeric_matrix(x)
        default = (Method.ZSCORE_ROBUST,) if _is_vector(x) else (Method.MAHALANOBIS,)
        methods = parse_methods(method, default)
        result = _aggregate(X, methods, resolve_thresholds(X, threshold), None, kwargs, notes)

    _emit(notes, verbose)
    return result


detect_outliers = check_outliers

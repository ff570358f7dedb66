"""
Result type returned by ``check_outliers``.
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import polars as pl

from fitcheck.constants import COMPOSITE_CUTOFF

__all__ = ["OutlierResult"]


def _round_float(x: float) -> Optional[float]:
    """Round float for compact JSON output; NaN and inf become None."""
    if math.isnan(x) or math.isinf(x):
        return None
    if x == 0:
        return 0.0
    if abs(x) >= 100:
        return round(x, 2)
    elif abs(x) >= 1:
        return round(x, 4)
    else:
        return round(x, 6)


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    if isinstance(obj, (float, np.floating)):
        return _round_float(float(obj))
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    return obj


class OutlierResult:
    """
    Outcome of an outlier check.

    Behaves like a boolean vector (one entry per observation, in input
    order) and keeps the full per-method score table.

    Attributes
    ----------
    data : pl.DataFrame
        ``Distance_*`` and ``Outlier_*`` columns per detector, and the
        composite ``Outlier`` score (fraction of detectors flagging).
    thresholds : dict
        Threshold table used. For grouped checks, one table per group key.
    methods : list of str
        Methods that were requested.
    """

    def __init__(
        self,
        data: pl.DataFrame,
        thresholds: Dict[Any, Any],
        methods: List[str],
        cutoff: float = COMPOSITE_CUTOFF,
    ):
        self.data = data
        self.thresholds = thresholds
        self.methods = list(methods)
        self.cutoff = cutoff
        flags = (data["Outlier"] > cutoff).fill_null(False).to_numpy()
        flags.setflags(write=False)
        self._flags = flags

    # -------------------------------------------------------------------------
    # Boolean vector view
    # -------------------------------------------------------------------------

    @property
    def flags(self) -> np.ndarray:
        """Read-only boolean outlier vector."""
        return self._flags

    def __len__(self) -> int:
        return len(self._flags)

    def __iter__(self) -> Iterator[bool]:
        return iter(self._flags.tolist())

    def __getitem__(self, item):
        return self._flags[item]

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._flags.copy() if copy else self._flags
        return self._flags.astype(dtype)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def scores(self) -> np.ndarray:
        """Composite outlier score per observation."""
        return self.data["Outlier"].to_numpy()

    @property
    def outlier_indices(self) -> List[int]:
        """Row indices (0-based) of the flagged observations."""
        return np.flatnonzero(self._flags).tolist()

    @property
    def n_outliers(self) -> int:
        return int(self._flags.sum())

    @property
    def detectors(self) -> List[str]:
        """Labels of the detectors that contributed columns."""
        return [c[len("Outlier_"):] for c in self.data.columns if c.startswith("Outlier_")]

    def to_frame(self) -> pl.DataFrame:
        return self.data

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def summary(self) -> str:
        idx = self.outlier_indices
        if not idx:
            return "OK: No outliers detected."
        noun = "outlier" if len(idx) == 1 else "outliers"
        rows = ", ".join(str(i) for i in idx)
        return f"Warning: {len(idx)} {noun} detected (rows {rows})."

    def __str__(self) -> str:
        return self.summary()

    def __repr__(self) -> str:
        return (
            f"<OutlierResult: {self.n_outliers}/{len(self)} outliers, "
            f"methods={self.methods}>"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_obs": len(self),
            "n_outliers": self.n_outliers,
            "outliers": self.outlier_indices,
            "methods": self.methods,
            "thresholds": _to_jsonable(self.thresholds),
            "scores": _to_jsonable(self.scores.tolist()),
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

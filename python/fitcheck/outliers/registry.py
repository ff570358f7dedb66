"""
Detector registry.

Maps each ``Method`` to the function computing it, the optional library it
needs and the model capability it needs. Library availability is probed
once at import; detectors whose library is missing are skipped with a
warning instead of failing the whole aggregation.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Optional

from fitcheck.models import INFLUENCE, PARETO
from fitcheck.outliers import density, model_based, multivariate, univariate
from fitcheck.outliers.methods import Method

__all__ = [
    "SKLEARN",
    "AVAILABLE",
    "Detector",
    "DETECTORS",
    "is_available",
]

SKLEARN = "scikit-learn"

AVAILABLE: Dict[str, bool] = {
    SKLEARN: importlib.util.find_spec("sklearn") is not None,
}


def is_available(requirement: Optional[str]) -> bool:
    return requirement is None or AVAILABLE.get(requirement, False)


@dataclass(frozen=True)
class Detector:
    """A registered detector.

    Attributes
    ----------
    method : Method
        The method this detector implements.
    compute : callable
        ``compute(X_or_model, threshold, **kwargs) -> (distance, flag)``.
    requires : str, optional
        Optional library the detector depends on.
    model_capability : str, optional
        Model capability the detector consumes; ``None`` for detectors that
        work on the numeric matrix.
    accepts_kwargs : bool
        Whether caller keyword arguments are forwarded.
    """
    method: Method
    compute: Callable
    requires: Optional[str] = None
    model_capability: Optional[str] = None
    accepts_kwargs: bool = False


DETECTORS: Dict[Method, Detector] = {
    Method.ZSCORE: Detector(Method.ZSCORE, partial(univariate.detect_zscore, robust=False)),
    Method.ZSCORE_ROBUST: Detector(Method.ZSCORE_ROBUST, partial(univariate.detect_zscore, robust=True)),
    Method.IQR: Detector(Method.IQR, univariate.detect_iqr),
    Method.CI: Detector(Method.CI, partial(univariate.detect_interval, kind="eti")),
    Method.HDI: Detector(Method.HDI, partial(univariate.detect_interval, kind="hdi")),
    Method.BCI: Detector(Method.BCI, partial(univariate.detect_interval, kind="bci")),
    Method.MAHALANOBIS: Detector(Method.MAHALANOBIS, multivariate.detect_mahalanobis),
    Method.MAHALANOBIS_ROBUST: Detector(Method.MAHALANOBIS_ROBUST, multivariate.detect_mahalanobis_robust),
    Method.MCD: Detector(Method.MCD, multivariate.detect_mcd, requires=SKLEARN),
    Method.ICS: Detector(Method.ICS, multivariate.detect_ics, accepts_kwargs=True),
    Method.OPTICS: Detector(Method.OPTICS, density.detect_optics, requires=SKLEARN),
    Method.LOF: Detector(Method.LOF, density.detect_lof, requires=SKLEARN),
    Method.COOK: Detector(Method.COOK, model_based.detect_cook, model_capability=INFLUENCE),
    Method.PARETO: Detector(Method.PARETO, model_based.detect_pareto, model_capability=PARETO),
}

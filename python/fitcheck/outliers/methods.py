"""
The closed vocabulary of outlier detection methods.

Method names are validated once, at the public boundary, and converted to
``Method`` members. Everything downstream works with the enumeration.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from fitcheck.exceptions import ValidationError

__all__ = [
    "Method",
    "MethodSpec",
    "ALL_DATA_METHODS",
    "MODEL_METHODS",
    "parse_methods",
]


class Method(str, Enum):
    """Outlier detection methods."""

    ZSCORE = "zscore"
    ZSCORE_ROBUST = "zscore_robust"
    IQR = "iqr"
    CI = "ci"
    ETI = "eti"
    HDI = "hdi"
    BCI = "bci"
    MAHALANOBIS = "mahalanobis"
    MAHALANOBIS_ROBUST = "mahalanobis_robust"
    MCD = "mcd"
    ICS = "ics"
    OPTICS = "optics"
    LOF = "lof"
    COOK = "cook"
    PARETO = "pareto"

    @property
    def threshold_key(self) -> str:
        """Key of this method's entry in the threshold table."""
        return _THRESHOLD_KEYS[self]

    @property
    def label(self) -> str:
        """Suffix used for the ``Distance_*`` / ``Outlier_*`` columns."""
        return _LABELS[self]

    @property
    def is_model_based(self) -> bool:
        return self in MODEL_METHODS


MethodSpec = Union[str, Method, Iterable[Union[str, Method]], None]

_THRESHOLD_KEYS = {
    Method.ZSCORE: "zscore",
    Method.ZSCORE_ROBUST: "zscore",
    Method.IQR: "iqr",
    Method.CI: "ci",
    Method.ETI: "ci",
    Method.HDI: "ci",
    Method.BCI: "ci",
    Method.MAHALANOBIS: "mahalanobis",
    Method.MAHALANOBIS_ROBUST: "robust",
    Method.MCD: "mcd",
    Method.ICS: "ics",
    Method.OPTICS: "optics",
    Method.LOF: "lof",
    Method.COOK: "cook",
    Method.PARETO: "pareto",
}

_LABELS = {
    Method.ZSCORE: "Zscore",
    Method.ZSCORE_ROBUST: "Zscore_robust",
    Method.IQR: "IQR",
    Method.CI: "ETI",
    Method.ETI: "ETI",
    Method.HDI: "HDI",
    Method.BCI: "BCI",
    Method.MAHALANOBIS: "Mahalanobis",
    Method.MAHALANOBIS_ROBUST: "Mahalanobis_robust",
    Method.MCD: "MCD",
    Method.ICS: "ICS",
    Method.OPTICS: "OPTICS",
    Method.LOF: "LOF",
    Method.COOK: "Cook",
    Method.PARETO: "Pareto",
}

_ALIASES = {
    "robust": Method.MAHALANOBIS_ROBUST,
}

# Expansion of method="all" for raw data; model-only methods are appended
# when a model is supplied.
ALL_DATA_METHODS: Tuple[Method, ...] = (
    Method.ZSCORE_ROBUST,
    Method.IQR,
    Method.CI,
    Method.MAHALANOBIS,
    Method.MAHALANOBIS_ROBUST,
    Method.MCD,
    Method.ICS,
    Method.OPTICS,
    Method.LOF,
)

MODEL_METHODS: Tuple[Method, ...] = (Method.COOK, Method.PARETO)


def _to_method(value: Union[str, Method]) -> Method:
    if isinstance(value, Method):
        return value
    if not isinstance(value, str):
        raise ValidationError(
            f"Outlier method must be a string, got {type(value).__name__}: {value!r}"
        )
    key = value.strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return Method(key)
    except ValueError:
        valid = sorted([m.value for m in Method] + list(_ALIASES))
        raise ValidationError(
            f"Unknown outlier method '{value}'. Valid methods: {valid}, or 'all'."
        ) from None


def parse_methods(
    method: MethodSpec,
    default: Iterable[Method],
    with_model: bool = False,
    all_methods: Optional[Iterable[Method]] = None,
) -> List[Method]:
    """
    Validate a method selection and return it as an ordered list.

    Parameters
    ----------
    method : str, Method, iterable or None
        Requested methods. ``None`` selects ``default``; ``"all"`` selects
        ``all_methods`` (or the canonical set).
    default : iterable of Method
        Methods used when ``method`` is None.
    with_model : bool
        Whether a fitted model is available. Only then does ``"all"``
        include the model-based methods.
    all_methods : iterable of Method, optional
        Override of the ``"all"`` expansion (used by restricted model types).

    Returns
    -------
    list of Method
        Requested methods in order, without duplicates. ``ci`` and ``eti``
        compute the same interval and are collapsed into one.
    """
    if method is None:
        requested = list(default)
    elif isinstance(method, (str, Method)):
        requested = [method]
    else:
        requested = list(method)

    if not requested:
        raise ValidationError("At least one outlier method must be given.")

    if any(isinstance(m, str) and m.strip().lower() == "all" for m in requested):
        if all_methods is not None:
            requested = list(all_methods)
        else:
            requested = list(ALL_DATA_METHODS)
            if with_model:
                requested += list(MODEL_METHODS)

    methods: List[Method] = []
    for value in requested:
        m = _to_method(value)
        if m is Method.ETI:
            m = Method.CI
        if m not in methods:
            methods.append(m)
    return methods

"""
Multivariate outlier detectors.

These detectors take the joint shape of the data into account:

- **Mahalanobis**: squared distance to the column means in the metric of
  the sample covariance matrix.
- **Robust Mahalanobis**: the same distance under an Orthogonalized
  Gnanadesikan-Kettenring (OGK) pairwise covariance estimate, computed on
  the left singular vectors of the standardized data.
- **MCD**: Mahalanobis distance under the Minimum Covariance Determinant
  estimate, fit on the most central fraction of the observations.
- **ICS**: Invariant Coordinate Selection. The data are rotated to the
  invariant coordinates of a (covariance, fourth-moment covariance) scatter
  pair; components showing non-normality are kept, and the squared norm of
  each observation on those components is compared with a cutoff simulated
  under multivariate normality.

Incomplete rows are left out of the fit and receive a NaN distance.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy import linalg, stats

from fitcheck.constants import (
    EPSILON,
    MAD_NORMAL_SCALE,
    MCD_SUPPORT_FRACTION,
    OGK_N_ITER,
    OGK_BETA,
    ICS_LEVEL_TEST,
    ICS_N_REPLICATES,
    DEFAULT_RANDOM_STATE,
)
from fitcheck.exceptions import DetectorError, ValidationError
from fitcheck.validation import validate_min_columns

__all__ = [
    "mahalanobis_distance",
    "detect_mahalanobis",
    "ogk_distance",
    "detect_mahalanobis_robust",
    "detect_mcd",
    "ics_transform",
    "detect_ics",
]

DetectorOutput = Tuple[np.ndarray, np.ndarray]


def _on_complete_rows(X: np.ndarray, func: Callable[[np.ndarray], np.ndarray], detector: str) -> np.ndarray:
    """Apply ``func`` to the rows without missing values; others get NaN."""
    complete = ~np.isnan(X).any(axis=1)
    n_complete = int(complete.sum())
    if n_complete <= X.shape[1]:
        raise ValidationError(
            f"Detector '{detector}' needs more complete observations ({n_complete}) "
            f"than columns ({X.shape[1]})."
        )
    out = np.full(X.shape[0], np.nan)
    out[complete] = func(X[complete])
    return out


def _flag(distance: np.ndarray, threshold: float) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        return np.where(distance > threshold, 1.0, 0.0)


# =============================================================================
# Mahalanobis
# =============================================================================

def mahalanobis_distance(X: np.ndarray, center: np.ndarray, cov: np.ndarray) -> np.ndarray:
    """Squared Mahalanobis distance of each row of X."""
    diff = X - center
    cov = np.atleast_2d(cov)
    inv = np.linalg.inv(cov)
    return np.einsum("ij,jk,ik->i", diff, inv, diff)


def _classical(X: np.ndarray) -> np.ndarray:
    cov = np.atleast_2d(np.cov(X, rowvar=False))
    return mahalanobis_distance(X, X.mean(axis=0), cov)


def detect_mahalanobis(X: np.ndarray, threshold: float) -> DetectorOutput:
    """
    Classical Mahalanobis distance detector.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix.
    threshold : float
        Cutoff on the squared distance (default: chi-squared 97.5% quantile
        with k degrees of freedom).
    """
    distance = _on_complete_rows(X, _classical, "mahalanobis")
    return distance, _flag(distance, threshold)


# =============================================================================
# Robust Mahalanobis (OGK)
# =============================================================================

def _tau_scale(x: np.ndarray, c1: float = 4.5, c2: float = 3.0) -> Tuple[float, float]:
    """Yohai-Zamar tau estimates of location and scale."""
    med = np.median(x)
    s0 = MAD_NORMAL_SCALE * np.median(np.abs(x - med))
    if s0 < EPSILON:
        return float(med), 0.0
    u = (x - med) / (c1 * s0)
    w = np.where(np.abs(u) < 1, (1 - u ** 2) ** 2, 0.0)
    mu = np.sum(w * x) / np.sum(w)
    rho = np.minimum(((x - mu) / s0) ** 2, c2 ** 2)
    # Consistency at the normal model
    e_rho = 2 * ((1 - c2 ** 2) * stats.norm.cdf(c2) - c2 * stats.norm.pdf(c2) + c2 ** 2) - 1
    sigma = s0 * np.sqrt(np.mean(rho) / e_rho)
    return float(mu), float(sigma)


def _column_tau(Z: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    est = [_tau_scale(Z[:, j]) for j in range(Z.shape[1])]
    mu = np.array([e[0] for e in est])
    sigma = np.array([e[1] for e in est])
    if np.any(sigma < EPSILON):
        raise DetectorError(
            "Robust scale is zero for at least one direction; "
            "more than half of the values are identical."
        )
    return mu, sigma


def ogk_distance(U: np.ndarray, n_iter: int = OGK_N_ITER, beta: float = OGK_BETA) -> np.ndarray:
    """
    Robust squared distances from the OGK covariance estimator.

    Parameters
    ----------
    U : np.ndarray, shape (n, k)
        Data (typically left singular vectors of the standardized data).
    n_iter : int
        Number of orthogonalization passes.
    beta : float
        Quantile of the chi-squared distribution used for the final
        hard-rejection reweighting step.

    Returns
    -------
    np.ndarray
        Squared distances under the reweighted estimate.
    """
    p = U.shape[1]
    Z = U.copy()
    for _ in range(n_iter):
        _, sigma = _column_tau(Z)
        Y = Z / sigma
        pairwise = np.eye(p)
        for i in range(1, p):
            for j in range(i):
                s_plus = _tau_scale(Y[:, i] + Y[:, j])[1]
                s_minus = _tau_scale(Y[:, i] - Y[:, j])[1]
                pairwise[i, j] = pairwise[j, i] = (s_plus ** 2 - s_minus ** 2) / 4
        _, E = np.linalg.eigh(pairwise)
        Z = Y @ E

    mu, sigma = _column_tau(Z)
    raw = np.sum(((Z - mu) / sigma) ** 2, axis=1)

    cutoff = stats.chi2.ppf(beta, p) * np.median(raw) / stats.chi2.ppf(0.5, p)
    keep = raw <= cutoff
    if keep.sum() <= p:
        return raw
    center = U[keep].mean(axis=0)
    cov = np.atleast_2d(np.cov(U[keep], rowvar=False))
    return mahalanobis_distance(U, center, cov)


def _robust(X: np.ndarray) -> np.ndarray:
    sd = X.std(axis=0, ddof=1)
    if np.any(sd < EPSILON):
        raise DetectorError("Cannot standardize a constant column.")
    scaled = (X - X.mean(axis=0)) / sd
    U = np.linalg.svd(scaled, full_matrices=False)[0]
    return ogk_distance(U)


def detect_mahalanobis_robust(X: np.ndarray, threshold: float) -> DetectorOutput:
    """Robust (OGK) Mahalanobis distance detector."""
    distance = _on_complete_rows(X, _robust, "mahalanobis_robust")
    return distance, _flag(distance, threshold)


# =============================================================================
# Minimum Covariance Determinant
# =============================================================================

def detect_mcd(
    X: np.ndarray,
    threshold: float,
    support_fraction: float = MCD_SUPPORT_FRACTION,
    random_state: int = DEFAULT_RANDOM_STATE,
) -> DetectorOutput:
    """
    Minimum Covariance Determinant detector.

    Location and covariance come from the ``support_fraction`` most central
    observations (then reweighted), so the outliers themselves cannot
    inflate the covariance used to measure them.
    """
    from sklearn.covariance import MinCovDet

    def _fit(Xc: np.ndarray) -> np.ndarray:
        mcd = MinCovDet(support_fraction=support_fraction, random_state=random_state).fit(Xc)
        return mcd.mahalanobis(Xc)

    distance = _on_complete_rows(X, _fit, "mcd")
    return distance, _flag(distance, threshold)


# =============================================================================
# Invariant Coordinate Selection
# =============================================================================

def ics_transform(X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rotate centered data to invariant coordinates.

    Uses the scatter pair (covariance, fourth-moment covariance). The
    returned components are sorted by decreasing generalized kurtosis and
    have identity covariance.

    Returns
    -------
    Z : np.ndarray, shape (n, k)
        Invariant coordinates.
    kurtosis : np.ndarray, shape (k,)
        Generalized eigenvalues, in decreasing order.
    """
    n, p = X.shape
    xc = X - X.mean(axis=0)
    s1 = np.atleast_2d(np.cov(X, rowvar=False))
    r2 = np.einsum("ij,jk,ik->i", xc, np.linalg.inv(s1), xc)
    s4 = (xc.T * r2) @ xc / (n * (p + 2))
    eigvals, B = linalg.eigh(s4, s1)
    order = np.argsort(eigvals)[::-1]
    return xc @ B[:, order], eigvals[order]


def _select_components(Z: np.ndarray, level_test: float) -> List[int]:
    """Leading components that reject normality (D'Agostino skewness test)."""
    p = Z.shape[1]
    selected = []
    for j in range(p):
        pvalue = stats.skewtest(Z[:, j]).pvalue
        if pvalue < level_test / (p - j):
            selected.append(j)
        else:
            break
    return selected


def _ics_cutoff(
    n: int,
    p: int,
    selected: List[int],
    level_dist: float,
    n_replicates: int,
    random_state: Optional[int],
) -> float:
    rng = np.random.default_rng(random_state)
    quantiles = []
    for _ in range(n_replicates):
        Zs, _ = ics_transform(rng.standard_normal((n, p)))
        ds = np.sum(Zs[:, selected] ** 2, axis=1)
        quantiles.append(np.quantile(ds, 1 - level_dist))
    return float(np.mean(quantiles))


def detect_ics(
    X: np.ndarray,
    threshold: float,
    level_test: float = ICS_LEVEL_TEST,
    n_replicates: int = ICS_N_REPLICATES,
    random_state: Optional[int] = DEFAULT_RANDOM_STATE,
) -> DetectorOutput:
    """
    Invariant Coordinate Selection detector.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Observation matrix, k >= 2.
    threshold : float
        Tail probability of the simulated distance distribution used as
        cutoff (``level.dist``), in (0, 1).
    level_test : float
        Level of the component normality tests.
    n_replicates : int
        Number of normal datasets simulated for the cutoff.
    random_state : int, optional
        Seed of the simulation.

    Returns
    -------
    (distance, flag)
        Squared ICS distances and 0/1 flags. When no component rejects
        normality every distance is 0 and nothing is flagged.
    """
    validate_min_columns(X, 2, "ics")
    if not 0 < threshold < 1:
        raise ValidationError(f"ICS tail probability must be in (0, 1), got {threshold}.")

    complete = ~np.isnan(X).any(axis=1)
    Xc = X[complete]
    n, p = Xc.shape

    Z, _ = ics_transform(Xc)
    selected = _select_components(Z, level_test)

    distance = np.full(X.shape[0], np.nan)
    if not selected:
        distance[complete] = 0.0
        return distance, np.zeros(X.shape[0])

    distance[complete] = np.sum(Z[:, selected] ** 2, axis=1)
    cutoff = _ics_cutoff(n, p, selected, threshold, n_replicates, random_state)
    return distance, _flag(distance, cutoff)

"""
Goodness-of-fit summary for fitted frequentist models.

Example
-------
>>> from fitcheck.models import FrequentistModel
>>> from fitcheck.performance import model_performance
>>>
>>> model = FrequentistModel.from_arrays(X, y)
>>> perf = model_performance(model)
>>> print(perf.aic, perf.rmse)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict

import numpy as np

from fitcheck.exceptions import UnsupportedModelError
from fitcheck.models import FrequentistModel, wrap_model

__all__ = ["ModelPerformance", "model_performance"]


@dataclass
class ModelPerformance:
    """Information criteria and residual error of a fitted model."""
    aic: float
    bic: float
    rmse: float
    sigma: float
    n_obs: int
    n_params: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def model_performance(model: Any) -> ModelPerformance:
    """
    Compute fit statistics for a fitted model.

    Parameters
    ----------
    model : FrequentistModel or statsmodels results
        Fitted model exposing a log-likelihood and residuals.

    Returns
    -------
    ModelPerformance
        AIC = -2 logL + 2p, BIC = -2 logL + log(n) p, the root mean squared
        residual and the residual standard error sqrt(RSS / (n - p)).

    Raises
    ------
    UnsupportedModelError
        If the model is not frequentist or lacks a log-likelihood.
    """
    m = wrap_model(model)
    if not isinstance(m, FrequentistModel):
        raise UnsupportedModelError(
            f"Fit statistics are not available for {m.model_class} models."
        )
    if m.loglik is None:
        raise UnsupportedModelError(f"No log-likelihood available for {m.model_class}.")

    resid = m.residuals()
    n = len(resid)
    p = m.n_params
    rss = float(np.sum(resid ** 2))
    loglik = float(m.loglik)

    return ModelPerformance(
        aic=-2 * loglik + 2 * p,
        bic=-2 * loglik + math.log(n) * p,
        rmse=math.sqrt(rss / n),
        sigma=math.sqrt(rss / (n - p)) if n > p else math.nan,
        n_obs=n,
        n_params=p,
    )

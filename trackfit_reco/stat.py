from __future__ import annotations

import math
from typing import Iterable

import numpy as np
from scipy.stats import chi2


def uniform(width: float) -> float:
    r"""Standard deviation of a uniform distribution of the given ``width``, :math:`w/\sqrt{12}`."""
    return float(width) / math.sqrt(12.0)


def propagate_average(errors: Iterable[float]) -> float:
    r"""
    Error of the mean of independent quantities,

    .. math::

        \sigma_{\bar{x}} = \frac{1}{n}\sqrt{\textstyle\sum_i \sigma_i^2}.

    Returns ``0.0`` for no errors.
    """
    arr = np.fromiter(errors, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.sqrt(np.dot(arr, arr)) / arr.size)


def propagate(gradient: np.ndarray, covariance: np.ndarray) -> float:
    r"""
    First-order propagated variance :math:`g^\top C\, g`.

    Parameters
    ----------
    gradient : ndarray, shape (k,)
    covariance : ndarray, shape (k, k)

    Returns
    -------
    float
        The variance (not the standard deviation).
    """
    g = np.asarray(gradient, dtype=np.float64)
    C = np.asarray(covariance, dtype=np.float64)
    return float(g @ C @ g)


def chi_squared_p_value(chi_squared: float, dof: int) -> float:
    r"""
    Upper-tail probability :math:`P(\chi^2_{\nu} \ge \chi^2)`.

    ``nan`` when ``dof <= 0``.
    """
    if dof <= 0:
        return float("nan")
    return float(chi2.sf(chi_squared, dof))

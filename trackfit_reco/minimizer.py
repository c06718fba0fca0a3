from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Sequence, Tuple, Type, runtime_checkable

import numpy as np
from iminuit import Minuit
from scipy.optimize import minimize as scipy_minimize

logger = logging.getLogger(__name__)

Objective = Callable[[np.ndarray], float]


@dataclass(frozen=True, slots=True)
class FitParameter:
    r"""
    One scalar fit parameter: ``value``, ``error`` and search bounds.

    ``min == max`` means unbounded, which is how all track and vertex
    parameters are set up.
    """
    value: float = 0.0
    error: float = 0.0
    min: float = 0.0
    max: float = 0.0

    @property
    def bounded(self) -> bool:
        return self.min != self.max

    def __str__(self) -> str:
        return f"{self.value:.7g}  (+/- {self.error:.7g})"


@dataclass(frozen=True, slots=True)
class MinimizerResult:
    r"""
    Outcome of one minimization.

    Attributes
    ----------
    values, errors : ndarray, shape (n,)
        Final parameter values and errors for every parameter, fixed ones
        included (fixed parameters keep their value and report zero error).
    covariance : ndarray, shape (k, k)
        Covariance of the ``k`` free parameters, in parameter order.
    fval : float
        Objective at ``values``.
    valid : bool
        ``False`` for any non-converged or numerically invalid outcome.
    """
    values: np.ndarray
    errors: np.ndarray
    covariance: np.ndarray
    fval: float
    valid: bool


@runtime_checkable
class Minimizer(Protocol):
    r"""
    Nonlinear minimizer capability used by the track and vertex fits.

    ``objective`` receives the full parameter vector (fixed entries
    included). ``settings`` provides ``error_def``, ``max_iterations``,
    ``strategy``, ``tolerance`` and ``print_level``.
    """

    def minimize(
        self,
        objective: Objective,
        parameters: Sequence[FitParameter],
        fixed: Sequence[bool],
        settings,
    ) -> MinimizerResult: ...


def _free_mask(parameters: Sequence[FitParameter], fixed: Sequence[bool]) -> np.ndarray:
    mask = np.ones(len(parameters), dtype=bool)
    for i, flag in enumerate(fixed):
        if flag:
            mask[i] = False
    return mask


def _all_finite(*arrays) -> bool:
    return all(np.all(np.isfinite(a)) for a in arrays)


class MinuitMinimizer:
    r"""
    :mod:`iminuit` backend: MIGRAD followed by HESSE.

    The Minuit error definition is taken from ``settings.error_def``; with a
    negative log-likelihood objective that is ``0.5``. The result is valid
    only when Minuit reports a valid minimum and the covariance is finite.
    """

    def minimize(self, objective, parameters, fixed, settings) -> MinimizerResult:
        start = np.array([p.value for p in parameters], dtype=np.float64)
        free = _free_mask(parameters, fixed)

        m = Minuit(objective, start)
        m.errordef = settings.error_def
        m.strategy = settings.strategy
        m.print_level = settings.print_level
        m.tol = settings.tolerance
        for i, p in enumerate(parameters):
            m.errors[i] = p.error if p.error > 0 else 1.0
            if p.bounded:
                m.limits[i] = (p.min, p.max)
            m.fixed[i] = not free[i]

        m.migrad(ncall=settings.max_iterations)
        valid = bool(m.valid)
        if valid:
            m.hesse()
            valid = bool(m.valid) and m.covariance is not None

        values = np.array(m.values, dtype=np.float64)
        errors = np.array(m.errors, dtype=np.float64)
        errors[~free] = 0.0
        k = int(free.sum())
        if m.covariance is not None:
            full = np.array(m.covariance, dtype=np.float64)
            covariance = full[np.ix_(free, free)]
        else:
            covariance = np.zeros((k, k), dtype=np.float64)

        valid = valid and _all_finite(values, errors, covariance)
        if not valid:
            logger.debug("Minuit fit invalid after %d calls (fval=%s)", m.nfcn, m.fval)
        return MinimizerResult(values, errors, covariance, float(m.fval), valid)


class ScipyMinimizer:
    r"""
    :func:`scipy.optimize.minimize` backend.

    Free parameters are minimized with ``method`` (``L-BFGS-B`` whenever a
    parameter is bounded). The covariance comes from a central-difference
    Hessian :math:`H` of the objective at the minimum,

    .. math::

        C = 2\,\mathrm{up}\; H^{-1},

    with :math:`\mathrm{up}` the error definition, which matches Minuit's
    convention. A Hessian that is not positive definite makes the result
    invalid.
    """

    def __init__(self, method: str = "BFGS", step: float = 1e-4) -> None:
        self.method = method
        self.step = float(step)

    def _hessian(self, f: Callable[[np.ndarray], float], x: np.ndarray, scales: np.ndarray) -> np.ndarray:
        k = x.size
        h = self.step * np.maximum(np.abs(x), scales)
        h[h == 0.0] = self.step
        H = np.empty((k, k), dtype=np.float64)
        f0 = f(x)
        for i in range(k):
            ei = np.zeros(k)
            ei[i] = h[i]
            H[i, i] = (f(x + ei) - 2.0 * f0 + f(x - ei)) / (h[i] * h[i])
            for j in range(i + 1, k):
                ej = np.zeros(k)
                ej[j] = h[j]
                H[i, j] = H[j, i] = (f(x + ei + ej) - f(x + ei - ej) - f(x - ei + ej) + f(x - ei - ej)) / (4.0 * h[i] * h[j])
        return H

    def minimize(self, objective, parameters, fixed, settings) -> MinimizerResult:
        start = np.array([p.value for p in parameters], dtype=np.float64)
        scales = np.array([p.error if p.error > 0 else 1.0 for p in parameters], dtype=np.float64)
        free = _free_mask(parameters, fixed)
        k = int(free.sum())

        def reduced(y: np.ndarray) -> float:
            full = start.copy()
            full[free] = y
            return float(objective(full))

        bounds = [(p.min, p.max) if p.bounded else (None, None)
                  for p, f in zip(parameters, free) if f]
        method = "L-BFGS-B" if any(b != (None, None) for b in bounds) else self.method
        res = scipy_minimize(
            reduced,
            start[free],
            method=method,
            bounds=bounds if method == "L-BFGS-B" else None,
            tol=settings.tolerance * 1e-3,
            options={"maxiter": settings.max_iterations, "disp": settings.print_level > 0},
        )

        values = start.copy()
        values[free] = res.x
        errors = np.zeros_like(values)
        covariance = np.zeros((k, k), dtype=np.float64)
        valid = bool(res.success) and math.isfinite(float(res.fun))

        if valid:
            H = self._hessian(reduced, np.asarray(res.x, dtype=np.float64), scales[free])
            try:
                np.linalg.cholesky(H)
                covariance = 2.0 * settings.error_def * np.linalg.inv(H)
                errors[free] = np.sqrt(np.diag(covariance))
            except np.linalg.LinAlgError:
                valid = False

        valid = valid and _all_finite(values, errors, covariance)
        if not valid:
            logger.debug("scipy %s fit invalid: %s", method, getattr(res, "message", ""))
        return MinimizerResult(values, errors, covariance, float(res.fun), valid)


_MINIMIZERS: Dict[str, Type] = {
    "minuit": MinuitMinimizer,
    "scipy": ScipyMinimizer,
}


def get_minimizer(name: "str | Minimizer | None" = None) -> Minimizer:
    r"""
    Resolve a backend by name (``"minuit"``, ``"scipy"``) or pass an instance through.

    Raises
    ------
    ValueError
        For an unknown backend name.
    """
    if name is None:
        return MinuitMinimizer()
    if isinstance(name, str):
        try:
            return _MINIMIZERS[name.lower()]()
        except KeyError as e:
            raise ValueError(f"Unknown minimizer '{name}'. Choose from {sorted(_MINIMIZERS)}") from e
    return name


def available_minimizers() -> Tuple[str, ...]:
    return tuple(sorted(_MINIMIZERS))

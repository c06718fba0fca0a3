from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from trackfit_reco import units
from trackfit_reco.minimizer import FitParameter, get_minimizer
from trackfit_reco.points import Coordinate, Event, Point, t_sort
from trackfit_reco.stat import chi_squared_p_value, propagate
from trackfit_reco.volumes import Geometry

logger = logging.getLogger(__name__)

PARAMETER_NAMES: Tuple[str, ...] = ("T0", "X0", "Y0", "Z0", "VX", "VY", "VZ")


@dataclass(frozen=True, slots=True)
class FitSettings:
    r"""
    Minimizer knobs shared by the track and vertex fits.

    Attributes
    ----------
    fixed : Coordinate
        Track position component held fixed (removes the degeneracy of
        sliding the reference point along the line). Default ``Z``.
    error_def : float
        Error definition; ``0.5`` for a negative log-likelihood.
    max_iterations : int
        Objective call budget.
    strategy : int
        Minuit strategy (``2`` is the most careful).
    tolerance : float
        Convergence tolerance.
    print_level : int
        Minimizer verbosity.
    minimizer : str
        Backend name, ``"minuit"`` or ``"scipy"``.
    """
    fixed: Coordinate = Coordinate.Z
    error_def: float = 0.5
    max_iterations: int = 10000
    strategy: int = 2
    tolerance: float = 0.1
    print_level: int = 0
    minimizer: str = "minuit"


def _guess(event: Sequence[Point]) -> List[FitParameter]:
    first, last = event[0], event[-1]
    dt = last.t - first.t
    pos_err = 100 * units.length
    vel_err = 0.1 * units.speed_of_light
    if dt == 0:
        vx = vy = vz = 0.0
    else:
        vx = (last.x - first.x) / dt
        vy = (last.y - first.y) / dt
        vz = (last.z - first.z) / dt
    return [
        FitParameter(first.t, 2 * units.time),
        FitParameter(first.x, pos_err),
        FitParameter(first.y, pos_err),
        FitParameter(first.z, pos_err),
        FitParameter(vx, vel_err),
        FitParameter(vy, vel_err),
        FitParameter(vz, vel_err),
    ]


def _squared_residuals(params: np.ndarray, times: np.ndarray, centers: np.ndarray, widths: np.ndarray) -> np.ndarray:
    r"""
    Per-hit squared residual of the line ``params`` against volume-centered hits.

    With :math:`\Delta t = (c_z - z_0)/v_z` the line is evaluated at the
    depth of each hit's volume center :math:`c`:

    .. math::

        r^2 = \left(\frac{t_0+\Delta t-t}{2\,\tau}\right)^2
            + 12\left(\frac{x_0+v_x\Delta t-c_x}{w_x}\right)^2
            + 12\left(\frac{y_0+v_y\Delta t-c_y}{w_y}\right)^2,

    where :math:`w` is the volume extent, i.e. a uniform-in-box variance
    :math:`w^2/12` for the transverse coordinates.
    """
    t0, x0, y0, z0, vx, vy, vz = params
    with np.errstate(divide="ignore", invalid="ignore"):
        dt = (centers[:, 2] - z0) / vz
        t_res = (dt + t0 - times) / (2 * units.time)
        x_res = (x0 + vx * dt - centers[:, 0]) / widths[:, 0]
        y_res = (y0 + vy * dt - centers[:, 1]) / widths[:, 1]
    return t_res * t_res + 12 * x_res * x_res + 12 * y_res * y_res


class Track:
    r"""
    Straight space-time line fitted to a seed.

    The line is parametrized by a reference point and a constant velocity,
    :math:`(t_0, x_0, y_0, z_0, v_x, v_y, v_z)`, with one position component
    (``settings.fixed``) held fixed so six parameters remain free. The fit
    minimizes the Gaussian negative log-likelihood
    :math:`\tfrac12\sum_i r_i^2` (see :func:`_squared_residuals`).

    Parameters
    ----------
    seed : sequence of Point
        Hits; copied and time-sorted. With fewer than three hits no fit is
        run and all parameters stay zero.
    settings : FitSettings, optional
    geometry : Geometry
        Volume lookup; only read during construction.

    Notes
    -----
    A failed minimization keeps the parameters the minimizer last reported
    and sets :attr:`converged` to ``False``; inspect it before trusting
    ``chi_squared`` or ``beta``.
    """

    def __init__(self, seed: Sequence[Point], settings: Optional[FitSettings], geometry: Geometry) -> None:
        self._settings = settings if settings is not None else FitSettings()
        self._event: Event = t_sort(Point(*p) for p in seed)
        self._fixed_index = Coordinate.parse(self._settings.fixed).value
        self._detectors: List[str] = [geometry.volume_of(p) for p in self._event]
        self._converged = False

        size = len(self._event)
        boxes = [geometry.bounding_box_of(v) for v in self._detectors]
        self._time_resolutions = [geometry.time_resolution_of(v) for v in self._detectors]
        self._boxes = boxes
        times = np.array([p.t for p in self._event], dtype=np.float64)
        centers = np.array([b.center for b in boxes], dtype=np.float64).reshape(size, 3)
        widths = np.array([b.extent for b in boxes], dtype=np.float64).reshape(size, 3)

        self._parameters: List[FitParameter] = [FitParameter()] * 7
        self._covariance = np.zeros((6, 6), dtype=np.float64)
        self._squared_residuals: List[float] = []

        if size < 3:
            return

        guess = _guess(self._event)
        if guess[6].value == 0:
            self._parameters = guess
            logger.warning("Track with %d hits has zero guessed vz; fit skipped.", size)
            return

        def nll(params: np.ndarray) -> float:
            return 0.5 * float(np.sum(_squared_residuals(params, times, centers, widths)))

        fixed = [i == self._fixed_index for i in range(7)]
        result = get_minimizer(self._settings.minimizer).minimize(nll, guess, fixed, self._settings)

        self._parameters = [
            FitParameter(float(v), float(e), p.min, p.max)
            for v, e, p in zip(result.values, result.errors, guess)
        ]
        self._covariance = np.asarray(result.covariance, dtype=np.float64)
        self._converged = result.valid
        self._squared_residuals = [
            float(r) for r in _squared_residuals(result.values, times, centers, widths)
        ]
        if not self._converged:
            logger.warning("Track fit over %d hits did not converge (fval=%.6g).", size, result.fval)

    # parameters
    @property
    def t0(self) -> FitParameter:
        return self._parameters[0]

    @property
    def x0(self) -> FitParameter:
        return self._parameters[1]

    @property
    def y0(self) -> FitParameter:
        return self._parameters[2]

    @property
    def z0(self) -> FitParameter:
        return self._parameters[3]

    @property
    def vx(self) -> FitParameter:
        return self._parameters[4]

    @property
    def vy(self) -> FitParameter:
        return self._parameters[5]

    @property
    def vz(self) -> FitParameter:
        return self._parameters[6]

    @property
    def parameters(self) -> Tuple[FitParameter, ...]:
        return tuple(self._parameters)

    @property
    def values(self) -> np.ndarray:
        return np.array([p.value for p in self._parameters], dtype=np.float64)

    @property
    def settings(self) -> FitSettings:
        return self._settings

    @property
    def event(self) -> Event:
        return list(self._event)

    @property
    def detectors(self) -> List[str]:
        return list(self._detectors)

    @property
    def converged(self) -> bool:
        return self._converged

    @property
    def free_parameters(self) -> Tuple[str, ...]:
        return tuple(n for i, n in enumerate(PARAMETER_NAMES) if i != self._fixed_index)

    @property
    def fixed_parameter(self) -> str:
        return PARAMETER_NAMES[self._fixed_index]

    @property
    def covariance_matrix(self) -> np.ndarray:
        """6x6 covariance of :attr:`free_parameters`."""
        return self._covariance.copy()

    def __len__(self) -> int:
        return len(self._event)

    # kinematics
    def __call__(self, z: float) -> Point:
        return self.at_z(z)

    def at_z(self, z: float) -> Point:
        """Position of the line when it crosses depth ``z``. NaN when the line never does (``vz == 0``)."""
        if self.vz.value == 0:
            nan = float("nan")
            return Point(nan, nan, nan, nan)
        dt = (z - self.z0.value) / self.vz.value
        return Point(self.t0.value + dt, self.x0.value + self.vx.value * dt, self.y0.value + self.vy.value * dt, z)

    def at_t(self, t: float) -> Point:
        """Position of the line at time ``t``."""
        dt = t - self.t0.value
        return Point(t, self.x0.value + self.vx.value * dt, self.y0.value + self.vy.value * dt,
                     self.z0.value + self.vz.value * dt)

    def position_gradient(self, t: float) -> np.ndarray:
        r"""
        Jacobian of :meth:`at_t` spatial part w.r.t. the free parameters, shape ``(3, 6)``.

        For axis :math:`i`, :math:`\partial p_i/\partial t_0=-v_i`,
        :math:`\partial p_i/\partial i_0=1` and
        :math:`\partial p_i/\partial v_i=t-t_0`.
        """
        dt = t - self.t0.value
        v = self.values[4:7]
        full = np.zeros((3, 7), dtype=np.float64)
        for i in range(3):
            full[i, 0] = -v[i]
            full[i, 1 + i] = 1.0
            full[i, 4 + i] = dt
        return np.delete(full, self._fixed_index, axis=1)

    def error_at_t(self, t: float) -> Point:
        r"""First-order propagated position errors of :meth:`at_t` (the ``t`` slot is zero)."""
        jac = self.position_gradient(t)
        ex, ey, ez = (math.sqrt(max(propagate(row, self._covariance), 0.0)) for row in jac)
        return Point(0.0, ex, ey, ez)

    @property
    def beta(self) -> float:
        r""":math:`|\mathbf{v}|/c`."""
        return float(np.linalg.norm(self.values[4:7])) / units.speed_of_light

    @property
    def front(self) -> Point:
        return self._event[0]

    @property
    def back(self) -> Point:
        return self._event[-1]

    def front_width(self) -> Point:
        """Time resolution and box extents of the earliest hit's volume."""
        box = self._boxes[0]
        w = box.extent
        return Point(self._time_resolutions[0], float(w[0]), float(w[1]), float(w[2]))

    # statistics
    def squared_residual_vector(self) -> List[float]:
        return list(self._squared_residuals)

    def residual_vector(self) -> List[float]:
        return [math.sqrt(r) for r in self._squared_residuals]

    def squared_residual(self) -> float:
        return math.fsum(self._squared_residuals)

    def residual(self) -> float:
        return math.sqrt(self.squared_residual())

    def chi_squared_vector(self) -> List[float]:
        return list(self._squared_residuals)

    def chi_squared(self) -> float:
        return math.fsum(self._squared_residuals)

    def degrees_of_freedom(self) -> int:
        return 3 * len(self._event) - 6

    def chi_squared_per_dof(self) -> float:
        dof = self.degrees_of_freedom()
        if dof <= 0:
            return float("nan")
        return self.chi_squared() / dof

    def p_value(self) -> float:
        return chi_squared_p_value(self.chi_squared(), self.degrees_of_freedom())

    def __str__(self) -> str:
        lines = ["Track Parameters:"]
        for name, p in zip(PARAMETER_NAMES, self._parameters):
            lines.append(f"  {name}: {p}")
        lines.append("Event:")
        for detector, point in zip(self._detectors, self._event):
            lines.append(f"  {detector} {point}")
        chi2_terms = " + ".join(f"{r:.7g}" for r in self._squared_residuals)
        lines.append("Statistics:")
        lines.append(f"  chi2:     {self.chi_squared():.7g} = {chi2_terms}")
        lines.append(f"  dof:      {self.degrees_of_freedom()}")
        lines.append(f"  chi2/dof: {self.chi_squared_per_dof():.7g}")
        lines.append(f"  converged: {self._converged}")
        if self._event and self.vz.value != 0:
            lines.append("Dynamics:")
            lines.append(f"  beta:  {self.beta:.6g}")
            lines.append(f"  front: {self.at_z(self.front.z)}")
            lines.append(f"  back:  {self.at_z(self.back.z)}")
        lines.append("Covariance:")
        lines.append(np.array2string(self._covariance, precision=4, max_line_width=120))
        return "\n".join(lines)


def fit_seeds(
    seeds: Sequence[Sequence[Point]],
    settings: Optional[FitSettings],
    geometry: Geometry,
    max_workers: Optional[int] = None,
) -> List[Track]:
    r"""
    Fit every seed into a :class:`Track`, preserving seed order.

    Parameters
    ----------
    seeds : sequence of sequence of Point
    settings : FitSettings, optional
    geometry : Geometry
        Must tolerate concurrent read-only queries when ``max_workers > 1``.
    max_workers : int, optional
        Size of the :class:`concurrent.futures.ThreadPoolExecutor`. ``None``
        or ``1`` fits sequentially.
    """
    if not max_workers or max_workers <= 1 or len(seeds) <= 1:
        return [Track(seed, settings, geometry) for seed in seeds]

    with ThreadPoolExecutor(max_workers=max_workers) as exe:
        futures = [exe.submit(Track, seed, settings, geometry) for seed in seeds]
        out = [f.result() for f in futures]
    logger.debug("fit_seeds: %d tracks on %d workers", len(out), max_workers)
    return out

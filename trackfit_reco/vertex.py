from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from trackfit_reco.minimizer import FitParameter, get_minimizer
from trackfit_reco.points import Point
from trackfit_reco.stat import chi_squared_p_value, propagate_average, uniform
from trackfit_reco.track import FitSettings, Track

logger = logging.getLogger(__name__)

_DEFAULT_PARAMETERS: Tuple[FitParameter, ...] = (FitParameter(),) * 4
_ZERO_DIRECTION = np.full(3, 1.0 / math.sqrt(3.0))
_MIN_VARIANCE = 1e-300


class Parameter(Enum):
    T = 0
    X = 1
    Y = 2
    Z = 3


@dataclass(frozen=True)
class _VertexFit:
    tracks: Tuple[Track, ...] = ()
    guess: Tuple[FitParameter, ...] = _DEFAULT_PARAMETERS
    final: Tuple[FitParameter, ...] = _DEFAULT_PARAMETERS
    covariance: np.ndarray = field(default_factory=lambda: np.zeros((4, 4), dtype=np.float64))
    chi_squared: Tuple[float, ...] = ()
    valid: bool = False


class _TrackArrays:
    r"""
    Track parameters and covariances stacked for vectorized distance evaluation.

    Each track's 6x6 free-parameter covariance is embedded into a 7x7 matrix
    with a zero row and column at its fixed parameter, so the propagation
    :math:`\sigma^2 = g^\top C g` can use the full 7-gradient.
    """

    def __init__(self, tracks: Sequence[Track]) -> None:
        m = len(tracks)
        values = np.array([t.values for t in tracks], dtype=np.float64).reshape(m, 7)
        self.t0 = values[:, 0]
        self.p0 = values[:, 1:4]
        self.v = values[:, 4:7]
        self.cov = np.zeros((m, 7, 7), dtype=np.float64)
        for k, track in enumerate(tracks):
            keep = np.ones(7, dtype=bool)
            keep[_fixed_index(track)] = False
            free = np.flatnonzero(keep)
            self.cov[k][np.ix_(free, free)] = track.covariance_matrix

    def distances(self, t: float, x: float, y: float, z: float) -> Tuple[np.ndarray, np.ndarray]:
        r"""
        Distance :math:`D` from every track at time ``t`` to ``(x, y, z)`` and its error.

        With :math:`\mathbf{u}` the unit separation and :math:`\Delta t = t-t_0`
        the gradient of :math:`D` w.r.t. :math:`(t_0, x_0, y_0, z_0, v_x, v_y, v_z)` is

        .. math::

            g = \left(-\mathbf{v}\cdot\mathbf{u},\ \mathbf{u},\ \Delta t\,\mathbf{u}\right).

        A zero separation has no direction; :math:`\mathbf{u}=(1,1,1)/\sqrt3` is used.
        """
        dt = t - self.t0
        sep = self.p0 + self.v * dt[:, None] - np.array((x, y, z), dtype=np.float64)
        D = np.sqrt(np.einsum("ij,ij->i", sep, sep))
        u = np.empty_like(sep)
        nonzero = D > 0
        u[nonzero] = sep[nonzero] / D[nonzero, None]
        u[~nonzero] = _ZERO_DIRECTION
        g = np.empty((sep.shape[0], 7), dtype=np.float64)
        g[:, 0] = -np.einsum("ij,ij->i", self.v, u)
        g[:, 1:4] = u
        g[:, 4:7] = dt[:, None] * u
        var = np.einsum("mi,mij,mj->m", g, self.cov, g)
        sigma = np.sqrt(np.maximum(var, _MIN_VARIANCE))
        return D, sigma


def _fixed_index(track: Track) -> int:
    return ("T0", "X0", "Y0", "Z0").index(track.fixed_parameter)


def _guess_vertex(tracks: Sequence[Track]) -> Tuple[FitParameter, ...]:
    r"""
    Average of every track evaluated at the time of its earliest hit.

    Errors combine per-track widths with
    :func:`~trackfit_reco.stat.propagate_average`: the time width is the
    front volume's time resolution, spatial widths are the track's
    propagated position errors at that time, each scaled by :math:`1/\sqrt{12}`.
    """
    fronts: List[Point] = []
    widths: List[Point] = []
    for track in tracks:
        front_t = track.front.t
        error = track.error_at_t(front_t)
        fronts.append(track.at_t(front_t))
        widths.append(Point(track.front_width().t, error.x, error.y, error.z))

    size = len(fronts)
    average = sum(fronts, Point()) / size
    return (
        FitParameter(average.t, propagate_average(w.t for w in widths)),
        FitParameter(average.x, propagate_average(uniform(w.x) for w in widths)),
        FitParameter(average.y, propagate_average(uniform(w.y) for w in widths)),
        FitParameter(average.z, propagate_average(uniform(w.z) for w in widths)),
    )


class Vertex:
    r"""
    Common space-time origin of a set of tracks.

    The vertex :math:`(t, x, y, z)` minimizes the heteroscedastic Gaussian
    negative log-likelihood

    .. math::

        \sum_{k} \tfrac12\left(\frac{D_k}{\sigma_k}\right)^2 + \log\sigma_k,

    where :math:`D_k` is the distance between track :math:`k` at time
    :math:`t` and :math:`(x, y, z)`, and :math:`\sigma_k` its first-order
    error from the track's covariance.

    Every mutator (:meth:`reset`, :meth:`insert`, :meth:`remove`,
    :meth:`prune_on_chi_squared`) refits from scratch and swaps in a new
    immutable fit snapshot, so readers never see a half-updated state.

    Parameters
    ----------
    tracks : iterable of Track, optional
        With fewer than two tracks no fit is run.
    settings : FitSettings, optional
        Minimizer knobs; ``settings.fixed`` is ignored (no vertex parameter is fixed).
    """

    Parameter = Parameter

    def __init__(self, tracks: Iterable[Track] = (), settings: Optional[FitSettings] = None) -> None:
        self._settings = settings if settings is not None else FitSettings()
        self._fit = _VertexFit()
        self.reset(tracks)

    # fitting
    def _refit(self, tracks: Tuple[Track, ...]) -> _VertexFit:
        size = len(tracks)
        if size < 2:
            return _VertexFit(tracks=tracks, chi_squared=(0.0,) * size)

        guess = _guess_vertex(tracks)
        arrays = _TrackArrays(tracks)

        def nll(params: np.ndarray) -> float:
            D, sigma = arrays.distances(*params)
            return float(np.sum(0.5 * (D / sigma) ** 2 + np.log(sigma)))

        result = get_minimizer(self._settings.minimizer).minimize(nll, guess, [False] * 4, self._settings)
        if not result.valid:
            logger.warning("Vertex fit over %d tracks diverged; keeping guess only.", size)
            return _VertexFit(tracks=tracks, guess=guess, chi_squared=(0.0,) * size)

        final = tuple(FitParameter(float(v), float(e)) for v, e in zip(result.values, result.errors))
        D, sigma = arrays.distances(*result.values)
        chi2 = tuple(float(r) for r in (D / sigma) ** 2)
        return _VertexFit(
            tracks=tracks,
            guess=guess,
            final=final,
            covariance=np.asarray(result.covariance, dtype=np.float64).reshape(4, 4),
            chi_squared=chi2,
            valid=True,
        )

    def reset(self, tracks: Iterable[Track]) -> int:
        """Replace all tracks and refit; returns the new number of tracks."""
        self._fit = self._refit(tuple(tracks))
        return len(self._fit.tracks)

    def insert(self, tracks: Union[Track, Iterable[Track]]) -> int:
        """Add tracks not already in the vertex and refit."""
        if isinstance(tracks, Track):
            tracks = [tracks]
        current = list(self._fit.tracks)
        for track in tracks:
            if not any(track is other for other in current):
                current.append(track)
        return self.reset(current)

    def remove(self, indices: Union[int, Iterable[int]]) -> int:
        r"""
        Remove tracks by position and refit.

        A single out-of-range index is a no-op returning the current size
        (no refit). Out-of-range entries of an index collection are ignored.
        """
        size = self.size
        if isinstance(indices, (int, np.integer)):
            if not 0 <= indices < size:
                return size
            indices = {int(indices)}
        drop = {int(i) for i in indices}
        return self.reset(t for i, t in enumerate(self._fit.tracks) if i not in drop)

    def prune_on_chi_squared(self, max_chi_squared: float) -> int:
        """Remove every track whose chi-squared contribution exceeds ``max_chi_squared`` and refit."""
        chi2 = self._fit.chi_squared
        return self.remove({i for i, c in enumerate(chi2) if c > max_chi_squared})

    # accessors
    @property
    def size(self) -> int:
        return len(self._fit.tracks)

    def __len__(self) -> int:
        return self.size

    @property
    def tracks(self) -> List[Track]:
        return list(self._fit.tracks)

    @property
    def guess_fit(self) -> Tuple[FitParameter, ...]:
        return self._fit.guess

    @property
    def final_fit(self) -> Tuple[FitParameter, ...]:
        return self._fit.final

    def fit_of(self, parameter: Parameter) -> FitParameter:
        return self._fit.final[Parameter(parameter).value]

    def value(self, parameter: Parameter) -> float:
        return self.fit_of(parameter).value

    def error(self, parameter: Parameter) -> float:
        return self.fit_of(parameter).error

    @property
    def t(self) -> FitParameter:
        return self._fit.final[0]

    @property
    def x(self) -> FitParameter:
        return self._fit.final[1]

    @property
    def y(self) -> FitParameter:
        return self._fit.final[2]

    @property
    def z(self) -> FitParameter:
        return self._fit.final[3]

    def point(self) -> Point:
        return Point(*(p.value for p in self._fit.final))

    def point_error(self) -> Point:
        return Point(*(p.error for p in self._fit.final))

    def fit_converged(self) -> bool:
        return self._fit.valid

    def fit_diverged(self) -> bool:
        """Guess was made but the final parameters were reset after a failed fit."""
        fit = self._fit
        return fit.guess != _DEFAULT_PARAMETERS and fit.final == _DEFAULT_PARAMETERS

    # statistics
    def distances(self) -> List[float]:
        if not self._fit.tracks:
            return []
        D, _ = _TrackArrays(self._fit.tracks).distances(*self.point())
        return [float(d) for d in D]

    def distance_errors(self) -> List[float]:
        if not self._fit.tracks:
            return []
        _, sigma = _TrackArrays(self._fit.tracks).distances(*self.point())
        return [float(s) for s in sigma]

    def chi_squared_vector(self) -> List[float]:
        return list(self._fit.chi_squared)

    def chi_squared(self) -> float:
        return math.fsum(self._fit.chi_squared)

    def degrees_of_freedom(self) -> int:
        return 4

    def chi_squared_per_dof(self) -> float:
        return self.chi_squared() / self.degrees_of_freedom()

    def p_value(self) -> float:
        return chi_squared_p_value(self.chi_squared(), self.degrees_of_freedom())

    def covariance(self, p: Parameter, q: Parameter) -> float:
        return float(self._fit.covariance[Parameter(p).value, Parameter(q).value])

    def variance(self, parameter: Parameter) -> float:
        return self.covariance(parameter, parameter)

    @property
    def covariance_matrix(self) -> np.ndarray:
        return self._fit.covariance.copy()

    def __str__(self) -> str:
        lines = ["Vertex Parameters:"]
        for p, fit in zip(Parameter, self._fit.final):
            lines.append(f"  {p.name}: {fit}")
        lines.append("Guess:")
        for p, fit in zip(Parameter, self._fit.guess):
            lines.append(f"  {p.name}: {fit}")
        chi2_terms = " + ".join(f"{c:.7g}" for c in self._fit.chi_squared)
        lines.append("Statistics:")
        lines.append(f"  tracks:   {self.size}")
        lines.append(f"  chi2:     {self.chi_squared():.7g} = {chi2_terms}")
        lines.append(f"  dof:      {self.degrees_of_freedom()}")
        lines.append(f"  chi2/dof: {self.chi_squared_per_dof():.7g}")
        lines.append(f"  diverged: {self.fit_diverged()}")
        lines.append("Covariance:")
        lines.append(np.array2string(self._fit.covariance, precision=4, max_line_width=120))
        return "\n".join(lines)

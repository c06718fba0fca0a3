from __future__ import annotations

import logging
from typing import Dict, Mapping, NamedTuple, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
from scipy.spatial import cKDTree

from trackfit_reco import units
from trackfit_reco.points import Point

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


class BoxVolume(NamedTuple):
    r"""
    Axis-aligned detector volume with ``center``, ``min`` and ``max`` corners.

    The spatial variance model used by the track fit treats a hit as uniformly
    distributed inside its box, so along axis :math:`i` the variance is
    :math:`(\max_i-\min_i)^2/12`.
    """
    center: Vector3
    min: Vector3
    max: Vector3

    @classmethod
    def from_center(cls, center: Vector3, widths: Vector3) -> "BoxVolume":
        c = tuple(float(v) for v in center)
        h = tuple(0.5 * float(w) for w in widths)
        return cls(c, (c[0] - h[0], c[1] - h[1], c[2] - h[2]), (c[0] + h[0], c[1] + h[1], c[2] + h[2]))

    @property
    def extent(self) -> np.ndarray:
        """Full side lengths ``max - min`` as a ``(3,)`` array."""
        return np.subtract(self.max, self.min, dtype=np.float64)

    def contains(self, xyz: np.ndarray) -> bool:
        return bool(np.all(xyz >= self.min) and np.all(xyz <= self.max))


@runtime_checkable
class Geometry(Protocol):
    r"""
    Read-only detector geometry queries used by the fits.

    Implementations must be safe to query from several threads at once; the
    fits never mutate them.
    """

    def volume_of(self, point: Point) -> str: ...

    def bounding_box_of(self, volume: str) -> BoxVolume: ...

    def time_resolution_of(self, volume: str) -> float: ...


class BoxGeometry:
    r"""
    Geometry made of named, axis-aligned :class:`BoxVolume` objects.

    Volume lookup uses a :class:`scipy.spatial.cKDTree` over box centers. A
    point can only be inside a box whose center lies within the box's
    half-diagonal, so a single radius query with the largest half-diagonal
    :math:`\rho_{\max}` yields every candidate; the closest containing box wins
    (ties broken by insertion order). Points outside every box resolve to
    :attr:`WORLD`, whose bounding box is the union of all boxes unless given.

    Parameters
    ----------
    boxes : mapping of str -> BoxVolume
        Named detector volumes. Names must not collide with :attr:`WORLD`.
    default_time_resolution : float, optional
        Timing uncertainty for volumes without an explicit entry.
    time_resolutions : mapping of str -> float, optional
        Per-volume timing uncertainty.
    world : BoxVolume, optional
        Bounding box reported for :attr:`WORLD`.

    Raises
    ------
    ValueError
        If ``boxes`` is empty or uses the reserved world name.
    """

    WORLD = "World"

    def __init__(
        self,
        boxes: Mapping[str, BoxVolume],
        *,
        default_time_resolution: float = 1.5 * units.time,
        time_resolutions: Optional[Mapping[str, float]] = None,
        world: Optional[BoxVolume] = None,
    ) -> None:
        if not boxes:
            raise ValueError("BoxGeometry needs at least one volume.")
        if self.WORLD in boxes:
            raise ValueError(f"Volume name {self.WORLD!r} is reserved.")

        self._names = list(boxes)
        self._boxes: Dict[str, BoxVolume] = {name: BoxVolume(*boxes[name]) for name in self._names}
        self.default_time_resolution = float(default_time_resolution)
        self._time_resolutions = {k: float(v) for k, v in (time_resolutions or {}).items()}

        mins = np.array([b.min for b in self._boxes.values()], dtype=np.float64)
        maxs = np.array([b.max for b in self._boxes.values()], dtype=np.float64)
        self._mins = np.ascontiguousarray(mins)
        self._maxs = np.ascontiguousarray(maxs)
        self._centers = np.ascontiguousarray(np.array([b.center for b in self._boxes.values()], dtype=np.float64))
        # padded so points on a box corner still reach its center
        self._radius = float(0.5 * np.linalg.norm(maxs - mins, axis=1).max()) * (1.0 + 1e-9) + 1e-12
        self._tree = cKDTree(self._centers, balanced_tree=True, compact_nodes=True)

        if world is None:
            lo = mins.min(axis=0)
            hi = maxs.max(axis=0)
            world = BoxVolume(tuple(0.5 * (lo + hi)), tuple(lo), tuple(hi))
        self._world = world

        logger.debug("BoxGeometry with %d volumes (lookup radius %.4g)", len(self._names), self._radius)

    def __len__(self) -> int:
        return len(self._names)

    def volume_of(self, point: Point) -> str:
        xyz = np.array((point.x, point.y, point.z), dtype=np.float64)
        candidates = self._tree.query_ball_point(xyz, r=self._radius)
        if not candidates:
            return self.WORLD
        idx = np.asarray(candidates, dtype=np.int64)
        inside = np.all((self._mins[idx] <= xyz) & (xyz <= self._maxs[idx]), axis=1)
        idx = idx[inside]
        if idx.size == 0:
            return self.WORLD
        d2 = np.einsum("ij,ij->i", self._centers[idx] - xyz, self._centers[idx] - xyz)
        order = np.lexsort((idx, d2))
        return self._names[int(idx[order[0]])]

    def bounding_box_of(self, volume: str) -> BoxVolume:
        if volume == self.WORLD:
            return self._world
        return self._boxes[volume]

    def time_resolution_of(self, volume: str) -> float:
        return self._time_resolutions.get(volume, self.default_time_resolution)

    def limits_of_volume(self, point: Point) -> BoxVolume:
        return self.bounding_box_of(self.volume_of(point))

    def time_resolution_of_volume(self, point: Point) -> float:
        return self.time_resolution_of(self.volume_of(point))


def find_center(point: Point, geometry: Geometry) -> Point:
    """Replace the spatial part of ``point`` with its volume's center (time kept)."""
    cx, cy, cz = geometry.bounding_box_of(geometry.volume_of(point)).center
    return Point(point.t, float(cx), float(cy), float(cz))

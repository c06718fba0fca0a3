from __future__ import annotations

import bisect
from enum import Enum
from typing import Iterable, List, NamedTuple, Sequence

import numpy as np

from trackfit_reco import kernels


class Coordinate(Enum):
    """Space-time axis; the value is the axis' index inside a :class:`Point`."""
    T = 0
    X = 1
    Y = 2
    Z = 3

    @classmethod
    def parse(cls, value: "Coordinate | str | int") -> "Coordinate":
        r"""
        Coerce ``"z"``, ``"Z"``, ``3`` or ``Coordinate.Z`` into a :class:`Coordinate`.

        Raises
        ------
        ValueError
            If ``value`` names no axis.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError as e:
                raise ValueError(f"Unknown coordinate axis: {value!r}") from e
        return cls(int(value))


class Point(NamedTuple):
    r"""
    Immutable space-time point :math:`(t, x, y, z)`.

    Tuple comparison gives the total order by ``t``, then ``x``, ``y``, ``z``,
    which is what de-duplication and exact point searches rely on. Arithmetic
    is component-wise:

    .. math::

        p + q = (t_p+t_q,\ x_p+x_q,\ y_p+y_q,\ z_p+z_q), \qquad
        p / s = (t_p/s,\ x_p/s,\ y_p/s,\ z_p/s).
    """
    t: float = 0.0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: "Point") -> "Point":  # type: ignore[override]
        return Point(self.t + other.t, self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.t - other.t, self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scale: float) -> "Point":  # type: ignore[override]
        return Point(self.t * scale, self.x * scale, self.y * scale, self.z * scale)

    __rmul__ = __mul__

    def __truediv__(self, scale: float) -> "Point":
        return Point(self.t / scale, self.x / scale, self.y / scale, self.z / scale)

    def __str__(self) -> str:
        return f"({self.t:.6g}, {self.x:.6g}, {self.y:.6g}, {self.z:.6g})"

    def coordinate(self, axis: Coordinate) -> float:
        return self[axis.value]

    @property
    def xyz(self) -> np.ndarray:
        """Spatial part as a ``(3,)`` ``float64`` array."""
        return np.array((self.x, self.y, self.z), dtype=np.float64)


Event = List[Point]


def as_array(points: Sequence[Point]) -> np.ndarray:
    """Stack points into a C-contiguous ``(N, 4)`` ``float64`` array of ``(t, x, y, z)``."""
    if len(points) == 0:
        return np.empty((0, 4), dtype=np.float64)
    return np.ascontiguousarray(np.asarray(points, dtype=np.float64).reshape(-1, 4))


def as_points(array: np.ndarray) -> Event:
    """Inverse of :func:`as_array`."""
    arr = np.asarray(array, dtype=np.float64).reshape(-1, 4)
    return [Point(*map(float, row)) for row in arr]


def t_sort(points: Iterable[Point]) -> Event:
    """Stable copy of ``points`` ordered by time only."""
    return sorted(points, key=lambda p: p.t)


def coordinate_sort(points: Iterable[Point], coordinate: Coordinate) -> Event:
    """Stable copy of ``points`` ordered by one coordinate."""
    index = coordinate.value
    return sorted(points, key=lambda p: p[index])


def mean(points: Sequence[Point]) -> Point:
    """Coordinate-wise average; the origin for an empty sequence."""
    if len(points) == 0:
        return Point()
    return sum(points, Point()) / len(points)


def within_dr(first: Point, second: Point, ds: Point) -> bool:
    r"""
    ``True`` iff :math:`|a_i-b_i|\le ds_i` for every coordinate :math:`i\in\{t,x,y,z\}`.
    """
    return (abs(first.t - second.t) <= ds.t
            and abs(first.x - second.x) <= ds.x
            and abs(first.y - second.y) <= ds.y
            and abs(first.z - second.z) <= ds.z)


def point_line_distance(point: Point, begin: Point, end: Point) -> float:
    """Spatial distance from ``point`` to the line through ``begin`` and ``end``."""
    return float(kernels.point_line_distance(point.xyz, begin.xyz, end.xyz))


def binary_find_first(event: Sequence[Point], point: Point) -> int:
    r"""
    Index of the first occurrence of ``point`` in a time-sorted ``event``.

    The search bisects on time and then scans the run of equal times for an
    exact match.

    Returns
    -------
    int
        Index of the match, or ``-1`` when ``point`` is absent.
    """
    index = bisect.bisect_left(event, point.t, key=lambda p: p.t)
    size = len(event)
    while index < size and event[index].t == point.t:
        if event[index] == point:
            return index
        index += 1
    return -1

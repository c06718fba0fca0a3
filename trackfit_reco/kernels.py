from __future__ import annotations

import math

import numpy as np
from numba import njit

__all__ = [
    "point_line_distance",
    "max_line_deviation",
]


@njit(cache=True)
def point_line_distance(point: np.ndarray, begin: np.ndarray, end: np.ndarray) -> float:
    r"""
    Perpendicular distance from a 3D point to the line through two points.

    With :math:`\mathbf{d} = \mathbf{e}-\mathbf{b}` and
    :math:`\mathbf{p}' = \mathbf{p}-\mathbf{b}`,

    .. math::

        \delta \;=\; \frac{\lVert \mathbf{p}' \times \mathbf{d} \rVert}{\lVert \mathbf{d} \rVert}.

    Parameters
    ----------
    point, begin, end : ndarray, shape (3,)
        Spatial coordinates ``(x, y, z)`` as ``float64``.

    Returns
    -------
    float
        The distance :math:`\delta`. If ``begin == end`` the line is
        degenerate and the plain distance :math:`\lVert \mathbf{p}' \rVert`
        is returned.
    """
    dx = end[0] - begin[0]
    dy = end[1] - begin[1]
    dz = end[2] - begin[2]
    px = point[0] - begin[0]
    py = point[1] - begin[1]
    pz = point[2] - begin[2]
    norm2 = dx * dx + dy * dy + dz * dz
    if norm2 == 0.0:
        return math.sqrt(px * px + py * py + pz * pz)
    cx = py * dz - pz * dy
    cy = pz * dx - px * dz
    cz = px * dy - py * dx
    return math.sqrt((cx * cx + cy * cy + cz * cz) / norm2)


@njit(cache=True)
def max_line_deviation(xyz: np.ndarray) -> float:
    r"""
    Largest distance of an interior point to the line joining the endpoints.

    For rows :math:`\mathbf{p}_0,\dots,\mathbf{p}_{k-1}` this is

    .. math::

        \max_{0<i<k-1} \delta(\mathbf{p}_i;\ \mathbf{p}_0, \mathbf{p}_{k-1}),

    and ``0.0`` when there are no interior points (:math:`k<3`).

    Parameters
    ----------
    xyz : ndarray, shape (k, 3)
        Ordered spatial coordinates (``float64``, C-contiguous).

    Returns
    -------
    float
    """
    k = xyz.shape[0]
    out = 0.0
    if k < 3:
        return out
    begin = xyz[0]
    end = xyz[k - 1]
    for i in range(1, k - 1):
        d = point_line_distance(xyz[i], begin, end)
        if d > out:
            out = d
    return out

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from trackfit_reco.points import Event, Point, t_sort, within_dr
from trackfit_reco.volumes import Geometry, find_center

logger = logging.getLogger(__name__)


def time_normalize(event: Sequence[Point]) -> Event:
    r"""
    Time-sort ``event`` and shift every time so the earliest hit is at :math:`t=0`.
    """
    if len(event) == 0:
        return []
    out = t_sort(event)
    offset = Point(out[0].t, 0.0, 0.0, 0.0)
    return [p - offset for p in out]


def clusters(event: Sequence[Point], ds: Point) -> List[Event]:
    r"""
    Group hits that are close in space-time around a time-ordered anchor.

    Algorithm
    ---------
    Points are time-sorted. Starting at the first unconsumed point (the
    *anchor* :math:`a`), every later unconsumed point :math:`p` with
    :math:`p_t \le a_t + ds_t` is absorbed when
    :math:`|p_i-a_i|\le ds_i` for all four coordinates. The next anchor is
    the first unconsumed point after the current anchor; when some in-window
    point was skipped that is the first skipped one, so it can open its own
    cluster instead of being lost to the first-seen neighbour.

    Parameters
    ----------
    event : sequence of Point
        Hits in any order.
    ds : Point
        Per-coordinate tolerance box ``(dt, dx, dy, dz)``.

    Returns
    -------
    list of list of Point
        Clusters in the order their anchors were visited, each starting with
        its anchor. Every input lands in exactly one cluster.
    """
    size = len(event)
    if size == 0:
        return []

    points = t_sort(event)
    consumed = np.zeros(size, dtype=bool)
    out: List[Event] = []

    index = 0
    while index < size:
        anchor = points[index]
        consumed[index] = True
        window_end = anchor.t + ds.t

        cluster = [anchor]
        for j in range(index + 1, size):
            nxt = points[j]
            if nxt.t > window_end:
                break
            if consumed[j]:
                continue
            if within_dr(anchor, nxt, ds):
                consumed[j] = True
                cluster.append(nxt)

        out.append(cluster)

        remaining = np.flatnonzero(~consumed[index + 1:])
        index = index + 1 + int(remaining[0]) if remaining.size else size

    logger.debug("clusters: %d points in %d clusters", size, len(out))
    return out


def collapse(event: Sequence[Point], ds: Point) -> Event:
    r"""
    Merge hits that are close in space-time into their coordinate-wise mean.

    Each group from :func:`clusters` is replaced by its mean, so the result
    is never longer than ``event``.

    Examples
    --------
    >>> collapse([Point(0, 0, 0, 0), Point(0.5, 0.2, 0, 0), Point(10, 0, 0, 0)],
    ...          Point(1, 1, 1, 1))
    [Point(t=0.25, x=0.1, y=0.0, z=0.0), Point(t=10.0, x=0.0, y=0.0, z=0.0)]
    """
    return [sum(group, Point()) / len(group) for group in clusters(event, ds)]


def find_centers(event: Sequence[Point], geometry: Geometry) -> Event:
    """Move every hit to the center of the detector volume containing it."""
    return [find_center(point, geometry) for point in event]

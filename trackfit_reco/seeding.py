from __future__ import annotations

import itertools
import logging
import math
from typing import Iterator, List, Sequence

import numpy as np

from trackfit_reco.clustering import collapse
from trackfit_reco.kernels import max_line_deviation
from trackfit_reco.partition import EventPartition, partition
from trackfit_reco.points import Coordinate, Event, Point, t_sort

logger = logging.getLogger(__name__)

Seed = List[Point]


def fast_line_check(points: Sequence[Point], threshold: float) -> bool:
    r"""
    Check that time-ordered ``points`` lie close to one straight line.

    Interior points are measured against the spatial line through the first
    and the last point:

    .. math::

        \max_{0<i<k-1}\ \delta(\mathbf{p}_i;\ \mathbf{p}_0,\mathbf{p}_{k-1})
        \;\le\; \text{threshold}.

    Sequences with fewer than three points are always accepted.
    """
    if len(points) < 3:
        return True
    xyz = np.ascontiguousarray([(p.x, p.y, p.z) for p in points], dtype=np.float64)
    return bool(max_line_deviation(xyz) <= threshold)


def seed_count_estimate(size: int, n: int) -> float:
    r"""
    Rough number of seeds for ``size`` points and seeds of size ``n``.

    Stirling's approximation of :math:`\binom{\text{size}}{n}\approx
    \text{size}^n/n!` with :math:`n!\approx(n/e)^n`.
    """
    if n <= 0:
        return 0.0
    return float(size) ** n / (n / math.e) ** n


def _candidates(layers: EventPartition, n: int) -> Iterator[Seed]:
    for chosen in itertools.combinations(layers.parts, n):
        for combo in itertools.product(*chosen):
            yield t_sort(combo)


def seed(
    n: int,
    event: Sequence[Point],
    collapse_ds: Point,
    layer_dz: float,
    line_dr: float,
    layer_axis: Coordinate = Coordinate.Z,
) -> List[Seed]:
    r"""
    Build every ``n``-point seed with one hit per layer that passes the line check.

    The event is first collapsed with ``collapse_ds`` and then partitioned
    into layers of depth ``layer_dz`` along ``layer_axis``. Each choice of
    ``n`` distinct layers (ascending) and one point per chosen layer is
    time-sorted and kept when :func:`fast_line_check` accepts it with
    tolerance ``line_dr``. Candidates are generated lazily.

    Parameters
    ----------
    n : int
        Seed size. Values ``<= 2`` yield no seeds.
    event : sequence of Point
    collapse_ds : Point
        Clustering tolerance, see :func:`trackfit_reco.clustering.collapse`.
    layer_dz : float
        Layer depth along ``layer_axis``.
    line_dr : float
        Maximum perpendicular deviation of interior points.
    layer_axis : Coordinate, optional

    Returns
    -------
    list of list of Point
        Time-sorted seeds in enumeration order; empty when there are fewer
        layers than ``n``.
    """
    if n <= 2:
        return []

    points: Event = collapse(event, collapse_ds)
    layers = partition(points, layer_dz, layer_axis)
    if len(layers) < n:
        logger.debug("seed: %d layers < seed size %d", len(layers), n)
        return []

    logger.debug("seed: %d points in %d layers, ~%.3g expected seeds",
                 len(points), len(layers), seed_count_estimate(len(points), n))

    out = [candidate for candidate in _candidates(layers, n) if fast_line_check(candidate, line_dr)]
    logger.debug("seed: %d seeds of size %d", len(out), n)
    return out

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from trackfit_reco.points import Coordinate, Event, Point, as_array, t_sort

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EventPartition:
    r"""
    Points bucketed into layers along one axis.

    Attributes
    ----------
    coordinate : Coordinate
        Axis used to form the layers.
    parts : list of list of Point
        Layers in increasing order of ``coordinate``; each one time-sorted.
    """
    coordinate: Coordinate = Coordinate.Z
    parts: List[Event] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.parts)

    def __iter__(self):
        return iter(self.parts)

    def __getitem__(self, index: int) -> Event:
        return self.parts[index]

    def sizes(self) -> List[int]:
        return [len(layer) for layer in self.parts]


def partition(
    points: Sequence[Point],
    interval: float,
    coordinate: Coordinate = Coordinate.Z,
) -> EventPartition:
    r"""
    Split ``points`` into layers of width ``interval`` along ``coordinate``.

    After a stable sort by the chosen axis, a layer opens at its first point
    :math:`q` and keeps every consecutive point :math:`p` with
    :math:`p_c \le q_c + \text{interval}`; the first point beyond that opens
    the next layer. Layer boundaries therefore follow the data, not a fixed
    grid.

    Parameters
    ----------
    points : sequence of Point
    interval : float
        Layer depth along ``coordinate``.
    coordinate : Coordinate, optional
        Partition axis (default ``Z``).

    Returns
    -------
    EventPartition
        Empty when ``points`` is empty. The union of the layers is exactly
        the input multiset.
    """
    coordinate = Coordinate.parse(coordinate)
    out = EventPartition(coordinate=coordinate)
    if len(points) == 0:
        return out

    arr = as_array(points)
    values = arr[:, coordinate.value]
    order = np.argsort(values, kind="stable")
    values = values[order]

    size = order.size
    start = 0
    while start < size:
        limit = values[start] + interval
        # values are sorted, so the layer is the run up to the first value past the limit
        stop = start + int(np.searchsorted(values[start:], limit, side="right"))
        stop = max(stop, start + 1)
        out.parts.append(t_sort(points[int(i)] for i in order[start:stop]))
        start = stop

    logger.debug("partition along %s: %d points -> %d layers", coordinate.name, size, len(out.parts))
    return out

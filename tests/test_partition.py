from collections import Counter

import numpy as np
import pytest

from trackfit_reco.partition import EventPartition, partition
from trackfit_reco.points import Coordinate, Point


def test_partition_empty():
    out = partition([], 1.0)
    assert isinstance(out, EventPartition)
    assert len(out) == 0


def test_partition_layers_follow_first_point():
    pts = [Point(3, 0, 0, 0.0), Point(1, 0, 0, 0.9), Point(2, 0, 0, 1.0), Point(0, 0, 0, 2.5)]
    out = partition(pts, 1.0)
    assert out.sizes() == [3, 1]
    # layers are time-sorted
    assert [p.t for p in out[0]] == [1, 2, 3]
    assert out[1] == [Point(0, 0, 0, 2.5)]


@pytest.mark.parametrize("axis", [Coordinate.Z, Coordinate.X, Coordinate.T])
def test_partition_is_lossless_and_bounded(axis):
    rng = np.random.default_rng(7)
    pts = [Point(*map(float, row)) for row in rng.uniform(0, 50, size=(80, 4))]
    interval = 4.0
    out = partition(pts, interval, axis)
    assert out.coordinate is axis

    flat = [p for layer in out for p in layer]
    assert Counter(flat) == Counter(pts)

    previous = -np.inf
    for layer in out:
        values = [p.coordinate(axis) for p in layer]
        assert max(values) - min(values) <= interval
        assert min(values) > previous
        previous = max(values)
        assert [p.t for p in layer] == sorted(p.t for p in layer)

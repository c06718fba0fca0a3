import numpy as np
import pytest

from trackfit_reco.clustering import clusters, collapse, find_centers, time_normalize
from trackfit_reco.points import Point, within_dr
from trackfit_reco.volumes import BoxGeometry, BoxVolume


DS = Point(1.0, 1.0, 1.0, 1.0)


def _random_event(seed: int, n: int = 60):
    rng = np.random.default_rng(seed)
    arr = rng.uniform(0.0, 20.0, size=(n, 4))
    return [Point(*map(float, row)) for row in arr]


def test_collapse_empty():
    assert collapse([], DS) == []


def test_collapse_merges_close_hits():
    event = [Point(10, 0, 0, 0), Point(0, 0, 0, 0), Point(0.5, 0.2, 0, 0)]
    out = collapse(event, DS)
    assert len(out) == 2
    assert out[0] == pytest.approx(Point(0.25, 0.1, 0.0, 0.0))
    assert out[1] == Point(10, 0, 0, 0)


def test_collapse_skipped_point_opens_its_own_cluster():
    # the second hit is in the time window but too far in x
    event = [Point(0, 0, 0, 0), Point(0.2, 5, 0, 0), Point(0.4, 0.5, 0, 0), Point(0.6, 5.5, 0, 0)]
    out = collapse(event, DS)
    assert len(out) == 2
    assert out[0] == pytest.approx(Point(0.2, 0.25, 0, 0))
    assert out[1] == pytest.approx(Point(0.4, 5.25, 0, 0))


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_collapse_never_grows_and_keeps_mass(seed):
    event = _random_event(seed)
    out = collapse(event, DS)
    assert 0 < len(out) <= len(event)
    # each cluster mean lies within the event's bounding box
    arr = np.asarray(event)
    for p in out:
        assert np.all(np.asarray(p) >= arr.min(axis=0) - 1e-12)
        assert np.all(np.asarray(p) <= arr.max(axis=0) + 1e-12)


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_cluster_members_stay_inside_anchor_box(seed):
    event = _random_event(seed)
    groups = clusters(event, DS)
    assert sorted(p for g in groups for p in g) == sorted(event)
    for group in groups:
        anchor = group[0]
        assert all(within_dr(anchor, p, DS) for p in group)
    assert collapse(event, DS) == [sum(g, Point()) / len(g) for g in groups]


def test_collapse_idempotent_for_separated_clusters():
    event = []
    for k in range(5):
        base = Point(5.0 * k, 3.0 * k, 0.0, 7.0 * k)
        event += [base, base + Point(0.3, 0.2, 0.1, 0.0), base + Point(0.6, -0.2, 0.0, 0.4)]
    once = collapse(event, DS)
    assert len(once) == 5
    assert collapse(once, DS) == once


def test_time_normalize():
    out = time_normalize([Point(5, 1, 0, 0), Point(3, 2, 0, 0)])
    assert out == [Point(0, 2, 0, 0), Point(2, 1, 0, 0)]
    assert time_normalize([]) == []


def test_find_centers():
    geometry = BoxGeometry({"A": BoxVolume.from_center((0, 0, 0), (2, 2, 2)),
                            "B": BoxVolume.from_center((10, 0, 0), (2, 2, 2))})
    out = find_centers([Point(1.5, 0.4, -0.3, 0.9), Point(2.0, 10.7, 0.0, 0.0)], geometry)
    assert out == [Point(1.5, 0.0, 0.0, 0.0), Point(2.0, 10.0, 0.0, 0.0)]

import itertools

from trackfit_reco.joining import join, join_all, seeds_compatible
from trackfit_reco.points import Point

P = [Point(float(i), 0.0, 0.0, 10.0 * i) for i in range(6)]


def test_join_overlapping_seeds():
    a, b = P[0:3], P[1:4]
    out = join(a, b, 1)
    assert out == P[0:4]
    assert len(out) == 1 + len(b)
    assert seeds_compatible(a, b, 1)


def test_join_with_larger_difference():
    a, b = P[0:3], P[2:5]
    assert join(a, b, 1) == []
    out = join(a, b, 2)
    assert out == P[0:5]
    assert len(out) == 2 + len(b)


def test_join_rejects_mismatch_and_bad_overlap():
    assert join(P[0:3], [P[1], P[3], P[4]], 1) == []
    # no overlap left
    assert join(P[0:3], P[3:6], 3) == []
    # second seed shorter than the overlap
    assert join(P[0:4], P[1:3], 1) == []
    assert not seeds_compatible(P[0:3], P[3:6], 1)


def test_join_does_not_resort():
    a = [P[0], P[2], P[1]]
    b = [P[2], P[1], P[5]]
    assert join(a, b, 1) == [P[0], P[2], P[1], P[5]]


def test_join_all_edge_cases():
    assert join_all([]) == []
    assert join_all([P[0:3]]) == [P[0:3]]
    assert join_all([P[0:3], P[0:3]]) == [P[0:3]]


def test_join_all_merges_line_seeds():
    line = P[0:4]
    seeds = [list(c) for c in itertools.combinations(line, 3)]
    out = join_all(seeds)
    assert line in out
    # every seed survives standalone or inside a longer candidate
    for s in seeds:
        assert any(set(s) <= set(candidate) for candidate in out)
    assert len(out) == len({tuple(c) for c in out})


def test_join_all_chains_consecutive_seeds():
    seeds = [P[i:i + 3] for i in range(4)]
    out = join_all(seeds)
    assert P[0:6] in out
    for s in seeds:
        assert any(set(s) <= set(candidate) for candidate in out)

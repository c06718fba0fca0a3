from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Sequence, Tuple

from trackfit_reco.points import Point

logger = logging.getLogger(__name__)

Seed = List[Point]


def seeds_compatible(first: Sequence[Point], second: Sequence[Point], difference: int) -> bool:
    r"""
    ``True`` iff ``first[difference:]`` equals the same-length prefix of ``second``.
    """
    tail = list(first[difference:])
    if len(tail) > len(second):
        return False
    return tail == list(second[:len(tail)])


def join(first: Sequence[Point], second: Sequence[Point], difference: int) -> Seed:
    r"""
    Join two seeds that overlap after skipping ``difference`` points of ``first``.

    The overlap is the trailing :math:`m = |A| - d` points of ``first``
    (:math:`A`), which must equal the first :math:`m` points of ``second``
    (:math:`B`) by value. The result is

    .. math::

        A_{0..d-1} \,\Vert\, B, \qquad |A \Join_d B| = d + |B|.

    Nothing is re-sorted.

    Returns
    -------
    list of Point
        The joined sequence, or an empty list when the overlap is empty,
        longer than ``second`` or not an exact match.
    """
    overlap = len(first) - difference
    if overlap <= 0 or len(second) < overlap:
        return []
    for index in range(overlap):
        if first[difference + index] != second[index]:
            return []
    return list(first[:difference]) + list(second)


def _key(points: Sequence[Point]) -> Tuple[Point, ...]:
    return tuple(points)


def _partial_join(
    buffer: List[Seed],
    group: List[int],
    difference: int,
    joined: Deque[List[int]],
    singular: Deque[List[int]],
    out: List[Seed],
) -> bool:
    r"""
    Try every ordered pair of ``group`` with ``difference``.

    Successful joins are appended to ``buffer`` and queued as a new joined
    group; members that found no partner are queued as a singular group.
    When nothing joins, the whole group is final and goes to ``out``.
    """
    size = len(group)
    if size == 0:
        return False
    if size == 1:
        out.append(buffer[group[0]])
        return False

    matched = [False] * size
    to_joined: List[int] = []
    seen = set()
    for i in range(size):
        first = buffer[group[i]]
        for j in range(size):
            if i == j:
                continue
            merged = join(first, buffer[group[j]], difference)
            if not merged:
                continue
            matched[i] = matched[j] = True
            key = _key(merged)
            if key in seen:
                continue
            seen.add(key)
            buffer.append(merged)
            to_joined.append(len(buffer) - 1)

    if to_joined:
        joined.append(to_joined)
        singular.append([group[i] for i in range(size) if not matched[i]])
        return True

    out.extend(buffer[index] for index in group)
    return False


def join_all(seeds: Sequence[Sequence[Point]], difference: int = 1) -> List[Seed]:
    r"""
    Repeatedly join seeds until no overlapping pair remains.

    Two FIFO queues of index groups are drained alternately: the *joined*
    queue (groups produced by the last successful round) is joined with
    ``difference``, the *singular* queue (seeds that found no partner) with
    ``difference + 1``, i.e. one point more of overlap slack. A group in
    which nothing joins is emitted as-is.

    Parameters
    ----------
    seeds : sequence of sequence of Point
        Time-sorted seeds.
    difference : int, optional
        Starting offset, ``1`` by default (seeds overlapping in all but one point).

    Returns
    -------
    list of list of Point
        Final track candidates, de-duplicated in first-appearance order.
        Every input seed appears either standalone or inside a longer
        candidate.
    """
    buffer: List[Seed] = [list(s) for s in seeds]
    if not buffer:
        return []

    joined: Deque[List[int]] = deque([list(range(len(buffer)))])
    singular: Deque[List[int]] = deque()
    emitted: List[Seed] = []

    rounds = 0
    while joined or singular:
        if joined:
            _partial_join(buffer, joined.popleft(), difference, joined, singular, emitted)
        if singular:
            _partial_join(buffer, singular.popleft(), difference + 1, joined, singular, emitted)
        rounds += 1

    out: List[Seed] = []
    seen = set()
    for candidate in emitted:
        key = _key(candidate)
        if key not in seen:
            seen.add(key)
            out.append(candidate)

    logger.debug("join_all: %d seeds -> %d candidates in %d rounds", len(seeds), len(out), rounds)
    return out

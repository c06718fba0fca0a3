from __future__ import annotations

import logging
import time
from typing import Dict, Hashable, List, Mapping, NamedTuple, Optional, Sequence, Union

import numpy as np

from trackfit_reco.clustering import collapse
from trackfit_reco.config import TrackingOptions
from trackfit_reco.joining import join_all
from trackfit_reco.points import Event, Point, binary_find_first, t_sort
from trackfit_reco.seeding import seed
from trackfit_reco.track import Track, fit_seeds
from trackfit_reco.vertex import Vertex
from trackfit_reco.volumes import BoxGeometry, BoxVolume, Geometry

logger = logging.getLogger(__name__)


class Reconstruction(NamedTuple):
    """Tracks, optional vertex and the collapsed hits no track used."""
    tracks: List[Track]
    vertex: Optional[Vertex]
    unused_points: Event


def setup_logging(verbose: bool = False) -> None:
    r"""
    Configure process-wide logging.

    Parameters
    ----------
    verbose : bool, optional
        If ``True``, set level to ``DEBUG``; otherwise ``INFO``.

    Notes
    -----
    Format is ``'%(asctime)s | %(levelname)-8s | %(message)s'`` with ``%H:%M:%S`` timestamps.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


def _as_geometry(geometry: Union[Geometry, Mapping[str, BoxVolume]], options: TrackingOptions) -> Geometry:
    if isinstance(geometry, Geometry):
        return geometry
    return BoxGeometry(geometry, default_time_resolution=options.default_time_error)


def unused_points(points: Sequence[Point], tracks: Sequence[Track]) -> Event:
    r"""
    Points of ``points`` that belong to no track, in time order.

    Each track hit is located in the time-sorted points with
    :func:`~trackfit_reco.points.binary_find_first`.
    """
    ordered = t_sort(points)
    used = np.zeros(len(ordered), dtype=bool)
    for track in tracks:
        for hit in track.event:
            index = binary_find_first(ordered, hit)
            if index >= 0:
                used[index] = True
    return [p for p, u in zip(ordered, used) if not u]


def reconstruct(
    event: Sequence[Point],
    geometry: Union[Geometry, Mapping[str, BoxVolume]],
    options: Optional[TrackingOptions] = None,
) -> Reconstruction:
    r"""
    Run the full chain on one event.

    ``collapse -> partition -> seed -> join_all -> fit_seeds -> Vertex``.

    Parameters
    ----------
    event : sequence of Point
        Raw hits.
    geometry : Geometry or mapping of str -> BoxVolume
        A mapping is wrapped in a :class:`~trackfit_reco.volumes.BoxGeometry`
        using ``options.default_time_error``.
    options : TrackingOptions, optional

    Returns
    -------
    Reconstruction
        The vertex is ``None`` when fewer than two tracks were found.
    """
    options = options if options is not None else TrackingOptions()
    geometry = _as_geometry(geometry, options)
    start = time.perf_counter()

    ds = options.collapse_point
    seeds = seed(options.seed_size, event, ds, options.layer_depth, options.line_width, options.layer_axis)
    candidates = join_all(seeds) if options.join else seeds
    tracks = fit_seeds(candidates, options.fit, geometry, options.max_workers)
    vertex = Vertex(tracks, options.fit) if len(tracks) >= 2 else None

    leftovers = unused_points(collapse(event, ds), tracks)
    logger.info(
        "Reconstructed %d hits -> %d seeds, %d tracks%s, %d unused in %.3fs",
        len(event), len(seeds), len(tracks),
        "" if vertex is None else " and a vertex",
        len(leftovers), time.perf_counter() - start,
    )
    return Reconstruction(tracks, vertex, leftovers)


def reconstruct_events(
    events: Mapping[Hashable, Sequence[Point]],
    geometry: Union[Geometry, Mapping[str, BoxVolume]],
    options: Optional[TrackingOptions] = None,
) -> Dict[Hashable, Reconstruction]:
    """:func:`reconstruct` every event of ``events`` (e.g. from :func:`~trackfit_reco.frame.events_from_frame`)."""
    options = options if options is not None else TrackingOptions()
    geometry = _as_geometry(geometry, options)
    out = {key: reconstruct(hits, geometry, options) for key, hits in events.items()}
    logger.info("Reconstructed %d events, %d tracks in total",
                len(out), sum(len(r.tracks) for r in out.values()))
    return out

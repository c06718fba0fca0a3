import logging

import pandas as pd

from trackfit_reco.config import TrackingOptions
from trackfit_reco.frame import events_from_frame
from trackfit_reco.pipeline import reconstruct, reconstruct_events, setup_logging, unused_points
from trackfit_reco.points import Point
from trackfit_reco.volumes import BoxVolume

NOISE = Point(100.0, 50.0, 0.0, 100.0)


def _options():
    return TrackingOptions(collapse_ds=(0.5, 0.5, 0.5, 0.5), layer_depth=5.0, line_width=1.0)


def _boxes(points):
    return {f"B{i}": BoxVolume.from_center((p.x, p.y, p.z), (1.0, 1.0, 1.0)) for i, p in enumerate(points)}


def test_reconstruct_line_with_noise(line_event, caplog):
    event = line_event + [NOISE]
    with caplog.at_level(logging.INFO, logger="trackfit_reco.pipeline"):
        result = reconstruct(event, _boxes(event), _options())

    assert result.tracks
    assert any(t.event == line_event for t in result.tracks)
    best = next(t for t in result.tracks if t.event == line_event)
    assert abs(best.vz.value - 10.0) < 0.1
    assert result.unused_points == [NOISE]
    assert result.vertex is not None and len(result.vertex) == len(result.tracks)
    assert "Reconstructed" in caplog.text


def test_reconstruct_without_join(line_event, geometry_for):
    options = TrackingOptions(collapse_ds=(0.5, 0.5, 0.5, 0.5), layer_depth=5.0, line_width=1.0, join=False)
    result = reconstruct(line_event, geometry_for(line_event), options)
    assert len(result.tracks) == 4
    assert all(len(t) == 3 for t in result.tracks)
    assert result.unused_points == []


def test_reconstruct_nothing_found(geometry_for):
    event = [Point(0, 0, 0, 0), Point(1, 0, 0, 1)]
    result = reconstruct(event, geometry_for(event), _options())
    assert result.tracks == [] and result.vertex is None
    assert result.unused_points == event


def test_unused_points(line_event):
    assert unused_points(line_event, []) == line_event


def test_reconstruct_events_from_frame(line_event):
    df = pd.DataFrame(list(line_event) * 2, columns=["t", "x", "y", "z"])
    df["event_id"] = [1] * 4 + [2] * 4
    events = events_from_frame(df)
    out = reconstruct_events(events, _boxes(line_event), _options())
    assert set(out) == {1, 2}
    assert all(r.tracks for r in out.values())


def test_setup_logging():
    setup_logging(verbose=True)
    setup_logging(verbose=False)

import orjson
import pytest

from trackfit_reco.config import (
    TrackingOptions,
    dump_options,
    load_options,
    options_from_mapping,
)
from trackfit_reco.points import Coordinate, Point


def _write(tmp_path, payload, name="options.json"):
    path = tmp_path / name
    path.write_bytes(orjson.dumps(payload))
    return path


def test_defaults():
    options = TrackingOptions()
    assert options.seed_size == 3
    assert options.layer_axis is Coordinate.Z
    assert options.fit.error_def == 0.5
    assert options.collapse_point == Point(*options.collapse_ds)


def test_load_with_overrides(tmp_path):
    path = _write(tmp_path, {
        "layer-axis": "y",
        "layer-depth": 12.5,
        "seed_size": 4,
        "collapse_ds": [1, 2, 3, 4],
        "fit": {"max_iterations": 500, "fixed": "t"},
    })
    options = load_options(path, overrides={"fit": {"minimizer": "scipy"}, "max_workers": 2})
    assert options.layer_axis is Coordinate.Y
    assert options.layer_depth == 12.5
    assert options.seed_size == 4
    assert options.collapse_ds == (1.0, 2.0, 3.0, 4.0)
    assert options.fit.max_iterations == 500
    assert options.fit.fixed is Coordinate.T
    assert options.fit.minimizer == "scipy"
    assert options.max_workers == 2


@pytest.mark.parametrize("payload", [
    {"layer_depth": 0},
    {"line_width": -1},
    {"seed_size": 2.5},
    {"collapse_ds": [1, 2, 3]},
    {"max_workers": 0},
    {"fit": {"minimizer": "simplex"}},
    {"fit": {"strategy": 7}},
    {"fit": {"bogus": 1}},
    {"fit": 3},
    {"unknown_key": True},
])
def test_invalid_values(payload):
    with pytest.raises(ValueError):
        options_from_mapping(payload)


def test_unreadable_file(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ValueError) as excinfo:
        load_options(bad)
    assert excinfo.value.__cause__ is not None

    with pytest.raises(ValueError):
        load_options(tmp_path / "missing.json")

    with pytest.raises(ValueError):
        load_options(_write(tmp_path, [1, 2, 3], "list.json"))


def test_dump_round_trip(tmp_path):
    options = options_from_mapping({"layer_axis": "X", "fit": {"fixed": "T"}})
    path = tmp_path / "dumped.json"
    path.write_bytes(dump_options(options))
    assert load_options(path) == options

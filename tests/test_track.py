import math

import numpy as np
import pytest

from trackfit_reco import units
from trackfit_reco.points import Coordinate, Point
from trackfit_reco.seeding import seed
from trackfit_reco.track import FitSettings, Track, fit_seeds


DS = Point(0.5, 0.5, 0.5, 0.5)


def test_line_event_end_to_end(line_event, geometry_for):
    geometry = geometry_for(line_event)
    seeds = seed(3, line_event, DS, 5.0, 1.0)
    assert any(len(set(s) & set(line_event)) == 3 for s in seeds)

    track = Track(seeds[0], FitSettings(), geometry)
    assert track.converged
    assert track.vz.value == pytest.approx(10.0, rel=1e-2)
    assert track.vx.value == pytest.approx(0.0, abs=1e-2)
    assert track.chi_squared() == pytest.approx(0.0, abs=1e-2)
    assert track.beta == pytest.approx(10.0 / units.speed_of_light, rel=1e-2)


def test_statistics_are_consistent(line_event, geometry_for):
    track = Track(line_event, None, geometry_for(line_event))
    assert len(track) == 4
    assert track.degrees_of_freedom() == 3 * 4 - 6
    assert track.chi_squared_per_dof() == pytest.approx(track.chi_squared() / track.degrees_of_freedom())
    assert len(track.chi_squared_vector()) == 4
    assert track.squared_residual() == pytest.approx(sum(track.squared_residual_vector()))
    assert track.residual() == pytest.approx(math.sqrt(track.squared_residual()))
    np.testing.assert_allclose(np.square(track.residual_vector()), track.squared_residual_vector())
    assert 0.0 <= track.p_value() <= 1.0
    assert track.covariance_matrix.shape == (6, 6)
    assert track.free_parameters == ("T0", "X0", "Y0", "VX", "VY", "VZ")
    assert track.detectors == ["V0", "V1", "V2", "V3"]


def test_fit_is_deterministic(line_event, geometry_for):
    geometry = geometry_for(line_event)
    a = Track(line_event, FitSettings(), geometry)
    b = Track(line_event, FitSettings(), geometry)
    np.testing.assert_array_equal(a.values, b.values)
    np.testing.assert_array_equal(a.covariance_matrix, b.covariance_matrix)


def test_interpolation(line_event, geometry_for):
    track = Track(line_event, None, geometry_for(line_event))
    at_z = track(15.0)
    assert at_z.z == 15.0
    assert at_z.t == pytest.approx(1.5, abs=1e-2)
    at_t = track.at_t(2.5)
    assert at_t.z == pytest.approx(25.0, abs=0.1)
    assert track.at_z(track.front.z).t == pytest.approx(0.0, abs=1e-2)
    assert track.front == line_event[0] and track.back == line_event[-1]
    err = track.error_at_t(2.5)
    assert err.t == 0.0 and err.x > 0.0 and err.z > 0.0
    assert track.front_width() == Point(1.5, 1.0, 1.0, 1.0)


def test_degenerate_seed_is_not_fit(line_event, geometry_for):
    track = Track(line_event[:2], None, geometry_for(line_event))
    assert not track.converged
    assert all(p.value == 0.0 for p in track.parameters)
    assert track.chi_squared() == 0.0
    assert math.isnan(track.chi_squared_per_dof())
    # the default line never crosses another depth
    assert all(math.isnan(c) for c in track.at_z(5.0))
    assert all(math.isnan(c) for c in track(5.0))
    assert "Track Parameters:" in str(track)


def test_other_fixed_coordinate(line_event, geometry_for):
    settings = FitSettings(fixed=Coordinate.T)
    track = Track(line_event, settings, geometry_for(line_event))
    assert track.fixed_parameter == "T0"
    assert "T0" not in track.free_parameters
    assert track.t0.error == 0.0
    assert track.z0.value == pytest.approx(0.0, abs=0.1)
    assert track.vz.value == pytest.approx(10.0, rel=1e-2)


def test_scipy_backend(line_event, geometry_for):
    track = Track(line_event, FitSettings(minimizer="scipy"), geometry_for(line_event))
    assert track.vz.value == pytest.approx(10.0, rel=1e-2)
    assert track.chi_squared() == pytest.approx(0.0, abs=1e-2)


def test_fit_seeds_threaded_matches_sequential(line_event, geometry_for):
    geometry = geometry_for(line_event)
    seeds = seed(3, line_event, DS, 5.0, 1.0)
    sequential = fit_seeds(seeds, None, geometry)
    threaded = fit_seeds(seeds, None, geometry, max_workers=3)
    assert [t.event for t in threaded] == seeds
    for a, b in zip(sequential, threaded):
        np.testing.assert_array_equal(a.values, b.values)


def test_text_rendering(line_event, geometry_for):
    text = str(Track(line_event, None, geometry_for(line_event)))
    assert "Track Parameters:" in text
    assert "chi2/dof" in text
    assert "V0" in text

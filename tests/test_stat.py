import math

import numpy as np
import pytest

from trackfit_reco.stat import chi_squared_p_value, propagate, propagate_average, uniform


def test_uniform():
    assert uniform(math.sqrt(12.0)) == pytest.approx(1.0)
    assert uniform(0.0) == 0.0


def test_propagate_average():
    assert propagate_average([3.0, 4.0]) == pytest.approx(2.5)
    assert propagate_average(iter([2.0])) == pytest.approx(2.0)
    assert propagate_average([]) == 0.0


def test_propagate():
    g = np.array([1.0, 2.0])
    C = np.array([[4.0, 1.0], [1.0, 9.0]])
    assert propagate(g, C) == pytest.approx(4.0 + 2 * 2.0 + 4 * 9.0)


def test_chi_squared_p_value():
    assert chi_squared_p_value(0.0, 4) == pytest.approx(1.0)
    assert chi_squared_p_value(2.0, 2) == pytest.approx(math.exp(-1.0))
    assert math.isnan(chi_squared_p_value(1.0, 0))

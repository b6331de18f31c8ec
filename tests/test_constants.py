import numpy as np
import pytest

from porus._precision import get_dtype, get_floating_point_info, set_dtype, with_precision
from porus.constants import Constant, Constants, c, get_constant
from porus.grids import CartesianGrid


def test_unit_constants():
    assert c.MILLIDARCY == pytest.approx(1e-3 * c.DARCY)
    assert c.BAR == 1e5
    assert c["CENTIPOISE"].unit == "Pa·s/cP"
    assert get_constant("SECONDS_PER_DAY") == Constant(86400.0, "Seconds in a day", "s/day")
    assert get_constant("FURLONG") is None
    with pytest.raises(AttributeError):
        c.FURLONG


def test_constants_override_context():
    overrides = Constants({"DEFAULT_FIRST_PHASE_VISCOSITY": 5e-4})
    with pytest.raises(AttributeError):
        overrides.BAR = 1.0
    with overrides:
        assert c.DEFAULT_FIRST_PHASE_VISCOSITY == 5e-4
        assert c.BAR == 1e5
    assert c.DEFAULT_FIRST_PHASE_VISCOSITY == 1e-3


def test_precision_context():
    assert get_dtype() == np.float64
    with with_precision(np.float32):
        grid = CartesianGrid.uniform((2, 1, 1), (1.0, 1.0, 1.0))
        assert grid.cell_volumes.dtype == np.float32
        assert get_floating_point_info().eps == np.finfo(np.float32).eps
    assert get_dtype() == np.float64
    with pytest.raises(TypeError):
        set_dtype(np.int32)

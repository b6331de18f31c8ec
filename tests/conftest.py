import numpy as np
import pytest

from porus.grids import CartesianGrid
from porus.properties import ReservoirProperties


PERMEABILITY = 1e-13


@pytest.fixture
def grid():
    return CartesianGrid.uniform((3, 3, 3), (1.0, 1.0, 1.0))


@pytest.fixture
def make_properties():
    def factory(grid, permeability=PERMEABILITY, porosity=0.2, **kwargs):
        n = grid.number_of_cells
        if np.ndim(permeability) == 0:
            permeability = np.full(n, permeability)
        if np.ndim(porosity) == 0:
            porosity = np.full(n, porosity)
        return ReservoirProperties(permeability=permeability, porosity=porosity, **kwargs)

    return factory


@pytest.fixture
def properties(grid, make_properties):
    return make_properties(grid)

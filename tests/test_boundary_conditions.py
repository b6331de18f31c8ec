import numpy as np
import pytest

from porus.boundary_conditions import (
    BoundaryConditions,
    BoundaryKind,
    FlowBoundaryCondition,
    SaturationBoundaryCondition,
    setup_upscaling_conditions,
)
from porus.errors import BoundaryConditionError, ValidationError
from porus.grids import CartesianGrid


@pytest.fixture
def small_grid():
    return CartesianGrid.uniform((2, 2, 2), (2.0, 1.0, 1.0))


def _bids_on_side(grid, side):
    return np.flatnonzero(grid.boundary_sides == side) + 1


def test_fixed_conditions(small_grid):
    bcs = setup_upscaling_conditions(small_grid, "fixed", 0, 5.0, 0.3)
    for bid in _bids_on_side(small_grid, 0):
        condition = bcs.flow_condition(bid)
        assert condition.is_dirichlet and condition.value == 5.0
    for bid in _bids_on_side(small_grid, 1):
        condition = bcs.flow_condition(bid)
        assert condition.is_dirichlet and condition.value == 0.0
    for side in (2, 3, 4, 5):
        for bid in _bids_on_side(small_grid, side):
            condition = bcs.flow_condition(bid)
            assert condition.is_neumann and condition.value == 0.0
    for bid in range(1, small_grid.number_of_boundary_faces + 1):
        saturation = bcs.saturation_condition(bid)
        assert saturation.is_dirichlet
        assert saturation.saturation == 0.3
        assert bcs.periodic_partner(bid) == 0
    assert bcs.has_dirichlet_pressure


def test_linear_conditions(small_grid):
    bcs = setup_upscaling_conditions(small_grid, "linear", 0, 4.0, 1.0)
    assert np.all(bcs.flow_kinds[1:] == BoundaryKind.DIRICHLET)
    for bid in range(1, small_grid.number_of_boundary_faces + 1):
        face = small_grid.boundary_face(bid)
        x = small_grid.face_centroids[face, 0]
        assert bcs.flow_condition(bid).value == pytest.approx(4.0 * (1.0 - x / 2.0))


def test_periodic_conditions(small_grid):
    bcs = setup_upscaling_conditions(small_grid, "periodic", 1, 2.0, 0.5)
    assert not bcs.has_dirichlet_pressure
    for bid in range(1, small_grid.number_of_boundary_faces + 1):
        partner = bcs.periodic_partner(bid)
        assert partner == small_grid.opposite_boundary_id(bid)
        assert bcs.periodic_partner(partner) == bid
        flow = bcs.flow_condition(bid)
        assert flow.is_periodic
        side = small_grid.boundary_sides[bid - 1]
        expected = {2: 2.0, 3: -2.0}.get(side, 0.0)
        assert flow.value == expected
        saturation = bcs.saturation_condition(bid)
        assert saturation.is_periodic and saturation.saturation_difference == 0.0


@pytest.mark.parametrize(
    "bc_type, direction, saturation",
    [("open", 0, 0.5), ("fixed", 3, 0.5), ("fixed", 0, 1.5)],
)
def test_invalid_setup(small_grid, bc_type, direction, saturation):
    with pytest.raises(ValidationError):
        setup_upscaling_conditions(small_grid, bc_type, direction, 1.0, saturation)


def test_asymmetric_partners_are_rejected():
    with pytest.raises(BoundaryConditionError):
        BoundaryConditions.from_conditions(
            flow={1: FlowBoundaryCondition(BoundaryKind.PERIODIC)},
            saturation={1: SaturationBoundaryCondition(BoundaryKind.PERIODIC)},
            periodic_partners={1: 2, 2: 3, 3: 2},
            number_of_boundary_faces=3,
        )


def test_from_conditions_defaults():
    bcs = BoundaryConditions.from_conditions(
        flow={2: FlowBoundaryCondition(BoundaryKind.DIRICHLET, 1.0)},
        saturation={},
        number_of_boundary_faces=3,
    )
    assert bcs.flow_condition(1).is_neumann
    assert bcs.flow_condition(2).value == 1.0
    assert bcs.saturation_condition(3).saturation == 0.0


def test_saturation_condition_kinds():
    with pytest.raises(ValueError):
        SaturationBoundaryCondition(BoundaryKind.NEUMANN)

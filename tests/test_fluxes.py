import numpy as np
import pytest

from porus.boundary_conditions import (
    BoundaryConditions,
    BoundaryKind,
    setup_upscaling_conditions,
)
from porus.errors import BoundaryConditionError, PeriodicPartnerError
from porus.flow import FlowSolution, TPFAPressureSolver
from porus.fluxes import (
    FlowPair,
    InOutFlows,
    accumulate_inflows,
    accumulate_outflows,
    compute_in_out_flows,
)
from porus.grids import CartesianGrid


@pytest.fixture
def pair_grid():
    # Boundary ids: 1 (x-) and 2 (x+), then y and z faces with zero flux
    return CartesianGrid.uniform((2, 1, 1), (2.0, 1.0, 1.0))


def _fluxes(grid, x_minus, x_plus, interior=1.0):
    fluxes = np.zeros(grid.number_of_faces)
    fluxes[grid.boundary_face(1)] = x_minus
    fluxes[grid.boundary_face(2)] = x_plus
    fluxes[grid.interior_faces] = interior
    return FlowSolution(grid=grid, face_fluxes=fluxes, cell_pressures=np.zeros(2))


def test_periodic_round_trip(pair_grid, make_properties):
    properties = make_properties(pair_grid)
    bcs = setup_upscaling_conditions(pair_grid, "periodic", 0, 1.0, 0.0)
    solution = _fluxes(pair_grid, -1.0, 1.0)
    saturation = np.array([0.2, 0.8])

    first_out, second_out, recorded = accumulate_outflows(
        pair_grid, properties, bcs, solution, saturation
    )
    outlet_fractional_flow = properties.fractional_flow(0.8)
    assert recorded[2] == outlet_fractional_flow
    assert 1 not in recorded
    assert first_out == pytest.approx(outlet_fractional_flow)
    assert second_out == pytest.approx(1.0 - outlet_fractional_flow)

    first_in, second_in = accumulate_inflows(pair_grid, properties, bcs, solution, recorded)
    # The inlet takes the partner's recorded value, not the inlet cell's own fractional flow
    assert first_in == -recorded[2]
    assert second_in == pytest.approx(-(1.0 - outlet_fractional_flow))
    assert first_in != pytest.approx(-properties.fractional_flow(0.2))


def test_missing_periodic_partner(pair_grid, make_properties):
    properties = make_properties(pair_grid)
    bcs = setup_upscaling_conditions(pair_grid, "periodic", 0, 1.0, 0.0)
    solution = _fluxes(pair_grid, -1.0, -1.0)
    with pytest.raises(PeriodicPartnerError) as excinfo:
        compute_in_out_flows(pair_grid, properties, bcs, solution, np.array([0.5, 0.5]))
    assert excinfo.value.boundary_id == 1
    assert excinfo.value.partner_boundary_id == 2
    assert "Face bid = 1 and partner bid = 2" in str(excinfo.value)
    assert isinstance(excinfo.value, BoundaryConditionError)


def test_dirichlet_inflow_uses_boundary_saturation(pair_grid, make_properties):
    properties = make_properties(pair_grid)
    bcs = setup_upscaling_conditions(pair_grid, "fixed", 0, 1.0, 1.0)
    solution = _fluxes(pair_grid, -2.0, 2.0)
    flows = compute_in_out_flows(pair_grid, properties, bcs, solution, np.array([0.0, 0.0]))
    assert isinstance(flows, InOutFlows)
    assert flows.first_phase == FlowPair(inflow=pytest.approx(-2.0), outflow=0.0)
    assert flows.second_phase.inflow == pytest.approx(0.0)
    assert flows.second_phase.outflow == pytest.approx(2.0)


@pytest.mark.parametrize("bc_type", ["fixed", "linear", "periodic"])
def test_conservation_in_closed_system(grid, properties, bc_type):
    bcs = setup_upscaling_conditions(grid, bc_type, 1, 1e5, 0.6)
    saturation = np.full(grid.number_of_cells, 0.6)
    solver = TPFAPressureSolver()
    solver.init(grid, properties)
    solution = solver.solve(properties, saturation, bcs)
    flows = compute_in_out_flows(grid, properties, bcs, solution, saturation)

    scale = flows.first_phase.outflow + flows.second_phase.outflow
    assert scale > 0.0
    assert flows.first_phase.inflow < 0.0
    for phase in flows:
        assert phase.inflow + phase.outflow == pytest.approx(0.0, abs=1e-9 * scale)


def _with_saturation_condition(bcs, boundary_id, kind, value):
    kinds = bcs.saturation_kinds.copy()
    values = bcs.saturation_values.copy()
    kinds[boundary_id] = kind
    values[boundary_id] = value
    return BoundaryConditions(
        bcs.flow_kinds, bcs.flow_values, kinds, values, bcs.periodic_partners
    )


def test_nonzero_periodic_difference_fails(pair_grid, make_properties):
    properties = make_properties(pair_grid)
    bcs = setup_upscaling_conditions(pair_grid, "periodic", 0, 1.0, 0.0)
    bcs = _with_saturation_condition(bcs, 1, BoundaryKind.PERIODIC, 0.1)
    solution = _fluxes(pair_grid, -1.0, 1.0)
    with pytest.raises(AssertionError):
        compute_in_out_flows(pair_grid, properties, bcs, solution, np.array([0.5, 0.5]))


def test_unknown_saturation_kind_fails(pair_grid, make_properties):
    properties = make_properties(pair_grid)
    bcs = setup_upscaling_conditions(pair_grid, "fixed", 0, 1.0, 1.0)
    bcs = _with_saturation_condition(bcs, 1, BoundaryKind.NEUMANN, 0.0)
    solution = _fluxes(pair_grid, -2.0, 2.0)
    with pytest.raises(AssertionError):
        compute_in_out_flows(pair_grid, properties, bcs, solution, np.array([0.5, 0.5]))

    # Outflow faces are not checked against their saturation kind
    outflow_only = _fluxes(pair_grid, 2.0, 2.0, interior=0.0)
    flows = compute_in_out_flows(pair_grid, properties, bcs, outflow_only, np.array([0.5, 0.5]))
    assert flows.first_phase.inflow == 0.0

"""Per-phase boundary flow accounting of a flow solution."""

import logging
import typing

import numpy as np

from porus.boundary_conditions import BoundaryConditions, BoundaryKind
from porus.errors import PeriodicPartnerError
from porus.flow import FlowSolution
from porus.grids import CartesianGrid
from porus.properties import ReservoirProperties
from porus.types import SaturationField

logger = logging.getLogger(__name__)

__all__ = [
    "FlowPair",
    "InOutFlows",
    "accumulate_outflows",
    "accumulate_inflows",
    "compute_in_out_flows",
]


class FlowPair(typing.NamedTuple):
    """Boundary flow totals of one phase (m³/s). Inflow is negative, outflow positive."""

    inflow: float
    outflow: float


class InOutFlows(typing.NamedTuple):
    """Boundary flow totals of both phases."""

    first_phase: FlowPair
    second_phase: FlowPair


def accumulate_outflows(
    grid: CartesianGrid,
    properties: ReservoirProperties,
    boundary_conditions: BoundaryConditions,
    flow_solution: FlowSolution,
    saturation: SaturationField,
) -> typing.Tuple[float, float, typing.Dict[int, float]]:
    """
    First pass over the boundary: faces with non-negative outflux.

    The fractional flow of each outflow face is that of its cell. It is recorded by
    boundary id for periodic faces, so the partner face can use it for its inflow.

    :return: `(first_phase_outflow, second_phase_outflow, fractional_flow_by_boundary_id)`
    """
    first_phase_out = 0.0
    second_phase_out = 0.0
    fractional_flow_by_bid: typing.Dict[int, float] = {}
    for bid in range(1, grid.number_of_boundary_faces + 1):
        face = grid.boundary_face(bid)
        flux = flow_solution.outflux(face)
        if flux < 0.0:
            continue
        cell = int(grid.face_cells[face, 0])
        frac_flow = float(properties.fractional_flow(float(saturation[cell]), cell))
        if boundary_conditions.saturation_kinds[bid] == BoundaryKind.PERIODIC:
            fractional_flow_by_bid[bid] = frac_flow
        first_phase_out += flux * frac_flow
        second_phase_out += flux * (1.0 - frac_flow)
    return first_phase_out, second_phase_out, fractional_flow_by_bid


def accumulate_inflows(
    grid: CartesianGrid,
    properties: ReservoirProperties,
    boundary_conditions: BoundaryConditions,
    flow_solution: FlowSolution,
    fractional_flow_by_bid: typing.Mapping[int, float],
) -> typing.Tuple[float, float]:
    """
    Second pass over the boundary: faces with negative outflux.

    Periodic faces take the fractional flow recorded for their partner face in the first
    pass. Dirichlet faces use the fractional flow of the boundary saturation.

    :return: `(first_phase_inflow, second_phase_inflow)`, both non-positive.
    :raises PeriodicPartnerError: If no fractional flow was recorded for the partner face.
    """
    first_phase_in = 0.0
    second_phase_in = 0.0
    for bid in range(1, grid.number_of_boundary_faces + 1):
        face = grid.boundary_face(bid)
        flux = flow_solution.outflux(face)
        if flux >= 0.0:
            continue
        kind = boundary_conditions.saturation_kinds[bid]
        value = float(boundary_conditions.saturation_values[bid])
        if kind == BoundaryKind.PERIODIC:
            # Nonzero saturation differences across periodic pairs are not supported
            assert value == 0.0
            partner_bid = boundary_conditions.periodic_partner(bid)
            if partner_bid not in fractional_flow_by_bid:
                raise PeriodicPartnerError(bid, partner_bid)
            frac_flow = fractional_flow_by_bid[partner_bid]
        else:
            assert kind == BoundaryKind.DIRICHLET
            cell = int(grid.face_cells[face, 0])
            frac_flow = float(properties.fractional_flow(value, cell))
        first_phase_in += flux * frac_flow
        second_phase_in += flux * (1.0 - frac_flow)
    return first_phase_in, second_phase_in


def compute_in_out_flows(
    grid: CartesianGrid,
    properties: ReservoirProperties,
    boundary_conditions: BoundaryConditions,
    flow_solution: FlowSolution,
    saturation: SaturationField,
) -> InOutFlows:
    """
    Total inflow and outflow of each phase across the block boundary.

    For a converged steady state, inflow and outflow of each phase cancel.

    :param grid: Block grid.
    :param properties: Two-phase block properties.
    :param boundary_conditions: Saturation conditions keyed by boundary id.
    :param flow_solution: Total face fluxes.
    :param saturation: First phase saturation per cell.
    """
    saturation = np.asarray(saturation)
    first_out, second_out, recorded = accumulate_outflows(
        grid, properties, boundary_conditions, flow_solution, saturation
    )
    first_in, second_in = accumulate_inflows(
        grid, properties, boundary_conditions, flow_solution, recorded
    )
    return InOutFlows(
        first_phase=FlowPair(inflow=first_in, outflow=first_out),
        second_phase=FlowPair(inflow=second_in, outflow=second_out),
    )

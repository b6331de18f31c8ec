"""Explicit upstream-weighted two-phase transport solver."""

import logging
import math
import typing

import numba
import numpy as np

from porus.boundary_conditions import BoundaryConditions, BoundaryKind
from porus.config import Config
from porus.errors import BoundaryConditionError, SolverError, ValidationError
from porus.flow import FlowSolution
from porus.grids import CartesianGrid
from porus.properties import ReservoirProperties
from porus.types import OneDimensionalGrid, SaturationField, Vector3

logger = logging.getLogger(__name__)

__all__ = ["ExplicitTransportSolver"]


@numba.njit(cache=True)
def _net_first_phase_inflow(
    face_cells: np.ndarray,
    face_fluxes: np.ndarray,
    cell_fractional_flow: np.ndarray,
    boundary_inflow_fractional_flow: np.ndarray,
    number_of_cells: int,
) -> np.ndarray:
    """
    Net first phase volumetric inflow (m³/s) into every cell, with upstream fractional flow.

    :param face_cells: `(number_of_faces, 2)` adjacent cells, -1 for the outside of the block.
    :param face_fluxes: Total flux per face, positive from the first into the second cell.
    :param cell_fractional_flow: First phase fractional flow per cell.
    :param boundary_inflow_fractional_flow: Fractional flow of fluid entering through each
        boundary face. Entries of interior faces are unused.
    :param number_of_cells: Number of cells.
    """
    net = np.zeros(number_of_cells)
    for face in range(face_fluxes.shape[0]):
        flux = face_fluxes[face]
        c0 = face_cells[face, 0]
        c1 = face_cells[face, 1]
        if c1 < 0:
            if flux >= 0.0:
                net[c0] -= flux * cell_fractional_flow[c0]
            else:
                net[c0] -= flux * boundary_inflow_fractional_flow[face]
            continue
        if flux >= 0.0:
            phase_flux = flux * cell_fractional_flow[c0]
        else:
            phase_flux = flux * cell_fractional_flow[c1]
        net[c0] -= phase_flux
        net[c1] += phase_flux
    return net


@numba.njit(cache=True)
def _cell_outflow(
    face_cells: np.ndarray, face_fluxes: np.ndarray, number_of_cells: int
) -> np.ndarray:
    """Total volumetric outflow (m³/s) of every cell."""
    outflow = np.zeros(number_of_cells)
    for face in range(face_fluxes.shape[0]):
        flux = face_fluxes[face]
        if flux >= 0.0:
            outflow[face_cells[face, 0]] += flux
        elif face_cells[face, 1] >= 0:
            outflow[face_cells[face, 1]] -= flux
    return outflow


class ExplicitTransportSolver:
    """
    Explicit first order upwind solver for the saturation equation without capillary diffusion.

    `φ dS/dt + ∇·(f(S) v) = q`, with the total flux `v` frozen over a transport step.
    A step is split into CFL-limited substeps, at least `min_time_steps` of them.
    """

    def __init__(self, courant_number: float = 0.5, min_time_steps: int = 1) -> None:
        self.courant_number = courant_number
        self.min_time_steps = min_time_steps
        self.grid: typing.Optional[CartesianGrid] = None
        self.properties: typing.Optional[ReservoirProperties] = None
        self.boundary_conditions: typing.Optional[BoundaryConditions] = None

    def init(self, config: Config) -> None:
        """Read the transport parameters of a run configuration."""
        self.courant_number = config.courant_number
        self.min_time_steps = config.min_time_steps

    def init_problem(
        self,
        grid: CartesianGrid,
        properties: ReservoirProperties,
        boundary_conditions: BoundaryConditions,
    ) -> None:
        """
        Set up the state of one upscaling run.

        :param grid: Block grid.
        :param properties: Two-phase block properties.
        :param boundary_conditions: Saturation conditions keyed by boundary id.
        """
        if properties.number_of_cells != grid.number_of_cells:
            raise ValidationError("Properties and grid must have the same number of cells.")
        if boundary_conditions.number_of_boundary_faces != grid.number_of_boundary_faces:
            raise BoundaryConditionError(
                "Boundary conditions and grid must have the same number of boundary faces."
            )
        self.grid = grid
        self.properties = properties
        self.boundary_conditions = boundary_conditions
        self._pore_volumes = properties.pore_volumes(grid.cell_volumes)

        bfaces = grid.boundary_faces
        bids = np.arange(1, bfaces.shape[0] + 1)
        kinds = boundary_conditions.saturation_kinds[bids]
        bcells = grid.face_cells[bfaces, 0]

        self._boundary_inflow = np.zeros(grid.number_of_faces)
        dirichlet = kinds == BoundaryKind.DIRICHLET
        if np.any(dirichlet):
            self._boundary_inflow[bfaces[dirichlet]] = properties.fractional_flow(
                boundary_conditions.saturation_values[bids[dirichlet]], bcells[dirichlet]
            )

        periodic = kinds == BoundaryKind.PERIODIC
        partners = boundary_conditions.periodic_partners[bids[periodic]]
        if np.any(partners == 0):
            raise BoundaryConditionError("Periodic saturation face without a partner face.")
        self._periodic_faces = bfaces[periodic]
        self._periodic_partner_cells = grid.face_cells[bfaces[partners - 1], 0]
        self._periodic_differences = boundary_conditions.saturation_values[bids[periodic]]
        self._max_fractional_flow_derivative = self._estimate_max_derivative(properties)

    @staticmethod
    def _estimate_max_derivative(properties: ReservoirProperties, samples: int = 401) -> float:
        saturations = np.linspace(0.0, 1.0, samples)
        derivative = 0.0
        for rock_type in np.unique(properties.rock_types):  # type: ignore[arg-type]
            cell = int(np.flatnonzero(properties.rock_types == rock_type)[0])
            cells = np.full(samples, cell, dtype=np.int64)
            frac_flow = np.asarray(properties.fractional_flow(saturations, cells))
            slopes = np.abs(np.diff(frac_flow)) / np.diff(saturations)
            derivative = max(derivative, float(np.max(slopes)))
        return derivative

    def _stable_time_step(self, outflow: np.ndarray) -> float:
        if self._max_fractional_flow_derivative <= 0.0:
            return math.inf
        active = outflow > 0.0
        if not np.any(active):
            return math.inf
        limits = self._pore_volumes[active] / (
            self._max_fractional_flow_derivative * outflow[active]
        )
        return self.courant_number * float(np.min(limits))

    def transport_solve(
        self,
        saturation: SaturationField,
        time: float,
        gravity: Vector3,
        flow_solution: FlowSolution,
        injection: typing.Optional[OneDimensionalGrid] = None,
    ) -> int:
        """
        Advance `saturation` in place over `time` seconds with a frozen total flux field.

        :param saturation: First phase saturation per cell, updated in place.
        :param time: Length of the transport step (s).
        :param gravity: Gravity vector. Gravity segregation is not modelled.
        :param flow_solution: Total fluxes of the latest pressure solve.
        :param injection: Volumetric source per cell (m³/s). Positive values inject the
            first phase, negative values produce at the cell fractional flow.
        :return: Number of substeps taken.
        """
        if self.grid is None or self.properties is None:
            raise SolverError("Transport problem must be initialized before solving.")
        if time < 0.0:
            raise ValidationError(f"Transport step length must be non-negative, got {time}.")
        if any(gravity):
            logger.debug("Gravity is ignored by the transport solver")

        grid = self.grid
        properties = self.properties
        n = grid.number_of_cells
        fluxes = np.ascontiguousarray(flow_solution.face_fluxes, dtype=np.float64)
        face_cells = np.ascontiguousarray(grid.face_cells)

        outflow = _cell_outflow(face_cells, fluxes, n)
        dt_stable = self._stable_time_step(outflow)
        steps = self.min_time_steps
        if math.isfinite(dt_stable) and time > 0.0:
            steps = max(steps, int(math.ceil(time / dt_stable)))
        dt = time / steps

        for _ in range(steps):
            cell_frac_flow = np.asarray(
                properties.fractional_flow(saturation), dtype=np.float64
            )
            if self._periodic_faces.size:
                upstream = np.clip(
                    saturation[self._periodic_partner_cells] + self._periodic_differences,
                    0.0,
                    1.0,
                )
                self._boundary_inflow[self._periodic_faces] = properties.fractional_flow(
                    upstream, self._periodic_partner_cells
                )
            net = _net_first_phase_inflow(
                face_cells, fluxes, cell_frac_flow, self._boundary_inflow, n
            )
            if injection is not None:
                q = np.asarray(injection, dtype=np.float64)
                net += np.where(q > 0.0, q, q * cell_frac_flow)
            saturation += dt * net / self._pore_volumes
            np.clip(saturation, 0.0, 1.0, out=saturation)

        logger.debug(f"Transport step of {time:.4g} s taken in {steps} substeps")
        return steps

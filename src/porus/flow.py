"""Incompressible two-point flux approximation (TPFA) pressure solver."""

import logging
import typing

import attrs
import numpy as np
from scipy.sparse import coo_matrix  # type: ignore[import-untyped]

from porus.boundary_conditions import BoundaryConditions, BoundaryKind
from porus.errors import BoundaryConditionError, SolverError, ValidationError
from porus.grids import CartesianGrid
from porus.linear_solvers import solve_linear_system
from porus.types import (
    InitializationState,
    OneDimensionalGrid,
    Preconditioner,
    Solver,
    Vector3,
)

logger = logging.getLogger(__name__)

__all__ = ["FlowSolution", "TPFAPressureSolver"]


@attrs.frozen
class FlowSolution:
    """
    Solution of a pressure solve.

    `face_fluxes[f]` is the total volumetric flux (m³/s) through face `f`, positive
    from `face_cells[f, 0]` into `face_cells[f, 1]`. On boundary faces a positive flux
    leaves the block.
    """

    grid: CartesianGrid
    face_fluxes: OneDimensionalGrid
    """Total volumetric flux per face (m³/s)."""
    cell_pressures: OneDimensionalGrid
    """Pressure per cell (Pa)."""

    def outflux(self, face: int, cell: typing.Optional[int] = None) -> float:
        """
        Flux leaving `cell` through `face`.

        :param face: Face index.
        :param cell: One of the two cells of the face. Defaults to the first cell,
            which is the inner cell of a boundary face.
        """
        flux = float(self.face_fluxes[face])
        if cell is not None and cell == self.grid.face_cells[face, 1]:
            return -flux
        return flux

    @property
    def boundary_outfluxes(self) -> OneDimensionalGrid:
        """Outward flux per boundary face, in boundary id order."""
        return self.face_fluxes[self.grid.boundary_faces]

    def directed_fluxes(self) -> OneDimensionalGrid:
        """Face fluxes oriented along the positive coordinate axis of each face."""
        return self.face_fluxes * self.grid.face_normal_signs


def _harmonic(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    total = a + b
    return np.divide(a * b, total, out=np.zeros_like(total), where=total > 0.0)


class TPFAPressureSolver:
    """
    Cell-centred finite volume pressure solver with two-point fluxes.

    Half transmissibilities use the diagonal entry of the cell permeability tensor along
    the face normal, `λ K_aa A / (Δx_a / 2)`. Face transmissibilities are their harmonic
    average. Off-diagonal permeability is not seen by the two-point stencil.

    The solver is set up once per grid with `init` and then solved repeatedly with
    different mobilities and boundary conditions.
    """

    def __init__(self) -> None:
        self.state = InitializationState.UNINITIALIZED
        self.grid: typing.Optional[CartesianGrid] = None
        self.gravity: Vector3 = (0.0, 0.0, 0.0)
        self._solution: typing.Optional[FlowSolution] = None

    @property
    def is_initialized(self) -> bool:
        return self.state is InitializationState.INITIALIZED

    def init(
        self,
        grid: CartesianGrid,
        properties: typing.Any = None,
        gravity: Vector3 = (0.0, 0.0, 0.0),
    ) -> None:
        """
        Set up the grid geometry used by later solves.

        :param grid: Block grid.
        :param properties: Block properties, checked for a matching number of cells.
        :param gravity: Gravity vector. Stored but not used by the discretization.
        """
        if properties is not None and properties.number_of_cells != grid.number_of_cells:
            raise ValidationError(
                f"Properties have {properties.number_of_cells} cells but the grid has "
                f"{grid.number_of_cells}."
            )
        self.grid = grid
        self.gravity = tuple(float(g) for g in gravity)  # type: ignore[assignment]
        if any(self.gravity):
            logger.debug("Gravity is not included in the pressure discretization")

        faces = grid.face_cells
        axes = grid.face_axes
        self._half_distance_c0 = 0.5 * grid.cell_sizes_along_faces(faces[:, 0], axes)
        inner = faces[:, 1] >= 0
        self._half_distance_c1 = np.zeros(grid.number_of_faces)
        self._half_distance_c1[inner] = 0.5 * grid.cell_sizes_along_faces(
            faces[inner, 1], axes[inner]
        )
        self._solution = None
        self.state = InitializationState.INITIALIZED
        logger.debug(f"Initialized pressure solver on {grid!r}")

    def _half_transmissibilities(
        self, properties: typing.Any, mobility: np.ndarray
    ) -> typing.Tuple[np.ndarray, np.ndarray]:
        grid = typing.cast(CartesianGrid, self.grid)
        faces = grid.face_cells
        axes = grid.face_axes
        diagonal = np.diagonal(properties.permeability, axis1=1, axis2=2)
        cell_conductivity = mobility[:, None] * diagonal

        c0 = faces[:, 0]
        t0 = cell_conductivity[c0, axes] * grid.face_areas / self._half_distance_c0
        t1 = np.zeros(grid.number_of_faces)
        inner = faces[:, 1] >= 0
        c1 = faces[inner, 1]
        t1[inner] = (
            cell_conductivity[c1, axes[inner]]
            * grid.face_areas[inner]
            / self._half_distance_c1[inner]
        )
        return t0, t1

    def solve(
        self,
        properties: typing.Any,
        saturation: typing.Optional[OneDimensionalGrid],
        boundary_conditions: BoundaryConditions,
        sources: typing.Optional[OneDimensionalGrid] = None,
        residual_tolerance: float = 1e-8,
        linear_solver_verbosity: int = 0,
        linear_solver: Solver = "direct",
        preconditioner: typing.Optional[Preconditioner] = "ilu",
        max_iterations: int = 500,
    ) -> FlowSolution:
        """
        Solve for cell pressures and face fluxes.

        :param properties: Object with `permeability` tensors and `total_mobility(saturation)`.
        :param saturation: Cell saturations passed to `total_mobility`.
        :param boundary_conditions: Pressure conditions keyed by boundary id.
        :param sources: Volumetric source per cell (m³/s), positive for injection.
        :param residual_tolerance: Relative residual tolerance of iterative linear solvers.
        :param linear_solver_verbosity: Values above zero log linear solver statistics.
        :param linear_solver: Linear solver name.
        :param preconditioner: Preconditioner name for iterative linear solvers.
        :param max_iterations: Maximum number of iterations of iterative linear solvers.
        :return: The flow solution, also available from `get_solution`.
        """
        if not self.is_initialized:
            raise SolverError("Pressure solver must be initialized before solving.")
        grid = typing.cast(CartesianGrid, self.grid)
        n = grid.number_of_cells
        if boundary_conditions.number_of_boundary_faces != grid.number_of_boundary_faces:
            raise BoundaryConditionError(
                f"Boundary conditions cover {boundary_conditions.number_of_boundary_faces} "
                f"faces but the grid has {grid.number_of_boundary_faces} boundary faces."
            )

        mobility = np.broadcast_to(
            np.asarray(properties.total_mobility(saturation), dtype=np.float64), (n,)
        )
        t0, t1 = self._half_transmissibilities(properties, mobility)

        rhs = np.zeros(n)
        if sources is not None:
            rhs += np.asarray(sources, dtype=np.float64)

        faces = grid.face_cells
        inner = grid.interior_faces
        t_inner = _harmonic(t0[inner], t1[inner])
        a_cells = faces[inner, 0]
        b_cells = faces[inner, 1]
        rows = [a_cells, b_cells, a_cells, b_cells]
        cols = [a_cells, b_cells, b_cells, a_cells]
        vals = [t_inner, t_inner, -t_inner, -t_inner]

        bfaces = grid.boundary_faces
        bcells = faces[bfaces, 0]
        bids = np.arange(1, bfaces.shape[0] + 1)
        kinds = boundary_conditions.flow_kinds[bids]
        values = boundary_conditions.flow_values[bids]
        t_boundary = t0[bfaces]

        dirichlet = kinds == BoundaryKind.DIRICHLET
        rows.append(bcells[dirichlet])
        cols.append(bcells[dirichlet])
        vals.append(t_boundary[dirichlet])
        np.add.at(rhs, bcells[dirichlet], t_boundary[dirichlet] * values[dirichlet])

        neumann = kinds == BoundaryKind.NEUMANN
        np.add.at(rhs, bcells[neumann], -values[neumann])

        # Each periodic pair is handled once, from the face with the smaller boundary id
        partners = boundary_conditions.periodic_partners[bids]
        periodic = (kinds == BoundaryKind.PERIODIC) & (partners > bids)
        first_ids = bids[periodic]
        second_ids = partners[periodic]
        if np.any(boundary_conditions.flow_kinds[second_ids] != BoundaryKind.PERIODIC):
            raise BoundaryConditionError(
                "Periodic pressure faces must be paired with periodic faces."
            )
        jumps = boundary_conditions.flow_values[second_ids]
        if not np.allclose(
            boundary_conditions.flow_values[first_ids], -jumps, rtol=1e-12, atol=1e-12
        ):
            raise BoundaryConditionError(
                "Pressure jumps of periodic face pairs must be antisymmetric."
            )
        if np.any(
            (kinds == BoundaryKind.PERIODIC) & (partners == 0)
        ):
            raise BoundaryConditionError("Periodic pressure face without a partner face.")
        first_faces = bfaces[first_ids - 1]
        second_faces = bfaces[second_ids - 1]
        first_cells = faces[first_faces, 0]
        second_cells = faces[second_faces, 0]
        t_periodic = _harmonic(t0[first_faces], t0[second_faces])
        rows.extend([first_cells, second_cells, first_cells, second_cells])
        cols.extend([first_cells, second_cells, second_cells, first_cells])
        vals.extend([t_periodic, t_periodic, -t_periodic, -t_periodic])
        np.add.at(rhs, first_cells, -t_periodic * jumps)
        np.add.at(rhs, second_cells, t_periodic * jumps)

        A = coo_matrix(
            (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
            shape=(n, n),
        ).tocsr()
        if not boundary_conditions.has_dirichlet_pressure:
            # Pins the pressure level, the solution then has zero pressure in cell 0
            A = A.tolil()
            A[0, 0] = 2.0 * A[0, 0] if A[0, 0] > 0.0 else 1.0
            A = A.tocsr()

        pressures = solve_linear_system(
            A,
            rhs,
            solver=linear_solver,
            preconditioner=preconditioner,
            rtol=residual_tolerance,
            max_iterations=max_iterations,
            verbosity=linear_solver_verbosity,
        )

        fluxes = np.zeros(grid.number_of_faces)
        fluxes[inner] = t_inner * (pressures[a_cells] - pressures[b_cells])
        dirichlet_faces = bfaces[dirichlet]
        fluxes[dirichlet_faces] = t_boundary[dirichlet] * (
            pressures[bcells[dirichlet]] - values[dirichlet]
        )
        fluxes[bfaces[neumann]] = values[neumann]
        periodic_flux = t_periodic * (
            pressures[first_cells] - pressures[second_cells] + jumps
        )
        fluxes[first_faces] = periodic_flux
        fluxes[second_faces] = -periodic_flux

        self._solution = FlowSolution(
            grid=grid, face_fluxes=fluxes, cell_pressures=pressures
        )
        if linear_solver_verbosity > 0:
            net = float(np.sum(fluxes[bfaces]))
            logger.info(f"Pressure solve done. Net boundary outflux {net:.6e} m³/s")
        return self._solution

    def get_solution(self) -> FlowSolution:
        """Return the solution of the most recent solve."""
        if self._solution is None:
            raise SolverError("No pressure solution is available. Call `solve` first.")
        return self._solution

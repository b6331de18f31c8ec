"""Single-phase (effective) permeability upscaling of a block."""

import logging
import threading
import typing
import warnings

import numpy as np

from porus.boundary_conditions import BoundaryConditions, setup_upscaling_conditions
from porus.config import Config
from porus.errors import ValidationError
from porus.flow import FlowSolution, TPFAPressureSolver
from porus.grids import CartesianGrid
from porus.properties import FixedMobilityProperties, ReservoirProperties
from porus.types import InitializationState, MobilityField, PermeabilityTensor

logger = logging.getLogger(__name__)

__all__ = ["SinglePhaseUpscaler", "upscaled_permeability_column"]


def upscaled_permeability_column(
    grid: CartesianGrid, flow_solution: FlowSolution, pressure_drop: float, direction: int
) -> np.ndarray:
    """
    Column `direction` of the upscaled tensor from the fluxes of one pressure solve.

    `K[i, j] = (Q_i / A_i) * L_j / Δp`, with `Q_i` the total flux leaving the block
    through the high side of axis `i` and `j` the direction of the pressure drop.
    """
    column = np.zeros(3)
    lengths = grid.lengths
    outflux = flow_solution.boundary_outfluxes
    for axis in range(3):
        high_side = grid.boundary_sides == 2 * axis + 1
        total = float(np.sum(outflux[high_side]))
        column[axis] = total / grid.side_area(axis) * lengths[direction] / pressure_drop
    return column


class SinglePhaseUpscaler:
    """
    Upscales absolute or effective permeability of a block by solving three
    single-phase pressure problems, one per coordinate direction.

    Boundary conditions follow `Config.boundary_condition_type`.

    Example usage:
    ```python
    import numpy as np
    from porus.config import Config
    from porus.grids import CartesianGrid
    from porus.properties import ReservoirProperties
    from porus.single_phase import SinglePhaseUpscaler

    grid = CartesianGrid.uniform((4, 4, 4))
    properties = ReservoirProperties(
        permeability=np.full(64, 1e-13), porosity=np.full(64, 0.2)
    )
    upscaler = SinglePhaseUpscaler(grid, properties, Config(boundary_condition_type="periodic"))
    upscaler.upscale_single_phase()  # ~ 1e-13 * identity
    ```
    """

    pressure_drop: float = 1.0
    """Pressure drop (Pa) of the single-phase problems. Upscaled tensors do not depend on it."""

    def __init__(
        self,
        grid: CartesianGrid,
        properties: ReservoirProperties,
        config: typing.Optional[Config] = None,
    ) -> None:
        if properties.number_of_cells != grid.number_of_cells:
            raise ValidationError(
                f"Properties have {properties.number_of_cells} cells but the grid has "
                f"{grid.number_of_cells}."
            )
        self.grid = grid
        self.properties = properties
        self.config = config or Config()
        self.flow_solver = TPFAPressureSolver()
        self._flow_solver_state = InitializationState.UNINITIALIZED
        self._flow_solver_lock = threading.Lock()

    @property
    def bc_type(self) -> str:
        return self.config.boundary_condition_type

    def _ensure_flow_solver(self) -> TPFAPressureSolver:
        """Initialize the pressure solver on first use and reuse it afterwards."""
        with self._flow_solver_lock:
            if self._flow_solver_state is InitializationState.UNINITIALIZED:
                self.flow_solver.init(self.grid, self.properties, (0.0, 0.0, 0.0))
                self._flow_solver_state = InitializationState.INITIALIZED
        return self.flow_solver

    def _solve_pressure(
        self,
        fluid: typing.Any,
        saturation: typing.Optional[np.ndarray],
        boundary_conditions: BoundaryConditions,
    ) -> FlowSolution:
        solver = self._ensure_flow_solver()
        config = self.config
        return solver.solve(
            fluid,
            saturation,
            boundary_conditions,
            sources=np.zeros(self.grid.number_of_cells),
            residual_tolerance=config.residual_tolerance,
            linear_solver_verbosity=config.linear_solver_verbosity,
            linear_solver=config.linear_solver,
            preconditioner=config.preconditioner,
            max_iterations=config.max_iterations,
        )

    def _warn_ignored_gravity(self, kind: str) -> None:
        if self.config.has_gravity:
            message = (
                f"Gravity {self.config.gravity} is not supported by {kind} upscaling "
                "and will be ignored."
            )
            warnings.warn(message, UserWarning, stacklevel=3)
            logger.warning(message)

    def upscale_effective_perm(
        self, fluid: typing.Union[MobilityField, FixedMobilityProperties]
    ) -> PermeabilityTensor:
        """
        Upscale the effective permeability `λ K` of the block for a fixed mobility field.

        :param fluid: Per-cell mobility, or properties carrying one.
        :return: 3x3 upscaled effective permeability tensor.
        """
        self._warn_ignored_gravity("single-phase")
        return self._upscale_effective_perm(fluid)

    def _upscale_effective_perm(
        self, fluid: typing.Union[MobilityField, FixedMobilityProperties]
    ) -> PermeabilityTensor:
        if not isinstance(fluid, FixedMobilityProperties):
            fluid = self.properties.with_fixed_mobility(fluid)
        if fluid.number_of_cells != self.grid.number_of_cells:
            raise ValidationError("Mobility field must have one value per cell.")

        tensor = np.zeros((3, 3))
        for direction in range(3):
            boundary_conditions = setup_upscaling_conditions(
                self.grid,
                self.bc_type,  # type: ignore[arg-type]
                direction,
                self.pressure_drop,
                0.0,
            )
            flow_solution = self._solve_pressure(fluid, None, boundary_conditions)
            tensor[:, direction] = upscaled_permeability_column(
                self.grid, flow_solution, self.pressure_drop, direction
            )
        logger.debug(f"Upscaled effective permeability:\n{tensor}")
        return tensor

    def upscale_single_phase(self) -> PermeabilityTensor:
        """Upscale the absolute permeability of the block (unit mobility)."""
        return self.upscale_effective_perm(np.ones(self.grid.number_of_cells))

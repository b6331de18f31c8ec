"""Steady-state two-phase relative permeability upscaling."""

import logging
import typing

import numpy as np

from porus.boundary_conditions import BoundaryConditions, setup_upscaling_conditions
from porus.config import Config
from porus.errors import ComputationError, ValidationError
from porus.flow import FlowSolution
from porus.fluxes import InOutFlows, compute_in_out_flows
from porus.grids import CartesianGrid
from porus.properties import ReservoirProperties
from porus.single_phase import SinglePhaseUpscaler
from porus.stores import SaturationStore
from porus.transport import ExplicitTransportSolver
from porus.types import FlowDirection, PermeabilityTensor, SaturationField
from porus.visualization import write_steady_state_output

logger = logging.getLogger(__name__)

__all__ = ["SteadyStateUpscaler"]


class SteadyStateUpscaler(SinglePhaseUpscaler):
    """
    Upscales two-phase relative permeability of a block by relaxing towards a
    steady-state saturation under a constant pressure drop.

    Each run alternates transport and pressure solves a fixed number of times
    (`Config.simulation_steps`), then upscales the effective permeability of each
    phase mobility field and divides out the absolute permeability.

    Example usage:
    ```python
    import numpy as np
    from porus.config import Config
    from porus.grids import CartesianGrid
    from porus.properties import ReservoirProperties
    from porus.upscaler import SteadyStateUpscaler

    grid = CartesianGrid.uniform((4, 4, 4))
    properties = ReservoirProperties(
        permeability=np.full(64, 1e-13), porosity=np.full(64, 0.2)
    )
    upscaler = SteadyStateUpscaler(
        grid, properties, Config(boundary_condition_type="periodic", simulation_steps=1)
    )
    K = upscaler.upscale_single_phase()
    kr1, kr2 = upscaler.upscale_steady_state(0, np.full(64, 0.5), 0.5, 1.0, K)
    ```
    """

    def __init__(
        self,
        grid: CartesianGrid,
        properties: ReservoirProperties,
        config: typing.Optional[Config] = None,
    ) -> None:
        super().__init__(grid, properties, config)
        config = self.config
        if config.viscosity1 is not None or config.viscosity2 is not None:
            properties.set_viscosities(
                config.viscosity1 if config.viscosity1 is not None else properties.viscosity1,
                config.viscosity2 if config.viscosity2 is not None else properties.viscosity2,
            )
        if config.density1 is not None or config.density2 is not None:
            properties.set_densities(
                config.density1 if config.density1 is not None else properties.density1,
                config.density2 if config.density2 is not None else properties.density2,
            )

        self.transport_solver = ExplicitTransportSolver()
        self.transport_solver.init(config)
        self._saturations = SaturationStore()
        self._run_count = 0
        self.boundary_conditions: typing.Optional[BoundaryConditions] = None

    @property
    def run_count(self) -> int:
        """Number of steady-state runs performed by this upscaler."""
        return self._run_count

    def _initial_saturation(self, initial_saturation: typing.Any) -> SaturationField:
        n = self.grid.number_of_cells
        saturation = np.array(
            np.broadcast_to(np.asarray(initial_saturation, dtype=np.float64), (n,)),
            dtype=np.float64,
            copy=True,
        )
        if np.any((saturation < 0.0) | (saturation > 1.0)):
            raise ValidationError("Initial saturation must be in [0, 1].")
        return saturation

    def upscale_steady_state(
        self,
        flow_direction: FlowDirection,
        initial_saturation: typing.Union[float, SaturationField],
        boundary_saturation: float,
        pressure_drop: float,
        upscaled_perm: PermeabilityTensor,
    ) -> typing.Tuple[PermeabilityTensor, PermeabilityTensor]:
        """
        Run a steady-state relaxation along `flow_direction` and upscale relative permeabilities.

        :param flow_direction: Axis of the imposed pressure drop (0, 1 or 2).
        :param initial_saturation: First phase saturation per cell, or a uniform value.
        :param boundary_saturation: Saturation of fluid entering through Dirichlet faces.
        :param pressure_drop: Pressure drop across the block (Pa).
        :param upscaled_perm: Upscaled absolute permeability tensor of the block, e.g.
            from `upscale_single_phase`.
        :return: Upscaled relative permeability tensors `(kr1, kr2)`.
        :raises ComputationError: If `upscaled_perm` is singular.
        """
        if flow_direction not in (0, 1, 2):
            raise ValidationError(f"Flow direction must be 0, 1 or 2, got {flow_direction!r}.")
        upscaled_perm = np.asarray(upscaled_perm, dtype=np.float64)
        if upscaled_perm.shape != (3, 3):
            raise ValidationError("Upscaled permeability must be a 3x3 tensor.")

        config = self.config
        self._warn_ignored_gravity("steady-state")
        self._run_count += 1
        saturation = self._initial_saturation(initial_saturation)
        boundary_conditions = setup_upscaling_conditions(
            self.grid, self.bc_type, flow_direction, pressure_drop, boundary_saturation  # type: ignore[arg-type]
        )
        self.boundary_conditions = boundary_conditions
        self._ensure_flow_solver()
        self.transport_solver.init_problem(self.grid, self.properties, boundary_conditions)
        logger.info(
            f"Steady-state run {self._run_count} along axis {flow_direction} "
            f"({config.boundary_condition_type} conditions, pressure drop {pressure_drop})"
        )

        injection = np.zeros(self.grid.number_of_cells)
        no_gravity = (0.0, 0.0, 0.0)
        flow_solution = self._solve_pressure(self.properties, saturation, boundary_conditions)
        for iteration in range(config.simulation_steps):
            self.transport_solver.transport_solve(
                saturation, config.stepsize_seconds, no_gravity, flow_solution, injection
            )
            flow_solution = self._solve_pressure(
                self.properties, saturation, boundary_conditions
            )
            if config.print_inoutflows:
                flows = self.compute_in_out_flows(flow_solution, saturation)
                logger.info(
                    f"Pressure step {iteration}\n"
                    f"First phase flow [in] {flows.first_phase.inflow:.6e}  "
                    f"[out] {flows.first_phase.outflow:.6e}\n"
                    f"Second phase flow [in] {flows.second_phase.inflow:.6e}  "
                    f"[out] {flows.second_phase.outflow:.6e}"
                )
            if config.output_vtk:
                write_steady_state_output(
                    self.grid,
                    self.properties,
                    flow_solution,
                    saturation,
                    run_count=self._run_count,
                    flow_direction=flow_direction,
                    iteration=iteration,
                    output_directory=config.output_directory,
                )

        first_mobility, second_mobility = self.phase_mobilities(saturation)
        first_effective_perm = self._upscale_effective_perm(first_mobility)
        second_effective_perm = self._upscale_effective_perm(second_mobility)

        self._saturations.store(flow_direction, saturation)

        try:
            inverse_perm = np.linalg.inv(upscaled_perm)
        except np.linalg.LinAlgError as exc:
            raise ComputationError(
                f"Upscaled absolute permeability is singular:\n{upscaled_perm}"
            ) from exc
        # effective_perm = lambda @ K, so lambda = effective_perm @ inv(K)
        first_lambda = first_effective_perm @ inverse_perm
        second_lambda = second_effective_perm @ inverse_perm
        first_relperm = first_lambda * self.properties.viscosity1
        second_relperm = second_lambda * self.properties.viscosity2
        logger.debug(
            f"Upscaled relative permeabilities:\n{first_relperm}\n{second_relperm}"
        )
        return first_relperm, second_relperm

    def phase_mobilities(
        self, saturation: SaturationField
    ) -> typing.Tuple[np.ndarray, np.ndarray]:
        """
        Phase mobilities per cell, floored at `relperm_threshold / viscosity` of each phase.
        """
        properties = self.properties
        threshold = self.config.relperm_threshold
        first = np.maximum(
            np.asarray(properties.mobility_first_phase(saturation), dtype=np.float64),
            threshold / properties.viscosity1,
        )
        second = np.maximum(
            np.asarray(properties.mobility_second_phase(saturation), dtype=np.float64),
            threshold / properties.viscosity2,
        )
        return first, second

    def compute_in_out_flows(
        self,
        flow_solution: FlowSolution,
        saturation: SaturationField,
        boundary_conditions: typing.Optional[BoundaryConditions] = None,
    ) -> InOutFlows:
        """
        Per-phase boundary inflow and outflow totals of a flow solution.

        :param flow_solution: Total face fluxes.
        :param saturation: First phase saturation per cell.
        :param boundary_conditions: Conditions to account against. Defaults to those of the latest run.
        """
        if boundary_conditions is None:
            boundary_conditions = self.boundary_conditions
        if boundary_conditions is None:
            raise ValidationError(
                "No boundary conditions available. Run `upscale_steady_state` or pass them explicitly."
            )
        return compute_in_out_flows(
            self.grid, self.properties, boundary_conditions, flow_solution, saturation
        )

    def last_saturations(
        self,
    ) -> typing.Tuple[
        typing.Optional[SaturationField],
        typing.Optional[SaturationField],
        typing.Optional[SaturationField],
    ]:
        """Steady-state saturation of the latest run along each direction, None where no run was made."""
        return self._saturations.as_tuple()

    def last_saturation(self, flow_direction: FlowDirection) -> SaturationField:
        return self._saturations.get(flow_direction)

    def last_saturation_upscaled(self, flow_direction: FlowDirection) -> float:
        """
        Pore volume weighted average of the latest steady-state saturation along `flow_direction`.

        :raises StoreError: If no run was made along the direction.
        :raises ComputationError: If the block has zero pore volume.
        """
        saturation = self._saturations.get(flow_direction)
        pore_volumes = self.properties.pore_volumes(self.grid.cell_volumes)
        total_pore_volume = float(np.sum(pore_volumes))
        if total_pore_volume <= 0.0:
            raise ComputationError("Block has zero pore volume.")
        return float(np.sum(pore_volumes * saturation)) / total_pore_volume

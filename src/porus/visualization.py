"""Cell field reconstruction and VTK output of steady-state runs."""

import logging
import os
import typing

import numpy as np
import pyvista as pv

from porus.flow import FlowSolution
from porus.grids import CartesianGrid
from porus.properties import ReservoirProperties
from porus.types import OneDimensionalGrid, SaturationField

logger = logging.getLogger(__name__)

__all__ = [
    "estimate_cell_velocity",
    "compute_phase_velocities",
    "get_cell_pressure",
    "compute_capillary_pressure",
    "build_vtk_grid",
    "steady_state_output_name",
    "write_steady_state_output",
]


def estimate_cell_velocity(grid: CartesianGrid, flow_solution: FlowSolution) -> np.ndarray:
    """
    Darcy velocity per cell, the mean of the face velocities on the two faces normal to each axis.

    :return: Array of shape `(number_of_cells, 3)` (m/s).
    """
    directed = flow_solution.directed_fluxes() / grid.face_areas
    faces = grid.cell_faces
    velocity = np.empty((grid.number_of_cells, 3))
    for axis in range(3):
        velocity[:, axis] = 0.5 * (
            directed[faces[:, 2 * axis]] + directed[faces[:, 2 * axis + 1]]
        )
    return velocity


def compute_phase_velocities(
    properties: ReservoirProperties,
    saturation: SaturationField,
    cell_velocity: np.ndarray,
) -> typing.Tuple[np.ndarray, np.ndarray]:
    """Split the total cell velocity into phase velocities by fractional flow."""
    frac_flow = np.asarray(properties.fractional_flow(np.asarray(saturation)))
    first = cell_velocity * frac_flow[:, None]
    return first, cell_velocity - first


def get_cell_pressure(flow_solution: FlowSolution) -> OneDimensionalGrid:
    return np.array(flow_solution.cell_pressures, copy=True)


def compute_capillary_pressure(
    properties: ReservoirProperties, saturation: SaturationField
) -> OneDimensionalGrid:
    return np.asarray(properties.capillary_pressure(np.asarray(saturation)), dtype=np.float64)


def build_vtk_grid(grid: CartesianGrid) -> pv.UnstructuredGrid:
    """
    Create a PyVista unstructured grid of hexahedral cells, in the cell order of `grid`.
    """
    nx, ny, nz = grid.dimensions
    x, y, z = grid.node_coordinates
    px, py, pz = np.meshgrid(x, y, z, indexing="ij")
    points = np.stack(
        [px.ravel(order="F"), py.ravel(order="F"), pz.ravel(order="F")], axis=1
    )

    def point_id(i, j, k):
        return i + (nx + 1) * (j + (ny + 1) * k)

    i, j, k = (g.ravel(order="F") for g in np.indices((nx, ny, nz)))
    # VTK hexahedron order: bottom face (k), then top face (k + 1)
    hexahedra = np.stack(
        [
            point_id(i, j, k),
            point_id(i + 1, j, k),
            point_id(i + 1, j + 1, k),
            point_id(i, j + 1, k),
            point_id(i, j, k + 1),
            point_id(i + 1, j, k + 1),
            point_id(i + 1, j + 1, k + 1),
            point_id(i, j + 1, k + 1),
        ],
        axis=1,
    )
    cells = np.hstack([np.full((hexahedra.shape[0], 1), 8), hexahedra]).ravel()
    cell_types = np.full(hexahedra.shape[0], pv.CellType.HEXAHEDRON, dtype=np.uint8)
    return pv.UnstructuredGrid(cells, cell_types, points)


def steady_state_output_name(run_count: int, flow_direction: int, iteration: int) -> str:
    return f"output-steadystate-{run_count}-{flow_direction}-{iteration}"


def write_steady_state_output(
    grid: CartesianGrid,
    properties: ReservoirProperties,
    flow_solution: FlowSolution,
    saturation: SaturationField,
    run_count: int,
    flow_direction: int,
    iteration: int,
    output_directory: typing.Union[str, os.PathLike] = ".",
) -> str:
    """
    Write the cell fields of one relaxation iteration to an ASCII `.vtu` file.

    Fields: velocity, first and second phase velocity, saturation, pressure and capillary pressure.

    :return: Path of the written file.
    """
    velocity = estimate_cell_velocity(grid, flow_solution)
    first_velocity, second_velocity = compute_phase_velocities(
        properties, saturation, velocity
    )
    vtk_grid = build_vtk_grid(grid)
    vtk_grid.cell_data["velocity"] = velocity
    vtk_grid.cell_data["phase velocity [first]"] = first_velocity
    vtk_grid.cell_data["phase velocity [second]"] = second_velocity
    vtk_grid.cell_data["saturation"] = np.asarray(saturation, dtype=np.float64)
    vtk_grid.cell_data["pressure"] = get_cell_pressure(flow_solution)
    vtk_grid.cell_data["capillary pressure"] = compute_capillary_pressure(
        properties, saturation
    )

    os.makedirs(output_directory, exist_ok=True)
    path = os.path.join(
        os.fspath(output_directory),
        steady_state_output_name(run_count, flow_direction, iteration) + ".vtu",
    )
    vtk_grid.save(path, binary=False)
    logger.debug(f"Wrote steady-state output to {path}")
    return path

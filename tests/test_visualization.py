import numpy as np
import pytest
import pyvista as pv

from porus.boundary_conditions import setup_upscaling_conditions
from porus.capillary_pressures import BrooksCoreyCapillaryPressureModel
from porus.flow import TPFAPressureSolver
from porus.visualization import (
    build_vtk_grid,
    compute_capillary_pressure,
    compute_phase_velocities,
    estimate_cell_velocity,
    get_cell_pressure,
    steady_state_output_name,
    write_steady_state_output,
)

from conftest import PERMEABILITY


@pytest.fixture
def solved(grid, make_properties):
    properties = make_properties(
        grid, capillary_pressure_models=BrooksCoreyCapillaryPressureModel(entry_pressure=1e3)
    )
    solver = TPFAPressureSolver()
    solver.init(grid, properties)
    saturation = np.full(grid.number_of_cells, 0.5)
    bcs = setup_upscaling_conditions(grid, "fixed", 0, 3.0, 0.5)
    return properties, saturation, solver.solve(properties, saturation, bcs)


def test_cell_velocity_of_uniform_flow(grid, solved):
    properties, saturation, solution = solved
    velocity = estimate_cell_velocity(grid, solution)
    mobility = properties.total_mobility(0.5)
    np.testing.assert_allclose(velocity[:, 0], mobility * PERMEABILITY * 3.0, rtol=1e-8)
    np.testing.assert_allclose(velocity[:, 1:], 0.0, atol=1e-20)

    first, second = compute_phase_velocities(properties, saturation, velocity)
    np.testing.assert_allclose(first, 0.75 * velocity)
    np.testing.assert_allclose(first + second, velocity)


def test_cell_fields(solved):
    properties, saturation, solution = solved
    pressure = get_cell_pressure(solution)
    assert pressure is not solution.cell_pressures
    np.testing.assert_allclose(pressure, solution.cell_pressures)
    np.testing.assert_allclose(
        compute_capillary_pressure(properties, saturation), 1e3 * 0.5 ** (-0.5)
    )


def test_vtk_grid_matches_cell_order(grid):
    vtk_grid = build_vtk_grid(grid)
    assert vtk_grid.n_cells == grid.number_of_cells
    assert vtk_grid.n_points == 4 * 4 * 4
    np.testing.assert_allclose(vtk_grid.cell_centers().points, grid.cell_centroids)


def test_write_steady_state_output(grid, solved, tmp_path):
    properties, saturation, solution = solved
    path = write_steady_state_output(
        grid, properties, solution, saturation, 3, 1, 4, output_directory=tmp_path
    )
    assert path.endswith(steady_state_output_name(3, 1, 4) + ".vtu")
    assert "output-steadystate-3-1-4" in path
    with open(path, "r", encoding="utf-8") as f:
        assert 'format="ascii"' in f.read()
    mesh = pv.read(path)
    for name in (
        "velocity",
        "phase velocity [first]",
        "phase velocity [second]",
        "saturation",
        "pressure",
        "capillary pressure",
    ):
        assert name in mesh.cell_data
    np.testing.assert_allclose(mesh.cell_data["saturation"], saturation)

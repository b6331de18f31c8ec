import numpy as np
import pytest

from porus.config import Config
from porus.errors import ValidationError
from porus.grids import CartesianGrid
from porus.single_phase import SinglePhaseUpscaler
from porus.types import InitializationState

from conftest import PERMEABILITY


@pytest.mark.parametrize("bc_type", ["fixed", "linear", "periodic"])
def test_uniform_block(grid, properties, bc_type):
    upscaler = SinglePhaseUpscaler(grid, properties, Config(boundary_condition_type=bc_type))
    K = upscaler.upscale_single_phase()
    np.testing.assert_allclose(K, PERMEABILITY * np.eye(3), rtol=1e-8, atol=1e-12 * PERMEABILITY)


def test_effective_permeability_scales_with_mobility(grid, properties):
    upscaler = SinglePhaseUpscaler(grid, properties, Config(boundary_condition_type="periodic"))
    K = upscaler.upscale_single_phase()
    effective = upscaler.upscale_effective_perm(np.full(grid.number_of_cells, 250.0))
    np.testing.assert_allclose(effective, 250.0 * K, rtol=1e-8, atol=1e-12 * PERMEABILITY)


def test_layered_block(make_properties):
    grid = CartesianGrid.uniform((2, 2, 2), (1.0, 1.0, 1.0))
    permeability = np.where(np.arange(8) < 4, 1e-13, 3e-13)
    properties = make_properties(grid, permeability=permeability)
    K = SinglePhaseUpscaler(grid, properties).upscale_single_phase()

    arithmetic = 0.5 * (1e-13 + 3e-13)
    harmonic = 2.0 / (1.0 / 1e-13 + 1.0 / 3e-13)
    np.testing.assert_allclose(np.diag(K), [arithmetic, arithmetic, harmonic], rtol=1e-8)
    np.testing.assert_allclose(K - np.diag(np.diag(K)), 0.0, atol=1e-12 * arithmetic)


def test_anisotropic_cells(make_properties):
    grid = CartesianGrid.uniform((3, 2, 2), (3.0, 1.0, 2.0))
    permeability = np.tile([1e-13, 2e-13, 4e-13], (grid.number_of_cells, 1))
    properties = make_properties(grid, permeability=permeability)
    K = SinglePhaseUpscaler(
        grid, properties, Config(boundary_condition_type="linear")
    ).upscale_single_phase()
    np.testing.assert_allclose(np.diag(K), [1e-13, 2e-13, 4e-13], rtol=1e-8)


def test_flow_solver_is_initialized_once(grid, properties):
    upscaler = SinglePhaseUpscaler(grid, properties)
    assert upscaler._flow_solver_state is InitializationState.UNINITIALIZED
    upscaler.upscale_single_phase()
    solver = upscaler.flow_solver
    assert upscaler._flow_solver_state is InitializationState.INITIALIZED
    upscaler.upscale_single_phase()
    assert upscaler.flow_solver is solver


def test_mismatched_sizes(grid, properties):
    with pytest.raises(ValidationError):
        SinglePhaseUpscaler(CartesianGrid.uniform((2, 2, 2)), properties)
    upscaler = SinglePhaseUpscaler(grid, properties)
    with pytest.raises(ValidationError):
        upscaler.upscale_effective_perm(np.ones(5))


def test_gravity_is_warned_and_ignored(grid, properties):
    upscaler = SinglePhaseUpscaler(grid, properties, Config(gravity=(0.0, 0.0, -9.81)))
    with pytest.warns(UserWarning, match="not supported by single-phase upscaling"):
        K = upscaler.upscale_single_phase()
    np.testing.assert_allclose(K, PERMEABILITY * np.eye(3), rtol=1e-8, atol=1e-12 * PERMEABILITY)

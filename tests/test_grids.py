import numpy as np
import pytest

from porus.errors import ValidationError
from porus.grids import CartesianGrid


def test_counts():
    grid = CartesianGrid((2, 3, 4), (1.0, 2.0, 0.5))
    assert grid.number_of_cells == 24
    # (nx+1)*ny*nz + nx*(ny+1)*nz + nx*ny*(nz+1)
    assert grid.number_of_faces == 3 * 3 * 4 + 2 * 4 * 4 + 2 * 3 * 5
    assert grid.number_of_boundary_faces == 2 * (3 * 4 + 2 * 4 + 2 * 3)
    assert grid.lengths == pytest.approx((2.0, 6.0, 2.0))
    assert grid.side_area(0) == pytest.approx(12.0)


def test_cell_numbering_and_geometry():
    grid = CartesianGrid((2, 2, 2), ([1.0, 3.0], 1.0, 1.0))
    assert grid.cell_index(1, 0, 0) == 1
    assert grid.cell_index(0, 1, 0) == 2
    assert grid.cell_index(0, 0, 1) == 4
    assert grid.cell_ijk(5) == (1, 0, 1)
    np.testing.assert_allclose(grid.cell_volumes, [1.0, 3.0] * 4)
    np.testing.assert_allclose(grid.cell_centroids[1], [2.5, 0.5, 0.5])
    assert grid.cell_volumes.sum() == pytest.approx(np.prod(grid.lengths))


def test_boundary_faces_point_out_of_the_block():
    grid = CartesianGrid.uniform((2, 2, 1))
    for face in grid.boundary_faces:
        c0, c1 = grid.face_cells[face]
        assert c1 == -1
        assert 0 <= c0 < grid.number_of_cells


def test_boundary_ids_and_opposites():
    grid = CartesianGrid.uniform((2, 1, 1))
    assert grid.face_boundary_ids[grid.boundary_faces].tolist() == list(range(1, 11))
    assert grid.boundary_sides.tolist() == [0, 1, 2, 2, 3, 3, 4, 4, 5, 5]
    assert grid.opposite_boundary_id(1) == 2
    assert grid.opposite_boundary_id(3) == 5
    assert grid.opposite_boundary_id(6) == 4
    for bid in range(1, grid.number_of_boundary_faces + 1):
        partner = grid.opposite_boundary_id(bid)
        assert grid.opposite_boundary_id(partner) == bid
        face, partner_face = grid.boundary_face(bid), grid.boundary_face(partner)
        axis = grid.face_axes[face]
        transverse = [b for b in range(3) if b != axis]
        np.testing.assert_allclose(
            grid.face_centroids[face, transverse],
            grid.face_centroids[partner_face, transverse],
        )
    with pytest.raises(ValidationError):
        grid.opposite_boundary_id(0)


def test_cell_faces_are_consistent_with_face_cells():
    grid = CartesianGrid.uniform((3, 2, 2))
    for cell in range(grid.number_of_cells):
        for side, face in enumerate(grid.cell_faces[cell]):
            assert cell in grid.face_cells[face]
            assert grid.face_axes[face] == side // 2


@pytest.mark.parametrize(
    "dimensions, sizes",
    [((0, 1, 1), (1.0, 1.0, 1.0)), ((2, 2), (1.0, 1.0, 1.0)), ((2, 2, 2), (1.0, -1.0, 1.0))],
)
def test_invalid_grid(dimensions, sizes):
    with pytest.raises(ValidationError):
        CartesianGrid(dimensions, sizes)

"""Cartesian block grids with cell/face topology and geometry."""

import functools
import typing

import numpy as np

from porus._precision import get_dtype
from porus.errors import ValidationError
from porus.types import ThreeDimensions


__all__ = ["CartesianGrid", "SIDE_NAMES"]


SIDE_NAMES = ("x-", "x+", "y-", "y+", "z-", "z+")
"""Names of the six sides of the block, indexed by side number `2 * axis + (0 | 1)`."""


def _as_spacing(value: typing.Any, count: int, axis: int) -> np.ndarray:
    spacing = np.asarray(value, dtype=get_dtype())
    if spacing.ndim == 0:
        spacing = np.full(count, spacing, dtype=get_dtype())
    if spacing.shape != (count,):
        raise ValidationError(
            f"Cell sizes along axis {axis} must be a scalar or have length {count}, "
            f"got shape {spacing.shape}."
        )
    if np.any(spacing <= 0.0):
        raise ValidationError(f"Cell sizes along axis {axis} must be positive.")
    return spacing


class CartesianGrid:
    """
    Logically Cartesian grid of a single upscaling block.

    Cells are numbered `i + nx * (j + ny * k)`. Faces are numbered axis by axis,
    and within an axis with the face position along the axis varying fastest.

    Each face stores the pair `(c0, c1)` of adjacent cells in `face_cells`. A positive
    flux on a face flows from `c0` into `c1`. Boundary faces have `c1 == -1` and `c0`
    the cell inside the block, so a positive flux on a boundary face is an outflow.

    Boundary faces carry unique, 1-based boundary ids in face order, and a side number
    (0: x-, 1: x+, 2: y-, 3: y+, 4: z-, 5: z+).

    Example usage:
    ```python
    from porus.grids import CartesianGrid

    grid = CartesianGrid(dimensions=(10, 10, 4), cell_sizes=(1.0, 1.0, 0.5))
    grid.number_of_cells  # 400
    grid.lengths  # (10.0, 10.0, 2.0)
    ```
    """

    def __init__(
        self,
        dimensions: ThreeDimensions,
        cell_sizes: typing.Sequence[typing.Any] = (1.0, 1.0, 1.0),
    ) -> None:
        """
        :param dimensions: Number of cells along x, y and z.
        :param cell_sizes: Cell sizes (m) along x, y and z. Each entry is either
            a scalar or an array with one spacing per cell layer along that axis.
        """
        if len(dimensions) != 3 or any(int(n) < 1 for n in dimensions):
            raise ValidationError(
                f"Grid dimensions must be three positive integers, got {dimensions!r}."
            )
        if len(cell_sizes) != 3:
            raise ValidationError("Cell sizes must be given for all three axes.")

        self.dimensions: ThreeDimensions = tuple(int(n) for n in dimensions)  # type: ignore[assignment]
        self.spacings = tuple(
            _as_spacing(cell_sizes[axis], self.dimensions[axis], axis)
            for axis in range(3)
        )
        self._build_faces()

    @classmethod
    def uniform(
        cls,
        dimensions: ThreeDimensions,
        lengths: typing.Tuple[float, float, float] = (1.0, 1.0, 1.0),
    ) -> "CartesianGrid":
        """
        Build a grid of equally sized cells covering a block of the given extent.

        :param dimensions: Number of cells along x, y and z.
        :param lengths: Physical extent (m) of the block along x, y and z.
        """
        return cls(
            dimensions=dimensions,
            cell_sizes=tuple(
                float(length) / int(n) for length, n in zip(lengths, dimensions)
            ),
        )

    @property
    def number_of_cells(self) -> int:
        nx, ny, nz = self.dimensions
        return nx * ny * nz

    @property
    def number_of_faces(self) -> int:
        return int(self.face_cells.shape[0])

    @property
    def number_of_boundary_faces(self) -> int:
        return int(self.boundary_faces.shape[0])

    def cell_index(self, i, j, k):
        """Flat cell index of the cell(s) at logical position `(i, j, k)`."""
        nx, ny, _ = self.dimensions
        return i + nx * (j + ny * k)

    def cell_ijk(self, cell: int) -> ThreeDimensions:
        """Logical position of a cell."""
        nx, ny, _ = self.dimensions
        return (cell % nx, (cell // nx) % ny, cell // (nx * ny))

    @functools.cached_property
    def lengths(self) -> typing.Tuple[float, float, float]:
        """Extent of the block along each axis (m)."""
        return tuple(float(np.sum(s)) for s in self.spacings)  # type: ignore[return-value]

    def side_area(self, axis: int) -> float:
        """Area of one side of the block normal to `axis` (m²)."""
        lengths = self.lengths
        return float(np.prod([lengths[b] for b in range(3) if b != axis]))

    @functools.cached_property
    def cell_volumes(self) -> np.ndarray:
        dx, dy, dz = self.spacings
        volumes = np.einsum("i,j,k->ijk", dx, dy, dz)
        return volumes.ravel(order="F")

    @functools.cached_property
    def cell_centroids(self) -> np.ndarray:
        """Cell centroids, shape `(number_of_cells, 3)`."""
        centers = [np.cumsum(s) - 0.5 * s for s in self.spacings]
        mesh = np.meshgrid(*centers, indexing="ij")
        return np.stack([m.ravel(order="F") for m in mesh], axis=1)

    @functools.cached_property
    def node_coordinates(self) -> typing.Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Coordinates of the grid lines along each axis."""
        return tuple(  # type: ignore[return-value]
            np.concatenate(([0.0], np.cumsum(s))).astype(get_dtype()) for s in self.spacings
        )

    def cell_sizes_along(self, axis: int) -> np.ndarray:
        """Size of every cell along `axis`, one value per cell."""
        return self.spacings[axis][self._cell_ijk_arrays[axis]]

    def cell_sizes_along_faces(self, cells: np.ndarray, axes: np.ndarray) -> np.ndarray:
        """Size of `cells[i]` along `axes[i]`, e.g. across the face the cell is paired with."""
        cells = np.asarray(cells, dtype=np.int64)
        axes = np.asarray(axes, dtype=np.int64)
        sizes = np.empty(cells.shape[0], dtype=get_dtype())
        for axis in range(3):
            mask = axes == axis
            sizes[mask] = self.spacings[axis][self._cell_ijk_arrays[axis][cells[mask]]]
        return sizes

    @functools.cached_property
    def _cell_ijk_arrays(self) -> typing.Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return tuple(g.ravel(order="F") for g in np.indices(self.dimensions))  # type: ignore[return-value]

    def _build_faces(self) -> None:
        nx, ny, nz = self.dimensions
        edges = [np.concatenate(([0.0], np.cumsum(s))) for s in self.spacings]
        centers = [np.cumsum(s) - 0.5 * s for s in self.spacings]

        face_cells = []
        face_axes = []
        face_areas = []
        face_sides = []
        face_normal_signs = []
        face_centroids = []
        self._face_offsets = []
        offset = 0
        for axis in range(3):
            shape = list(self.dimensions)
            shape[axis] += 1
            ijk = [g.ravel(order="F") for g in np.indices(shape)]
            position = ijk[axis]
            count = position.shape[0]
            n_axis = self.dimensions[axis]

            lower = list(ijk)
            lower[axis] = np.maximum(position - 1, 0)
            upper = list(ijk)
            upper[axis] = np.minimum(position, n_axis - 1)
            lower_cell = self.cell_index(*lower)
            upper_cell = self.cell_index(*upper)

            at_min = position == 0
            at_max = position == n_axis
            c0 = np.where(at_min, upper_cell, lower_cell)
            c1 = np.where(at_min | at_max, -1, upper_cell)
            face_cells.append(np.stack([c0, c1], axis=1))

            transverse = [b for b in range(3) if b != axis]
            area = self.spacings[transverse[0]][ijk[transverse[0]]] * self.spacings[
                transverse[1]
            ][ijk[transverse[1]]]
            face_areas.append(area)
            face_axes.append(np.full(count, axis, dtype=np.int64))
            side = np.full(count, -1, dtype=np.int64)
            side[at_min] = 2 * axis
            side[at_max] = 2 * axis + 1
            face_sides.append(side)
            face_normal_signs.append(np.where(at_min, -1.0, 1.0))

            centroid = np.empty((count, 3))
            centroid[:, axis] = edges[axis][position]
            for b in transverse:
                centroid[:, b] = centers[b][ijk[b]]
            face_centroids.append(centroid)

            self._face_offsets.append(offset)
            offset += count

        self.face_cells = np.concatenate(face_cells).astype(np.int64)
        self.face_axes = np.concatenate(face_axes)
        self.face_areas = np.concatenate(face_areas).astype(get_dtype())
        self.face_sides = np.concatenate(face_sides)
        self.face_normal_signs = np.concatenate(face_normal_signs)
        self.face_centroids = np.concatenate(face_centroids)

        self.boundary_faces = np.flatnonzero(self.face_cells[:, 1] < 0)
        self.interior_faces = np.flatnonzero(self.face_cells[:, 1] >= 0)
        self.face_boundary_ids = np.zeros(self.number_of_faces, dtype=np.int64)
        self.face_boundary_ids[self.boundary_faces] = np.arange(
            1, self.boundary_faces.shape[0] + 1
        )
        self.boundary_sides = self.face_sides[self.boundary_faces]

        # Faces of one side appear in the same transverse order as those of the opposite side
        self._opposite_boundary_ids = np.zeros(
            self.boundary_faces.shape[0] + 1, dtype=np.int64
        )
        for axis in range(3):
            low = self.face_boundary_ids[self.face_sides == 2 * axis]
            high = self.face_boundary_ids[self.face_sides == 2 * axis + 1]
            self._opposite_boundary_ids[low] = high
            self._opposite_boundary_ids[high] = low

    @functools.cached_property
    def cell_faces(self) -> np.ndarray:
        """
        Faces of every cell, shape `(number_of_cells, 6)`, in side order x-, x+, y-, y+, z-, z+.
        """
        i, j, k = self._cell_ijk_arrays
        faces = np.empty((self.number_of_cells, 6), dtype=np.int64)
        for axis in range(3):
            shape = list(self.dimensions)
            shape[axis] += 1
            position = [i, j, k]
            minus = self._face_offsets[axis] + position[0] + shape[0] * (
                position[1] + shape[1] * position[2]
            )
            stride = (1, shape[0], shape[0] * shape[1])[axis]
            faces[:, 2 * axis] = minus
            faces[:, 2 * axis + 1] = minus + stride
        return faces

    def boundary_face(self, boundary_id: int) -> int:
        """Face index of a boundary id."""
        if not 1 <= boundary_id <= self.number_of_boundary_faces:
            raise ValidationError(f"Invalid boundary id {boundary_id}.")
        return int(self.boundary_faces[boundary_id - 1])

    def opposite_boundary_id(self, boundary_id: int) -> int:
        """
        Boundary id of the face at the same transverse position on the opposite side of the block.
        """
        if not 1 <= boundary_id <= self.number_of_boundary_faces:
            raise ValidationError(f"Invalid boundary id {boundary_id}.")
        return int(self._opposite_boundary_ids[boundary_id])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dimensions={self.dimensions}, lengths={self.lengths})"

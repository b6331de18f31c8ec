"""Boundary conditions for the pressure and transport problems of an upscaling block."""

import enum
import logging
import typing

import attrs
import numpy as np

from porus.errors import BoundaryConditionError, ValidationError
from porus.grids import SIDE_NAMES, CartesianGrid
from porus.types import BoundaryConditionType


__all__ = [
    "BoundaryKind",
    "FlowBoundaryCondition",
    "SaturationBoundaryCondition",
    "BoundaryConditions",
    "setup_upscaling_conditions",
]

logger = logging.getLogger(__name__)


class BoundaryKind(enum.IntEnum):
    """Kinds of boundary conditions."""

    DIRICHLET = 0
    """Prescribed value (pressure or saturation) on the face."""
    NEUMANN = 1
    """Prescribed outward flux through the face. Zero means no flow."""
    PERIODIC = 2
    """Face is linked to a partner face on the opposite side of the block."""


@attrs.frozen
class FlowBoundaryCondition:
    """
    Pressure boundary condition of a single boundary face.

    The meaning of `value` depends on the kind:
    - DIRICHLET: pressure on the face (Pa)
    - NEUMANN: outward flux through the face (m³/s)
    - PERIODIC: pressure jump, pressure at this face minus pressure at the partner face (Pa)
    """

    kind: BoundaryKind
    value: float = 0.0

    @property
    def is_dirichlet(self) -> bool:
        return self.kind == BoundaryKind.DIRICHLET

    @property
    def is_neumann(self) -> bool:
        return self.kind == BoundaryKind.NEUMANN

    @property
    def is_periodic(self) -> bool:
        return self.kind == BoundaryKind.PERIODIC


@attrs.frozen
class SaturationBoundaryCondition:
    """
    Saturation boundary condition of a single boundary face.

    Dirichlet faces prescribe the saturation of fluid entering the block. Periodic faces
    take the saturation of their partner face, offset by the saturation difference.
    """

    kind: BoundaryKind = attrs.field(
        validator=attrs.validators.in_((BoundaryKind.DIRICHLET, BoundaryKind.PERIODIC))
    )
    value: float = 0.0

    @property
    def is_dirichlet(self) -> bool:
        return self.kind == BoundaryKind.DIRICHLET

    @property
    def is_periodic(self) -> bool:
        return self.kind == BoundaryKind.PERIODIC

    @property
    def saturation(self) -> float:
        """Prescribed saturation of a Dirichlet face."""
        return self.value

    @property
    def saturation_difference(self) -> float:
        """Saturation difference across a periodic face pair."""
        return self.value


class BoundaryConditions:
    """
    Boundary conditions on every boundary face of a block, keyed by boundary id.

    Conditions are stored as arrays indexed by boundary id (entry 0 is unused),
    so solvers can apply them without per-face Python dispatch.
    """

    def __init__(
        self,
        flow_kinds: np.ndarray,
        flow_values: np.ndarray,
        saturation_kinds: np.ndarray,
        saturation_values: np.ndarray,
        periodic_partners: np.ndarray,
    ) -> None:
        """
        :param flow_kinds: `BoundaryKind` of the pressure condition per boundary id.
        :param flow_values: Pressure, flux or pressure jump per boundary id.
        :param saturation_kinds: `BoundaryKind` of the saturation condition per boundary id.
        :param saturation_values: Saturation or saturation difference per boundary id.
        :param periodic_partners: Partner boundary id per boundary id, 0 for none.
        """
        self.flow_kinds = np.asarray(flow_kinds, dtype=np.int64)
        self.flow_values = np.asarray(flow_values, dtype=np.float64)
        self.saturation_kinds = np.asarray(saturation_kinds, dtype=np.int64)
        self.saturation_values = np.asarray(saturation_values, dtype=np.float64)
        self.periodic_partners = np.asarray(periodic_partners, dtype=np.int64)

        size = self.flow_kinds.shape[0]
        for name in ("flow_values", "saturation_kinds", "saturation_values", "periodic_partners"):
            if getattr(self, name).shape != (size,):
                raise ValidationError(
                    f"`{name}` must have one entry per boundary id plus the unused entry 0."
                )
        self._validate_partners()

    @property
    def number_of_boundary_faces(self) -> int:
        return self.flow_kinds.shape[0] - 1

    def _validate_partners(self) -> None:
        partners = self.periodic_partners
        ids = np.flatnonzero(partners[1:]) + 1
        if ids.size == 0:
            return
        targets = partners[ids]
        if np.any(targets < 1) or np.any(targets > self.number_of_boundary_faces):
            raise BoundaryConditionError("Periodic partner ids out of range.")
        if np.any(partners[targets] != ids):
            bad = ids[partners[targets] != ids]
            raise BoundaryConditionError(
                f"Periodic partner relation is not symmetric for boundary ids {bad.tolist()}."
            )
        if np.any(targets == ids):
            raise BoundaryConditionError("A periodic face cannot be its own partner.")

    def flow_condition(self, boundary_id: int) -> FlowBoundaryCondition:
        return FlowBoundaryCondition(
            kind=BoundaryKind(int(self.flow_kinds[boundary_id])),
            value=float(self.flow_values[boundary_id]),
        )

    def saturation_condition(self, boundary_id: int) -> SaturationBoundaryCondition:
        return SaturationBoundaryCondition(
            kind=BoundaryKind(int(self.saturation_kinds[boundary_id])),
            value=float(self.saturation_values[boundary_id]),
        )

    def periodic_partner(self, boundary_id: int) -> int:
        """Partner boundary id of a periodic face, 0 if the face has no partner."""
        return int(self.periodic_partners[boundary_id])

    @property
    def has_dirichlet_pressure(self) -> bool:
        return bool(np.any(self.flow_kinds[1:] == BoundaryKind.DIRICHLET))

    @classmethod
    def from_conditions(
        cls,
        flow: typing.Mapping[int, FlowBoundaryCondition],
        saturation: typing.Mapping[int, SaturationBoundaryCondition],
        periodic_partners: typing.Optional[typing.Mapping[int, int]] = None,
        number_of_boundary_faces: typing.Optional[int] = None,
    ) -> "BoundaryConditions":
        """
        Build boundary conditions from per-face condition objects.

        Boundary ids without a flow condition get no-flow conditions, and ids without a
        saturation condition get a Dirichlet saturation of zero.
        """
        size = number_of_boundary_faces
        if size is None:
            size = max(list(flow) + list(saturation) + [0])
        flow_kinds = np.full(size + 1, BoundaryKind.NEUMANN, dtype=np.int64)
        flow_values = np.zeros(size + 1)
        saturation_kinds = np.full(size + 1, BoundaryKind.DIRICHLET, dtype=np.int64)
        saturation_values = np.zeros(size + 1)
        partners = np.zeros(size + 1, dtype=np.int64)
        for bid, condition in flow.items():
            flow_kinds[bid] = condition.kind
            flow_values[bid] = condition.value
        for bid, condition in saturation.items():
            saturation_kinds[bid] = condition.kind
            saturation_values[bid] = condition.value
        for bid, partner in (periodic_partners or {}).items():
            partners[bid] = partner
        return cls(flow_kinds, flow_values, saturation_kinds, saturation_values, partners)

    def __repr__(self) -> str:
        kinds = np.bincount(self.flow_kinds[1:], minlength=3)
        return (
            f"{type(self).__name__}(faces={self.number_of_boundary_faces}, "
            f"dirichlet={kinds[0]}, neumann={kinds[1]}, periodic={kinds[2]})"
        )


def setup_upscaling_conditions(
    grid: CartesianGrid,
    bc_type: BoundaryConditionType,
    flow_direction: int,
    pressure_drop: float,
    boundary_saturation: float,
) -> BoundaryConditions:
    """
    Build the boundary conditions of an upscaling run with a pressure drop along one axis.

    - "fixed": pressure `pressure_drop` on the low side and 0 on the high side of
      `flow_direction`, no flow through the other sides. Dirichlet saturation everywhere.
    - "linear": pressure `pressure_drop * (1 - x_d / L_d)` on every face. Dirichlet saturation everywhere.
    - "periodic": every face is periodic with its opposite face. The pressure jump is
      `pressure_drop` across the `flow_direction` pair and zero across the others.
      Saturation is periodic with zero difference.

    :param grid: Block grid.
    :param bc_type: Boundary condition type.
    :param flow_direction: Axis of the imposed pressure drop (0, 1 or 2).
    :param pressure_drop: Pressure drop across the block (Pa).
    :param boundary_saturation: Saturation of fluid entering through Dirichlet faces.
    :return: The boundary conditions.
    """
    if flow_direction not in (0, 1, 2):
        raise ValidationError(f"Flow direction must be 0, 1 or 2, got {flow_direction!r}.")
    if not 0.0 <= boundary_saturation <= 1.0:
        raise ValidationError(
            f"Boundary saturation must be in [0, 1], got {boundary_saturation}."
        )

    size = grid.number_of_boundary_faces + 1
    bids = np.arange(1, size)
    faces = grid.boundary_faces
    sides = grid.boundary_sides
    axes = sides // 2
    high_side = (sides % 2) == 1

    flow_kinds = np.zeros(size, dtype=np.int64)
    flow_values = np.zeros(size)
    saturation_kinds = np.zeros(size, dtype=np.int64)
    saturation_values = np.zeros(size)
    partners = np.zeros(size, dtype=np.int64)

    if bc_type == "fixed":
        along = axes == flow_direction
        flow_kinds[bids] = np.where(along, BoundaryKind.DIRICHLET, BoundaryKind.NEUMANN)
        flow_values[bids] = np.where(along & ~high_side, pressure_drop, 0.0)
        saturation_kinds[bids] = BoundaryKind.DIRICHLET
        saturation_values[bids] = boundary_saturation

    elif bc_type == "linear":
        length = grid.lengths[flow_direction]
        position = grid.face_centroids[faces, flow_direction]
        flow_kinds[bids] = BoundaryKind.DIRICHLET
        flow_values[bids] = pressure_drop * (1.0 - position / length)
        saturation_kinds[bids] = BoundaryKind.DIRICHLET
        saturation_values[bids] = boundary_saturation

    elif bc_type == "periodic":
        partners[bids] = [grid.opposite_boundary_id(int(bid)) for bid in bids]
        flow_kinds[bids] = BoundaryKind.PERIODIC
        # Pressure decreases along the flow direction, so the high side sits below its partner
        jump = np.where(high_side, -pressure_drop, pressure_drop)
        flow_values[bids] = np.where(axes == flow_direction, jump, 0.0)
        saturation_kinds[bids] = BoundaryKind.PERIODIC
        saturation_values[bids] = 0.0

    else:
        raise ValidationError(
            f"Unknown boundary condition type {bc_type!r}. Valid: 'fixed', 'linear', 'periodic'."
        )

    logger.debug(
        f"Set up {bc_type} upscaling conditions along {SIDE_NAMES[2 * flow_direction][0]} "
        f"with pressure drop {pressure_drop}"
    )
    return BoundaryConditions(
        flow_kinds=flow_kinds,
        flow_values=flow_values,
        saturation_kinds=saturation_kinds,
        saturation_values=saturation_values,
        periodic_partners=partners,
    )

import logging
from os import PathLike
import typing

import attrs
import numpy as np
import yaml

from porus.constants import c
from porus.errors import ValidationError
from porus.types import BoundaryConditionType, Preconditioner, Solver, Vector3

__all__ = ["Config", "load_config"]

logger = logging.getLogger(__name__)


def _to_vector3(value: typing.Any) -> Vector3:
    vector = tuple(float(v) for v in value)
    if len(vector) != 3:
        raise ValidationError(f"Expected a 3-component vector, got {value!r}.")
    return vector  # type: ignore[return-value]


def _optional_positive(instance: typing.Any, attribute: attrs.Attribute, value) -> None:
    if value is not None and value <= 0.0:
        raise ValidationError(f"`{attribute.name}` must be positive, got {value}.")


@attrs.frozen
class Config:
    """Steady-state upscaling run configuration and parameters."""

    output_vtk: bool = False
    """Whether to write the cell fields of every relaxation iteration to VTK files."""
    print_inoutflows: bool = False
    """Whether to report the boundary in/out flows of each phase after every relaxation iteration."""
    simulation_steps: int = attrs.field(default=10, validator=attrs.validators.ge(0))
    """Number of pressure/transport relaxation iterations per upscaling run."""
    stepsize: float = attrs.field(default=0.1, validator=attrs.validators.gt(0.0))
    """Transport time step size in days."""
    relperm_threshold: float = attrs.field(
        default=1.0e-4, validator=attrs.validators.ge(0.0)
    )
    """
    Floor applied to phase relative permeability before effective permeability upscaling.

    The phase mobility floor is `relperm_threshold / viscosity`. Near-zero mobilities make
    the effective permeability solve ill-conditioned.
    """
    viscosity1: typing.Optional[float] = attrs.field(
        default=None, validator=_optional_positive
    )
    """First phase viscosity (Pa·s). None keeps the property model default."""
    viscosity2: typing.Optional[float] = attrs.field(
        default=None, validator=_optional_positive
    )
    """Second phase viscosity (Pa·s). None keeps the property model default."""
    density1: typing.Optional[float] = attrs.field(
        default=None, validator=_optional_positive
    )
    """First phase density (kg/m³). None keeps the property model default."""
    density2: typing.Optional[float] = attrs.field(
        default=None, validator=_optional_positive
    )
    """Second phase density (kg/m³). None keeps the property model default."""
    boundary_condition_type: BoundaryConditionType = attrs.field(
        default="fixed",
        validator=attrs.validators.in_(("fixed", "linear", "periodic")),
    )
    """Boundary conditions used for both single-phase and steady-state upscaling."""
    residual_tolerance: float = attrs.field(
        default=1e-8,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.le(1e-2)
        ),
    )
    """Relative residual tolerance for iterative linear solvers."""
    linear_solver: Solver = attrs.field(
        default="direct",
        validator=attrs.validators.in_(("direct", "cg", "bicgstab", "gmres", "lgmres")),
    )
    """Linear solver for the pressure system."""
    preconditioner: typing.Optional[Preconditioner] = attrs.field(
        default="ilu",
        validator=attrs.validators.optional(
            attrs.validators.in_(("ilu", "amg", "diagonal"))
        ),
    )
    """Preconditioner for iterative linear solvers. Ignored by the direct solver."""
    linear_solver_verbosity: int = attrs.field(
        default=0, validator=attrs.validators.ge(0)
    )
    """Verbosity of the linear solver. Values above zero log solve statistics."""
    max_iterations: int = attrs.field(
        default=500,
        validator=attrs.validators.and_(
            attrs.validators.ge(1), attrs.validators.le(10000)
        ),
    )
    """Maximum number of iterations for iterative linear solvers."""
    courant_number: float = attrs.field(
        default=0.5,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.le(1.0)
        ),
    )
    """Fraction of the CFL-stable time step used by the explicit transport solver."""
    min_time_steps: int = attrs.field(default=1, validator=attrs.validators.ge(1))
    """Minimum number of transport substeps per transport step."""
    gravity: Vector3 = attrs.field(default=(0.0, 0.0, 0.0), converter=_to_vector3)
    """
    Gravity vector (m/s²).

    Gravity is not handled by the flow solver. A nonzero vector only produces a warning.
    """
    output_directory: str = "."
    """Directory where VTK output files are written."""

    @property
    def stepsize_seconds(self) -> float:
        """Transport time step size in seconds."""
        return self.stepsize * c.SECONDS_PER_DAY

    @property
    def has_gravity(self) -> bool:
        """Whether a nonzero gravity vector was configured."""
        return bool(np.linalg.norm(self.gravity) > 0.0)

    @classmethod
    def from_parameters(cls, parameters: typing.Mapping[str, typing.Any]) -> "Config":
        """
        Build a configuration from a flat parameter mapping.

        Unknown keys are ignored, so a parameter set shared with other tools can be passed as is.

        :param parameters: Mapping of option names to values.
        :return: A validated `Config`.
        """
        known = {field.name for field in attrs.fields(cls)}
        options = {}
        for key, value in parameters.items():
            if key in known:
                options[key] = value
            else:
                logger.debug(f"Ignoring unknown upscaling parameter {key!r}")
        try:
            return cls(**options)
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ValidationError):
                raise
            raise ValidationError(f"Invalid upscaling parameters: {exc}") from exc


def load_config(filepath: typing.Union[str, PathLike]) -> Config:
    """
    Load a configuration from a YAML file holding a flat mapping of options.

    :param filepath: Path to the YAML file.
    :return: A validated `Config`.
    """
    with open(filepath, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, typing.Mapping):
        raise ValidationError(
            f"Configuration file {filepath!s} must contain a mapping, got {type(data).__name__}."
        )
    return Config.from_parameters(data)

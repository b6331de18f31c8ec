"""Rock and fluid properties of an upscaling block."""

import typing

import attrs
import numpy as np

from porus._precision import get_dtype
from porus.capillary_pressures import CapillaryPressureModel, NoCapillaryPressure
from porus.constants import c
from porus.errors import ValidationError
from porus.relperm import CoreyRelPermModel, RelPermModel
from porus.types import FloatOrArray, MobilityField, OneDimensionalGrid


__all__ = [
    "as_permeability_tensors",
    "ReservoirProperties",
    "FixedMobilityProperties",
]


def as_permeability_tensors(permeability: typing.Any) -> np.ndarray:
    """
    Convert a per-cell permeability description into full tensors.

    :param permeability: Per-cell permeability (m²), either isotropic `(n,)`,
        diagonal `(n, 3)` or full `(n, 3, 3)`.
    :return: Array of shape `(n, 3, 3)`.
    """
    k = np.asarray(permeability, dtype=get_dtype())
    if k.ndim == 1:
        tensors = np.zeros((k.shape[0], 3, 3), dtype=k.dtype)
        for axis in range(3):
            tensors[:, axis, axis] = k
    elif k.ndim == 2 and k.shape[1] == 3:
        tensors = np.zeros((k.shape[0], 3, 3), dtype=k.dtype)
        for axis in range(3):
            tensors[:, axis, axis] = k[:, axis]
    elif k.ndim == 3 and k.shape[1:] == (3, 3):
        tensors = k.copy()
    else:
        raise ValidationError(
            f"Permeability must have shape (n,), (n, 3) or (n, 3, 3), got {k.shape}."
        )
    if np.any(np.diagonal(tensors, axis1=1, axis2=2) <= 0.0):
        raise ValidationError("Diagonal permeability values must be positive.")
    return tensors


def _as_porosity(value: typing.Any) -> OneDimensionalGrid:
    porosity = np.asarray(value, dtype=get_dtype())
    if porosity.ndim != 1:
        raise ValidationError("Porosity must be a one-dimensional per-cell array.")
    if np.any((porosity <= 0.0) | (porosity > 1.0)):
        raise ValidationError("Porosity values must be in (0, 1].")
    return porosity


def _as_models(value: typing.Any) -> typing.Tuple[typing.Any, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


@attrs.define
class ReservoirProperties:
    """
    Rock and fluid properties of a block, and the two-phase mobility model.

    Saturation always refers to the first phase. Cells may be assigned to different
    rock types, each with its own relative permeability and capillary pressure model.

    Example usage:
    ```python
    import numpy as np
    from porus.constants import c
    from porus.properties import ReservoirProperties
    from porus.relperm import CoreyRelPermModel

    properties = ReservoirProperties(
        permeability=np.full(100, 100 * c.MILLIDARCY),
        porosity=np.full(100, 0.2),
        relperm_models=CoreyRelPermModel(first_phase_exponent=3.0),
    )
    properties.fractional_flow(np.full(100, 0.5))
    ```
    """

    permeability: np.ndarray = attrs.field(converter=as_permeability_tensors)
    """Per-cell absolute permeability tensors (m²), shape `(n, 3, 3)`."""
    porosity: OneDimensionalGrid = attrs.field(converter=_as_porosity)
    """Per-cell porosity (fraction)."""
    relperm_models: typing.Tuple[RelPermModel, ...] = attrs.field(
        factory=lambda: (CoreyRelPermModel(),), converter=_as_models
    )
    """Relative permeability model of each rock type."""
    capillary_pressure_models: typing.Tuple[CapillaryPressureModel, ...] = attrs.field(
        factory=lambda: (NoCapillaryPressure(),), converter=_as_models
    )
    """Capillary pressure model of each rock type. A single model applies to every rock type."""
    rock_types: typing.Optional[np.ndarray] = attrs.field(default=None)
    """Per-cell rock type index into `relperm_models`. None puts every cell in rock type 0."""
    viscosity1: float = attrs.field(
        factory=lambda: c.DEFAULT_FIRST_PHASE_VISCOSITY, validator=attrs.validators.gt(0)
    )
    """First phase viscosity (Pa·s)."""
    viscosity2: float = attrs.field(
        factory=lambda: c.DEFAULT_SECOND_PHASE_VISCOSITY,
        validator=attrs.validators.gt(0),
    )
    """Second phase viscosity (Pa·s)."""
    density1: float = attrs.field(
        factory=lambda: c.DEFAULT_FIRST_PHASE_DENSITY, validator=attrs.validators.gt(0)
    )
    """First phase density (kg/m³)."""
    density2: float = attrs.field(
        factory=lambda: c.DEFAULT_SECOND_PHASE_DENSITY, validator=attrs.validators.gt(0)
    )
    """Second phase density (kg/m³)."""

    def __attrs_post_init__(self) -> None:
        n = self.number_of_cells
        if self.porosity.shape[0] != n:
            raise ValidationError(
                f"Porosity has {self.porosity.shape[0]} values but permeability has {n}."
            )
        if not self.relperm_models:
            raise ValidationError("At least one relative permeability model is required.")
        if self.rock_types is None:
            self.rock_types = np.zeros(n, dtype=np.int64)
        else:
            self.rock_types = np.asarray(self.rock_types, dtype=np.int64)
        if self.rock_types.shape != (n,):
            raise ValidationError("Rock types must hold one value per cell.")
        if np.any(self.rock_types < 0) or np.any(
            self.rock_types >= len(self.relperm_models)
        ):
            raise ValidationError(
                f"Rock types must be in [0, {len(self.relperm_models)})."
            )
        if len(self.capillary_pressure_models) not in (1, len(self.relperm_models)):
            raise ValidationError(
                "Provide one capillary pressure model, or one per rock type."
            )

    @property
    def number_of_cells(self) -> int:
        return int(self.permeability.shape[0])

    def set_viscosities(self, viscosity1: float, viscosity2: float) -> None:
        if viscosity1 <= 0.0 or viscosity2 <= 0.0:
            raise ValidationError("Viscosities must be positive.")
        self.viscosity1 = float(viscosity1)
        self.viscosity2 = float(viscosity2)

    def set_densities(self, density1: float, density2: float) -> None:
        if density1 <= 0.0 or density2 <= 0.0:
            raise ValidationError("Densities must be positive.")
        self.density1 = float(density1)
        self.density2 = float(density2)

    def _evaluate(
        self,
        models: typing.Tuple[typing.Any, ...],
        method: str,
        saturation: FloatOrArray,
        cells: typing.Any,
    ) -> FloatOrArray:
        is_scalar = np.isscalar(saturation)
        s = np.atleast_1d(np.asarray(saturation, dtype=np.float64))
        if len(models) == 1:
            result = np.asarray(getattr(models[0], method)(s), dtype=np.float64)
        else:
            if cells is None:
                types = self.rock_types
                if s.shape != types.shape:  # type: ignore[union-attr]
                    if s.size != 1:
                        raise ValidationError(
                            f"Expected one saturation per cell ({types.shape[0]}) "  # type: ignore[union-attr]
                            f"or a scalar, got shape {s.shape}."
                        )
                    # A scalar saturation applies to every cell
                    s = np.full(types.shape, s[0])  # type: ignore[union-attr]
                    is_scalar = False
            else:
                types = self.rock_types[np.atleast_1d(cells)]  # type: ignore[index]
            types = np.broadcast_to(types, s.shape)
            result = np.empty(s.shape, dtype=np.float64)
            for rock_type, model in enumerate(models):
                mask = types == rock_type
                if np.any(mask):
                    result[mask] = getattr(model, method)(s[mask])
        return float(result.reshape(-1)[0]) if is_scalar else result

    def relative_permeability_first_phase(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        return self._evaluate(
            self.relperm_models, "first_phase_relative_permeability", saturation, cells
        )

    def relative_permeability_second_phase(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        return self._evaluate(
            self.relperm_models, "second_phase_relative_permeability", saturation, cells
        )

    def mobility_first_phase(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        """
        First phase mobility kr1(S) / μ1.

        :param saturation: First phase saturation, scalar or one value per entry of `cells`.
            A scalar with `cells=None` on a block of several rock types gives one value per cell.
        :param cells: Cell indices the saturations belong to. None means all cells in order.
        """
        return self.relative_permeability_first_phase(saturation, cells) / self.viscosity1

    def mobility_second_phase(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        """Second phase mobility kr2(S) / μ2."""
        return self.relative_permeability_second_phase(saturation, cells) / self.viscosity2

    def total_mobility(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        return self.mobility_first_phase(saturation, cells) + self.mobility_second_phase(
            saturation, cells
        )

    def fractional_flow(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        """
        First phase fractional flow λ1 / (λ1 + λ2).

        Zero where both phases are immobile.
        """
        mob1 = np.asarray(self.mobility_first_phase(saturation, cells), dtype=np.float64)
        mob2 = np.asarray(self.mobility_second_phase(saturation, cells), dtype=np.float64)
        total = mob1 + mob2
        frac_flow = np.divide(
            mob1, total, out=np.zeros_like(total), where=total > 0.0
        )
        return float(frac_flow) if frac_flow.ndim == 0 else frac_flow

    def capillary_pressure(
        self, saturation: FloatOrArray, cells: typing.Any = None
    ) -> FloatOrArray:
        return self._evaluate(
            self.capillary_pressure_models, "get_capillary_pressure", saturation, cells
        )

    def pore_volumes(self, cell_volumes: OneDimensionalGrid) -> OneDimensionalGrid:
        return np.asarray(cell_volumes) * self.porosity

    def with_fixed_mobility(self, mobility: MobilityField) -> "FixedMobilityProperties":
        """Single-phase view of this block with a prescribed per-cell mobility."""
        return FixedMobilityProperties(
            permeability=self.permeability, porosity=self.porosity, mobility=mobility
        )


def _as_mobility(value: typing.Any) -> MobilityField:
    mobility = np.asarray(value, dtype=get_dtype())
    if mobility.ndim != 1:
        raise ValidationError("Mobility must be a one-dimensional per-cell array.")
    if np.any(mobility < 0.0):
        raise ValidationError("Mobility values must be non-negative.")
    return mobility


@attrs.frozen
class FixedMobilityProperties:
    """
    Single-phase properties with a prescribed, saturation independent, per-cell mobility.

    Used for effective permeability upscaling. A unit mobility gives the absolute permeability.
    """

    permeability: np.ndarray = attrs.field(converter=as_permeability_tensors)
    """Per-cell absolute permeability tensors (m²), shape `(n, 3, 3)`."""
    porosity: OneDimensionalGrid = attrs.field(converter=_as_porosity)
    """Per-cell porosity (fraction)."""
    mobility: MobilityField = attrs.field(converter=_as_mobility)
    """Per-cell mobility."""

    def __attrs_post_init__(self) -> None:
        n = self.number_of_cells
        if self.porosity.shape[0] != n or self.mobility.shape[0] != n:
            raise ValidationError(
                "Permeability, porosity and mobility must have one value per cell."
            )

    @property
    def number_of_cells(self) -> int:
        return int(self.permeability.shape[0])

    def total_mobility(
        self, saturation: typing.Optional[FloatOrArray] = None, cells: typing.Any = None
    ) -> FloatOrArray:
        if cells is None:
            return self.mobility
        return self.mobility[cells]

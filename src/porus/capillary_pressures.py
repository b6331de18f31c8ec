"""Two-phase capillary pressure models and tables."""

import typing

import attrs
import numpy as np
import numpy.typing as npt

from porus.errors import ValidationError
from porus.types import FloatOrArray


__all__ = [
    "CapillaryPressureModel",
    "NoCapillaryPressure",
    "BrooksCoreyCapillaryPressureModel",
    "TwoPhaseCapillaryPressureTable",
]


@typing.runtime_checkable
class CapillaryPressureModel(typing.Protocol):
    """Protocol for capillary pressure models, Pc = P2 - P1 as a function of first phase saturation."""

    def get_capillary_pressure(self, saturation: FloatOrArray) -> FloatOrArray: ...


@attrs.frozen
class NoCapillaryPressure:
    """Zero capillary pressure at every saturation."""

    def get_capillary_pressure(self, saturation: FloatOrArray) -> FloatOrArray:
        if np.isscalar(saturation):
            return 0.0
        return np.zeros_like(np.asarray(saturation, dtype=np.float64))

    def __call__(self, saturation: FloatOrArray, **kwargs: typing.Any) -> FloatOrArray:
        return self.get_capillary_pressure(saturation)


@attrs.frozen
class BrooksCoreyCapillaryPressureModel:
    """
    Brooks-Corey drainage capillary pressure.

    Pc = Pe * Se^(-1/λ), with Se = (S - S1r) / (1 - S1r - S2r), capped at `max_capillary_pressure`.
    """

    entry_pressure: float = attrs.field(validator=attrs.validators.ge(0))
    """Capillary entry pressure Pe (Pa)."""
    pore_size_distribution_index: float = attrs.field(
        default=2.0, validator=attrs.validators.gt(0)
    )
    """Pore size distribution index λ."""
    first_phase_residual_saturation: float = attrs.field(
        default=0.0,
        validator=attrs.validators.and_(attrs.validators.ge(0), attrs.validators.lt(1)),
    )
    """Residual saturation of the first (wetting) phase."""
    second_phase_residual_saturation: float = attrs.field(
        default=0.0,
        validator=attrs.validators.and_(attrs.validators.ge(0), attrs.validators.lt(1)),
    )
    """Residual saturation of the second (non-wetting) phase."""
    max_capillary_pressure: float = attrs.field(
        default=1.0e7, validator=attrs.validators.gt(0)
    )
    """Cap applied where the effective saturation vanishes (Pa)."""

    def get_capillary_pressure(self, saturation: FloatOrArray) -> FloatOrArray:
        is_scalar = np.isscalar(saturation)
        s = np.atleast_1d(np.asarray(saturation, dtype=np.float64))
        movable_range = (
            1.0
            - self.first_phase_residual_saturation
            - self.second_phase_residual_saturation
        )
        effective = np.clip(
            (s - self.first_phase_residual_saturation) / movable_range, 0.0, 1.0
        )
        with np.errstate(divide="ignore"):
            pc = np.where(
                effective > 0.0,
                self.entry_pressure
                * np.power(
                    np.maximum(effective, 1e-300),
                    -1.0 / self.pore_size_distribution_index,
                ),
                self.max_capillary_pressure,
            )
        pc = np.minimum(pc, self.max_capillary_pressure)
        return float(pc[0]) if is_scalar else pc

    def __call__(self, saturation: FloatOrArray, **kwargs: typing.Any) -> FloatOrArray:
        return self.get_capillary_pressure(saturation)


@attrs.frozen
class TwoPhaseCapillaryPressureTable:
    """
    Two-phase capillary pressure lookup table.

    Interpolates capillary pressure against first phase saturation with `np.interp`,
    with constant extrapolation outside the tabulated range.
    """

    saturation: npt.NDArray[np.floating] = attrs.field(converter=np.asarray)
    """First phase saturation values, monotonically increasing."""
    capillary_pressure: npt.NDArray[np.floating] = attrs.field(converter=np.asarray)
    """Capillary pressure values (Pa) corresponding to saturations."""

    def __attrs_post_init__(self) -> None:
        if len(self.saturation) != len(self.capillary_pressure):
            raise ValidationError(
                f"Saturation and pressure arrays must have same length. "
                f"Got {len(self.saturation)} vs {len(self.capillary_pressure)}"
            )
        if len(self.saturation) < 2:
            raise ValidationError("At least 2 points required for interpolation")
        if not np.all(np.diff(self.saturation) >= 0):
            raise ValidationError("Saturation must be monotonically increasing")

    def get_capillary_pressure(self, saturation: FloatOrArray) -> FloatOrArray:
        is_scalar = np.isscalar(saturation)
        s = np.atleast_1d(saturation)
        pc = np.interp(
            s.ravel(),
            self.saturation,
            self.capillary_pressure,
            left=self.capillary_pressure[0],
            right=self.capillary_pressure[-1],
        ).reshape(s.shape)
        return float(pc[0]) if is_scalar else pc

    def __call__(self, saturation: FloatOrArray, **kwargs: typing.Any) -> FloatOrArray:
        return self.get_capillary_pressure(saturation)

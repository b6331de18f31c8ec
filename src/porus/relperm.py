"""Two-phase relative permeability models."""

import typing

import attrs
import numba
import numpy as np
import numpy.typing as npt

from porus.errors import ValidationError
from porus.types import FloatOrArray


__all__ = [
    "RelPermModel",
    "CoreyRelPermModel",
    "TwoPhaseRelPermTable",
    "compute_corey_relative_permeabilities",
]


@typing.runtime_checkable
class RelPermModel(typing.Protocol):
    """
    Protocol for two-phase relative permeability models.

    Saturation is always the first phase saturation.
    """

    def first_phase_relative_permeability(
        self, saturation: FloatOrArray
    ) -> FloatOrArray: ...

    def second_phase_relative_permeability(
        self, saturation: FloatOrArray
    ) -> FloatOrArray: ...


@numba.njit(cache=True)
def _corey_curve(
    saturation: np.ndarray,
    residual_saturation: float,
    other_residual_saturation: float,
    exponent: float,
    endpoint: float,
    reverse: bool,
) -> np.ndarray:
    movable_range = 1.0 - residual_saturation - other_residual_saturation
    result = np.zeros(saturation.shape[0])
    if movable_range <= 1e-12:
        return result
    for idx in range(saturation.shape[0]):
        s = 1.0 - saturation[idx] if reverse else saturation[idx]
        effective = (s - residual_saturation) / movable_range
        if effective <= 0.0:
            continue
        if effective > 1.0:
            effective = 1.0
        result[idx] = endpoint * effective**exponent
    return result


def compute_corey_relative_permeabilities(
    saturation: FloatOrArray,
    first_phase_residual_saturation: float,
    second_phase_residual_saturation: float,
    first_phase_exponent: float,
    second_phase_exponent: float,
    first_phase_endpoint: float = 1.0,
    second_phase_endpoint: float = 1.0,
) -> typing.Tuple[FloatOrArray, FloatOrArray]:
    """
    Computes Corey-type relative permeabilities of both phases.

    kr1 = k1_max * ((S - S1r) / (1 - S1r - S2r))^n1
    kr2 = k2_max * ((1 - S - S2r) / (1 - S1r - S2r))^n2

    Supports both scalar and array inputs.

    :param saturation: First phase saturation (fraction) - scalar or array.
    :param first_phase_residual_saturation: Residual saturation of the first phase (S1r).
    :param second_phase_residual_saturation: Residual saturation of the second phase (S2r).
    :param first_phase_exponent: Corey exponent of the first phase (n1).
    :param second_phase_exponent: Corey exponent of the second phase (n2).
    :param first_phase_endpoint: Relative permeability of the first phase at `S = 1 - S2r`.
    :param second_phase_endpoint: Relative permeability of the second phase at `S = S1r`.
    :return: (first_phase_relative_permeability, second_phase_relative_permeability)
    """
    is_scalar = np.isscalar(saturation)
    s = np.atleast_1d(np.asarray(saturation, dtype=np.float64))
    shape = s.shape
    flat = np.ascontiguousarray(s.ravel())
    kr1 = _corey_curve(
        flat,
        first_phase_residual_saturation,
        second_phase_residual_saturation,
        first_phase_exponent,
        first_phase_endpoint,
        False,
    ).reshape(shape)
    kr2 = _corey_curve(
        flat,
        second_phase_residual_saturation,
        first_phase_residual_saturation,
        second_phase_exponent,
        second_phase_endpoint,
        True,
    ).reshape(shape)
    if is_scalar:
        return float(kr1[0]), float(kr2[0])
    return kr1, kr2


@attrs.frozen
class CoreyRelPermModel:
    """
    Corey-type two-phase relative permeability model.

    With the defaults, kr1 = S² and kr2 = (1 - S)².
    """

    first_phase_residual_saturation: float = attrs.field(
        default=0.0,
        validator=attrs.validators.and_(attrs.validators.ge(0), attrs.validators.lt(1)),
    )
    """Residual saturation of the first phase (S1r)."""
    second_phase_residual_saturation: float = attrs.field(
        default=0.0,
        validator=attrs.validators.and_(attrs.validators.ge(0), attrs.validators.lt(1)),
    )
    """Residual saturation of the second phase (S2r)."""
    first_phase_exponent: float = attrs.field(
        default=2.0, validator=attrs.validators.gt(0)
    )
    """Corey exponent of the first phase."""
    second_phase_exponent: float = attrs.field(
        default=2.0, validator=attrs.validators.gt(0)
    )
    """Corey exponent of the second phase."""
    first_phase_endpoint: float = attrs.field(
        default=1.0,
        validator=attrs.validators.and_(attrs.validators.gt(0), attrs.validators.le(1)),
    )
    """End-point relative permeability of the first phase."""
    second_phase_endpoint: float = attrs.field(
        default=1.0,
        validator=attrs.validators.and_(attrs.validators.gt(0), attrs.validators.le(1)),
    )
    """End-point relative permeability of the second phase."""

    def __attrs_post_init__(self) -> None:
        if (
            self.first_phase_residual_saturation
            + self.second_phase_residual_saturation
            >= 1.0
        ):
            raise ValidationError(
                "Sum of residual saturations must be less than 1, got "
                f"{self.first_phase_residual_saturation} + {self.second_phase_residual_saturation}."
            )

    def get_relative_permeabilities(
        self, saturation: FloatOrArray
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        return compute_corey_relative_permeabilities(
            saturation=saturation,
            first_phase_residual_saturation=self.first_phase_residual_saturation,
            second_phase_residual_saturation=self.second_phase_residual_saturation,
            first_phase_exponent=self.first_phase_exponent,
            second_phase_exponent=self.second_phase_exponent,
            first_phase_endpoint=self.first_phase_endpoint,
            second_phase_endpoint=self.second_phase_endpoint,
        )

    def first_phase_relative_permeability(self, saturation: FloatOrArray) -> FloatOrArray:
        return self.get_relative_permeabilities(saturation)[0]

    def second_phase_relative_permeability(
        self, saturation: FloatOrArray
    ) -> FloatOrArray:
        return self.get_relative_permeabilities(saturation)[1]

    def __call__(
        self, saturation: FloatOrArray, **kwargs: typing.Any
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        return self.get_relative_permeabilities(saturation)


@attrs.frozen
class TwoPhaseRelPermTable:
    """
    Two-phase relative permeability lookup table.

    Interpolates relative permeabilities of both phases against first phase saturation
    with `np.interp`. Out-of-range saturations take the edge values.

    Supports both scalar and array inputs.
    """

    saturation: npt.NDArray[np.floating] = attrs.field(converter=np.asarray)
    """First phase saturation values, monotonically increasing in [0, 1]."""
    first_phase_kr: npt.NDArray[np.floating] = attrs.field(converter=np.asarray)
    """First phase relative permeability at each tabulated saturation."""
    second_phase_kr: npt.NDArray[np.floating] = attrs.field(converter=np.asarray)
    """Second phase relative permeability at each tabulated saturation."""

    def __attrs_post_init__(self) -> None:
        n = len(self.saturation)
        if len(self.first_phase_kr) != n or len(self.second_phase_kr) != n:
            raise ValidationError(
                "Saturation and relative permeability arrays must have the same length."
            )
        if n < 2:
            raise ValidationError("At least 2 points required for interpolation")
        if not np.all(np.diff(self.saturation) >= 0):
            raise ValidationError("Saturation must be monotonically increasing")
        if np.any((self.saturation < 0.0) | (self.saturation > 1.0)):
            raise ValidationError("Tabulated saturations must be between 0 and 1.")
        if np.any(self.first_phase_kr < 0.0) or np.any(self.second_phase_kr < 0.0):
            raise ValidationError("Relative permeabilities must be non-negative.")

    def _interpolate(self, saturation: FloatOrArray, values: np.ndarray) -> FloatOrArray:
        is_scalar = np.isscalar(saturation)
        s = np.atleast_1d(saturation)
        result = np.interp(
            s.ravel(),
            self.saturation,
            values,
            left=values[0],
            right=values[-1],
        ).reshape(s.shape)
        return float(result[0]) if is_scalar else result

    def first_phase_relative_permeability(self, saturation: FloatOrArray) -> FloatOrArray:
        return self._interpolate(saturation, self.first_phase_kr)

    def second_phase_relative_permeability(
        self, saturation: FloatOrArray
    ) -> FloatOrArray:
        return self._interpolate(saturation, self.second_phase_kr)

    def __call__(
        self, saturation: FloatOrArray, **kwargs: typing.Any
    ) -> typing.Tuple[FloatOrArray, FloatOrArray]:
        return (
            self.first_phase_relative_permeability(saturation),
            self.second_phase_relative_permeability(saturation),
        )

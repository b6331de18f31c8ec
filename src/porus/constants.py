"""Unit conversion factors and fluid defaults. All internal quantities are SI."""

from contextvars import ContextVar
import typing

import attrs


__all__ = ["Constant", "Constants", "c", "get_constant"]


@attrs.frozen(slots=True)
class Constant:
    """A named conversion factor or default, in SI units."""

    value: float
    """Value in SI units."""

    description: typing.Optional[str] = None
    unit: typing.Optional[str] = None

    def __str__(self) -> str:
        return f"{self.value} {self.unit}" if self.unit else str(self.value)


DEFAULT_CONSTANTS: typing.Dict[str, Constant] = {
    "SECONDS_PER_DAY": Constant(86400.0, "Seconds in a day", "s/day"),
    "DARCY": Constant(9.869233e-13, "Darcy in square metres", "m²/D"),
    "MILLIDARCY": Constant(9.869233e-16, "Millidarcy in square metres", "m²/mD"),
    "CENTIPOISE": Constant(1.0e-3, "Centipoise in pascal seconds", "Pa·s/cP"),
    "BAR": Constant(1.0e5, "Bar in pascals", "Pa/bar"),
    "PSI": Constant(6894.757293168, "Pound per square inch in pascals", "Pa/psi"),
    "ACCELERATION_DUE_TO_GRAVITY": Constant(9.80665, "Standard gravity", "m/s²"),
    # First phase is water-like, second phase oil-like
    "DEFAULT_FIRST_PHASE_VISCOSITY": Constant(1.0e-3, "First phase viscosity", "Pa·s"),
    "DEFAULT_SECOND_PHASE_VISCOSITY": Constant(3.0e-3, "Second phase viscosity", "Pa·s"),
    "DEFAULT_FIRST_PHASE_DENSITY": Constant(1000.0, "First phase density", "kg/m³"),
    "DEFAULT_SECOND_PHASE_DENSITY": Constant(1000.0, "Second phase density", "kg/m³"),
}


class Constants:
    """
    A set of named constants.

    Attribute access returns the plain value (`constants.BAR == 1e5`), item
    access returns the `Constant` with its unit and description. Using an
    instance as a context manager makes it the set served by `c` inside the block.
    """

    __slots__ = ("_entries", "_token")

    def __init__(
        self, overrides: typing.Optional[typing.Mapping[str, typing.Any]] = None
    ) -> None:
        entries = dict(DEFAULT_CONSTANTS)
        for name, value in (overrides or {}).items():
            entries[name] = value if isinstance(value, Constant) else Constant(value)
        object.__setattr__(self, "_entries", entries)
        object.__setattr__(self, "_token", None)

    def __getattr__(self, name: str) -> typing.Any:
        try:
            return self._entries[name].value
        except KeyError:
            raise AttributeError(f"Unknown constant {name!r}") from None

    def __setattr__(self, name: str, value: typing.Any) -> None:
        raise AttributeError("Constants are read-only, pass overrides instead")

    def __getitem__(self, name: str) -> Constant:
        return self._entries[name]

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def get_constant(self, name: str) -> typing.Optional[Constant]:
        return self._entries.get(name)

    def __enter__(self) -> "Constants":
        object.__setattr__(self, "_token", _active_constants.set(self))
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        _active_constants.reset(self._token)
        object.__setattr__(self, "_token", None)


_active_constants: ContextVar[Constants] = ContextVar(
    "_active_constants", default=Constants()
)


class _ConstantsProxy:
    def __getattr__(self, name: str) -> typing.Any:
        return getattr(_active_constants.get(), name)

    def __getitem__(self, name: str) -> Constant:
        return _active_constants.get()[name]


c = _ConstantsProxy()
"""Constants of the active context, `porus.c.MILLIDARCY` etc."""


def get_constant(name: str) -> typing.Optional[Constant]:
    """
    Look up a constant of the active context.

    :param name: Constant name, e.g. "BAR".
    :return: The `Constant`, or None when no constant has that name.
    """
    return _active_constants.get().get_constant(name)

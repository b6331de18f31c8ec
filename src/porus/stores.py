"""Storage of the steady-state saturation fields of an upscaler."""

import threading
import typing

import numpy as np

from porus.errors import StoreError, ValidationError
from porus.types import SaturationField

__all__ = ["SaturationStore"]


class SaturationStore:
    """
    Latest steady-state saturation field per flow direction (0, 1, 2).

    Writes to a direction replace the previous field and are serialized per direction.
    """

    directions: typing.Tuple[int, int, int] = (0, 1, 2)

    def __init__(self) -> None:
        self._fields: typing.Dict[int, SaturationField] = {}
        self._locks = {direction: threading.Lock() for direction in self.directions}

    def _check_direction(self, direction: int) -> int:
        if direction not in self.directions:
            raise ValidationError(f"Flow direction must be 0, 1 or 2, got {direction!r}.")
        return int(direction)

    def store(self, direction: int, saturation: SaturationField) -> None:
        direction = self._check_direction(direction)
        with self._locks[direction]:
            self._fields[direction] = np.array(saturation, dtype=np.float64, copy=True)

    def get(self, direction: int) -> SaturationField:
        """
        Saturation field last stored for `direction`.

        :raises StoreError: If no field was stored for the direction.
        """
        direction = self._check_direction(direction)
        with self._locks[direction]:
            if direction not in self._fields:
                raise StoreError(
                    f"No steady-state saturation has been computed for flow direction {direction}."
                )
            return self._fields[direction]

    def __contains__(self, direction: object) -> bool:
        return direction in self._fields

    def __getitem__(self, direction: int) -> SaturationField:
        return self.get(direction)

    def __setitem__(self, direction: int, saturation: SaturationField) -> None:
        self.store(direction, saturation)

    def __len__(self) -> int:
        return len(self._fields)

    def as_tuple(
        self,
    ) -> typing.Tuple[
        typing.Optional[SaturationField],
        typing.Optional[SaturationField],
        typing.Optional[SaturationField],
    ]:
        """Fields of all three directions, None where nothing was stored."""
        return tuple(self._fields.get(direction) for direction in self.directions)  # type: ignore[return-value]

    def clear(self) -> None:
        for direction in self.directions:
            with self._locks[direction]:
                self._fields.pop(direction, None)

"""Floating point dtype used for grid geometry and rock property arrays."""

from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np


__all__ = ["get_dtype", "set_dtype", "with_precision", "get_floating_point_info"]

_field_dtype: ContextVar[np.typing.DTypeLike] = ContextVar(
    "_field_dtype", default=np.float64
)


def get_dtype() -> np.typing.DTypeLike:
    """Return the dtype that new grid and property arrays are created with."""
    return _field_dtype.get()


def set_dtype(dtype: np.typing.DTypeLike) -> None:
    """
    Change the field dtype for the current context.

    Permeabilities in m² are of order 1e-12 and transmissibilities are
    smaller still, so anything below float64 should be used with care.

    :param dtype: A numpy floating point dtype.
    """
    if not np.issubdtype(np.dtype(dtype), np.floating):
        raise TypeError(f"Field dtype must be floating point, got {dtype!r}")
    _field_dtype.set(dtype)


@contextmanager
def with_precision(dtype: np.typing.DTypeLike):
    """
    Build arrays with `dtype` inside the block, restoring the previous dtype on exit.

    :param dtype: A numpy floating point dtype.
    """
    if not np.issubdtype(np.dtype(dtype), np.floating):
        raise TypeError(f"Field dtype must be floating point, got {dtype!r}")
    token = _field_dtype.set(dtype)
    try:
        yield
    finally:
        _field_dtype.reset(token)


def get_floating_point_info() -> np.finfo:
    """Machine limits of the current field dtype."""
    return np.finfo(get_dtype())  # type: ignore[arg-type]

import enum
import typing

import numpy as np
from scipy.sparse import csr_array, csr_matrix
from scipy.sparse.linalg import LinearOperator
from typing_extensions import TypeAlias


__all__ = [
    "ThreeDimensions",
    "Vector3",
    "FloatOrArray",
    "OneDimensionalGrid",
    "PermeabilityTensor",
    "SaturationField",
    "MobilityField",
    "FlowDirection",
    "Axis",
    "BoundaryConditionType",
    "Solver",
    "Preconditioner",
    "PreconditionerFactory",
    "SolverFunc",
    "InitializationState",
]

T = typing.TypeVar("T")

ThreeDimensions: TypeAlias = typing.Tuple[int, int, int]
"""Number of cells along each axis"""
Vector3: TypeAlias = typing.Tuple[float, float, float]
"""A 3-component real vector, e.g gravity"""

FloatOrArray = typing.Union[float, np.typing.NDArray[np.floating]]
OneDimensionalGrid = np.ndarray[typing.Tuple[int], np.dtype[np.floating]]
"""Cell or face field, one value per cell or face"""

PermeabilityTensor: TypeAlias = np.typing.NDArray[np.floating]
"""3x3 matrix of absolute or effective permeability (or mobility)"""
SaturationField: TypeAlias = OneDimensionalGrid
"""First phase saturation per cell, in [0, 1]"""
MobilityField: TypeAlias = OneDimensionalGrid
"""Phase mobility per cell (1/(Pa·s))"""

FlowDirection = typing.Literal[0, 1, 2]
"""Coordinate axis along which the pressure drop is imposed"""


class Axis(enum.IntEnum):
    """Coordinate axes of the block."""

    X = 0
    Y = 1
    Z = 2


BoundaryConditionType = typing.Literal["fixed", "linear", "periodic"]
"""
Boundary conditions used for upscaling:

- "fixed": fixed pressure on the inlet/outlet faces, no flow elsewhere
- "linear": linearly varying pressure on all faces
- "periodic": periodic faces with a pressure jump along the flow direction
"""

Solver = typing.Literal["direct", "cg", "bicgstab", "gmres", "lgmres"]
"""Linear solvers for the pressure system"""
Preconditioner = typing.Literal["ilu", "amg", "diagonal"]
"""Preconditioners for the iterative linear solvers"""

PreconditionerFactory = typing.Callable[
    [typing.Union[csr_array, csr_matrix]], typing.Optional[LinearOperator]
]
SolverFunc = typing.Callable[..., typing.Tuple[np.typing.NDArray, int]]


class InitializationState(enum.Enum):
    """Assembly state of a solver owned by an upscaler."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"

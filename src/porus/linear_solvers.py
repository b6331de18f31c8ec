"""Sparse linear solvers and preconditioners for the pressure system."""

import logging
import threading
import typing

import numpy as np
import pyamg  # type: ignore[import-untyped]
from scipy.sparse import csr_array, csr_matrix, diags  # type: ignore[import-untyped]
from scipy.sparse.linalg import (  # type: ignore[import-untyped]
    LinearOperator,
    bicgstab,
    cg,
    gmres,
    lgmres,
    spilu,
    spsolve,
)

from porus._precision import get_floating_point_info
from porus.errors import PreconditionerError, SolverError, ValidationError
from porus.types import Preconditioner, PreconditionerFactory, Solver, SolverFunc

logger = logging.getLogger(__name__)


__all__ = [
    "build_ilu_preconditioner",
    "build_amg_preconditioner",
    "build_diagonal_preconditioner",
    "preconditioner_factory",
    "list_preconditioner_factories",
    "list_solver_funcs",
    "solve_linear_system",
]


def build_amg_preconditioner(
    A_csr: typing.Union[csr_array, csr_matrix], cycle: str = "V", **kwargs: typing.Any
) -> LinearOperator:
    """
    Creates an Algebraic Multigrid (AMG) preconditioner using PyAMG.

    :param A_csr: The coefficient matrix in CSR format.
    :param cycle: Multigrid cycle type ('V', 'W', 'F').
    :param kwargs: Additional arguments for `pyamg.smoothed_aggregation_solver`.
    :return: A SciPy `LinearOperator` that represents the AMG preconditioner.
    """
    ml_solver = pyamg.smoothed_aggregation_solver(A_csr, **kwargs)
    return ml_solver.aspreconditioner(cycle=cycle)


def build_diagonal_preconditioner(
    A_csr: typing.Union[csr_array, csr_matrix],
) -> LinearOperator:
    """
    Creates a diagonal (Jacobi) preconditioner from the coefficient matrix.

    :param A_csr: The coefficient matrix in CSR format.
    :return: A SciPy `LinearOperator` that represents the diagonal preconditioner.
    """
    diag_elements = A_csr.diagonal()
    epsilon = get_floating_point_info().eps
    threshold = max(1e-30, 100 * epsilon * float(np.max(np.abs(diag_elements), initial=0.0)))
    diag_elements = np.where(np.abs(diag_elements) < threshold, 1.0, diag_elements)
    M_diag = diags(1.0 / diag_elements, format="csr")
    return LinearOperator(shape=A_csr.shape, matvec=M_diag.dot)  # type: ignore[arg-type]


def build_ilu_preconditioner(
    A_csr: typing.Union[csr_array, csr_matrix], **kwargs: typing.Any
) -> LinearOperator:
    """
    Creates an Incomplete LU (ILU) preconditioner using `spilu`.

    :param A_csr: The coefficient matrix in CSR format. It is converted to CSC for `spilu`.
    :return: A SciPy `LinearOperator` that solves the preconditioned system.
    """
    A_csc = A_csr.tocsc()
    kwargs.setdefault("drop_tol", 1e-4)
    kwargs.setdefault("fill_factor", 10)
    ilu_factor = spilu(A_csc, **kwargs)
    return LinearOperator(shape=A_csc.shape, matvec=ilu_factor.solve)  # type: ignore[arg-type]


def _spsolve(
    A: typing.Union[csr_array, csr_matrix], b: np.ndarray, **kwargs: typing.Any
) -> typing.Tuple[np.ndarray, int]:
    x = spsolve(A.tocsc(), b)
    if not np.all(np.isfinite(x)):
        return x, -1
    return x, 0


_preconditioner_registry_lock = threading.Lock()
_PRECONDITIONER_FACTORIES: typing.Dict[str, PreconditionerFactory] = {
    "ilu": build_ilu_preconditioner,
    "amg": build_amg_preconditioner,
    "diagonal": build_diagonal_preconditioner,
}

_solver_registry_lock = threading.Lock()
_SOLVER_FUNCS: typing.Dict[str, SolverFunc] = {
    "direct": _spsolve,
    "cg": cg,
    "bicgstab": bicgstab,
    "gmres": gmres,
    "lgmres": lgmres,
}


def preconditioner_factory(
    name: str, override: bool = False
) -> typing.Callable[[PreconditionerFactory], PreconditionerFactory]:
    """
    Decorator to register a preconditioner factory under `name`.

    :param name: Name the factory can be selected by, e.g. in `Config.preconditioner`.
    :param override: If True, allows overriding an existing factory.
    """

    def decorator(func: PreconditionerFactory) -> PreconditionerFactory:
        with _preconditioner_registry_lock:
            if not override and name in _PRECONDITIONER_FACTORIES:
                raise ValidationError(
                    f"Preconditioner factory {name!r} is already registered. "
                    f"Use `override=True` to replace it."
                )
            _PRECONDITIONER_FACTORIES[name] = func
        return func

    return decorator


def list_preconditioner_factories() -> typing.List[str]:
    with _preconditioner_registry_lock:
        return list(_PRECONDITIONER_FACTORIES.keys())


def list_solver_funcs() -> typing.List[str]:
    with _solver_registry_lock:
        return list(_SOLVER_FUNCS.keys())


def _get_preconditioner(
    A_csr: typing.Union[csr_array, csr_matrix],
    preconditioner: typing.Union[Preconditioner, PreconditionerFactory, None],
) -> typing.Optional[LinearOperator]:
    if preconditioner is None:
        return None
    if isinstance(preconditioner, str):
        with _preconditioner_registry_lock:
            factory = _PRECONDITIONER_FACTORIES.get(preconditioner)
        if factory is None:
            raise ValidationError(
                f"Unknown preconditioner type: {preconditioner!r}. "
                f"Available preconditioners: {list_preconditioner_factories()}"
            )
        return factory(A_csr)
    if callable(preconditioner):
        return preconditioner(A_csr)
    raise TypeError("preconditioner must be a string, a factory callable or None.")


def _get_solver_func(solver: typing.Union[Solver, SolverFunc]) -> SolverFunc:
    if callable(solver):
        return solver
    with _solver_registry_lock:
        solver_func = _SOLVER_FUNCS.get(solver)
    if solver_func is None:
        raise ValidationError(
            f"Unknown solver type: {solver!r}. Available solvers: {list_solver_funcs()}"
        )
    return solver_func


def solve_linear_system(
    A_csr: typing.Union[csr_array, csr_matrix],
    b: np.typing.NDArray,
    solver: typing.Union[Solver, SolverFunc] = "direct",
    preconditioner: typing.Union[Preconditioner, PreconditionerFactory, None] = "ilu",
    rtol: float = 1e-8,
    max_iterations: int = 500,
    verbosity: int = 0,
    fallback_to_direct: bool = True,
) -> np.typing.NDArray:
    """
    Solves the linear system A·x = b.

    Iterative solvers are preconditioned and, if they fail to converge, the system is
    handed to the direct solver when `fallback_to_direct` is set.

    :param A_csr: Coefficient matrix in CSR format.
    :param b: Right-hand side vector.
    :param solver: Solver name ("direct", "cg", "bicgstab", "gmres", "lgmres") or a
        callable with the SciPy iterative solver interface.
    :param preconditioner: Preconditioner name ("ilu", "amg", "diagonal"), a factory
        taking A and returning a `LinearOperator`, or None. Ignored by the direct solver.
    :param rtol: Relative residual tolerance of iterative solvers.
    :param max_iterations: Maximum number of iterations of iterative solvers.
    :param verbosity: Values above zero log the final residual of each solve.
    :param fallback_to_direct: Whether to fall back to the direct solver if the iterative solver fails.
    :return: The solution vector.
    :raises PreconditionerError: If the preconditioner cannot be built.
    :raises SolverError: If the system cannot be solved.
    """
    solver_func = _get_solver_func(solver)
    is_direct = solver_func is _spsolve
    if is_direct:
        M = None
    else:
        try:
            M = _get_preconditioner(A_csr, preconditioner)
        except (ValidationError, TypeError):
            raise
        except Exception as exc:
            raise PreconditionerError(f"Error building preconditioner: {exc}") from exc

    b_norm = float(np.linalg.norm(b))
    atol = max(1e-300, rtol * b_norm * 1e-3)
    try:
        if is_direct:
            x, info = solver_func(A_csr, b)
        else:
            x, info = solver_func(
                A_csr, b, x0=None, M=M, rtol=rtol, atol=atol, maxiter=max_iterations
            )
    except Exception as exc:
        raise SolverError(f"Linear solver {solver!r} failed: {exc}") from exc

    if info == 0:
        if verbosity > 0:
            residual = float(np.linalg.norm(A_csr @ x - b))
            logger.info(
                f"Linear solve with {solver!r} converged. "
                f"Residual norm {residual:.3e} (relative {residual / max(b_norm, 1e-300):.3e})"
            )
        return np.ascontiguousarray(x)

    if is_direct:
        raise SolverError("Direct solver produced a non-finite solution. The system may be singular.")

    logger.warning(
        f"Solver {solver!r} failed to converge within {max_iterations} iterations. Info: {info}"
    )
    if not fallback_to_direct:
        raise SolverError(
            f"Solver {solver!r} failed to converge within {max_iterations} iterations."
        )

    logger.info("Falling back to direct solver (spsolve).")
    try:
        x, info = _spsolve(A_csr, b)
    except Exception as exc:
        logger.error(f"Direct solver failed: {exc}")
        raise SolverError(
            "Both the iterative solver and the direct solver failed to solve the system."
        ) from exc
    if info != 0:
        raise SolverError("Direct solver produced a non-finite solution. The system may be singular.")
    return np.ascontiguousarray(x)

class PorusError(Exception):
    """Base class for all PORUS-related errors."""

    pass


class ValidationError(PorusError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class PreconditionerError(PorusError):
    """Raised when there is an error related to preconditioners."""

    pass


class SolverError(PorusError):
    """Raised when a pressure, transport or linear solver fails."""

    pass


class ComputationError(PorusError):
    """Raised when there is an error during numerical computations."""

    pass


class BoundaryConditionError(PorusError):
    """Raised when boundary conditions are inconsistent or incomplete."""

    pass


class PeriodicPartnerError(BoundaryConditionError):
    """Raised when a periodic boundary face cannot be resolved against its partner face."""

    def __init__(self, boundary_id: int, partner_boundary_id: int) -> None:
        self.boundary_id = boundary_id
        self.partner_boundary_id = partner_boundary_id
        super().__init__(
            f"Could not find periodic partner fractional flow. "
            f"Face bid = {boundary_id} and partner bid = {partner_boundary_id}"
        )


class StoreError(PorusError, KeyError):
    """Raised when a stored result is requested before it has been computed."""

    pass

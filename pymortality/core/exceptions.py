"""
Exception hierarchy for pymortality.

All exceptions inherit from PyMortalityError to allow catching any
library-specific error. Two families sit under it:

    ValidationError   - the caller's inputs are wrong (fail before any work)
    SolverFailure     - the inference backend could not produce a fit

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class PyMortalityError(Exception):
    """Base exception for all pymortality errors."""
    pass


class ValidationError(PyMortalityError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class ConfigurationError(ValidationError):
    """
    The requested model configuration is invalid.

    Raised for malformed adjacency labels, unsupported random-walk order,
    unknown hyperprior or likelihood family, a bias-adjustment table
    without a ``ratio`` column, or national fits with no ``"All"`` rows.
    """
    pass


class DataShapeError(ValidationError):
    """
    An input table does not have the expected shape or content.

    Raised when required columns are missing, when labels fall outside
    a configured vocabulary, or when no rows survive filtering.

    Attributes:
        missing: Names of missing columns or unexpected values, if any
    """

    def __init__(self, message: str, missing: tuple[str, ...] | None = None):
        super().__init__(message)
        self.missing = missing


class SolverFailure(PyMortalityError):
    """
    The inference backend failed.

    Backends raise this (or a subclass) for non-convergence and internal
    numerical failures. It is propagated to the caller unchanged; fits
    are never retried or replaced by a default result.

    Attributes:
        reason: Short machine-readable cause (e.g. 'not_positive_definite')
        backend_name: Identifier of the backend that failed
    """

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        backend_name: str | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.backend_name = backend_name


class NumericalError(SolverFailure):
    """
    Numerical computation failed inside a backend.
    """
    pass


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

    Raised when a Cholesky factorisation of a posterior precision fails.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_eigenvalue: Minimum eigenvalue, if computed
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_eigenvalue: float | None = None,
        backend_name: str | None = None,
    ):
        super().__init__(message, reason='not_positive_definite',
                         backend_name=backend_name)
        self.matrix_name = matrix_name
        self.min_eigenvalue = min_eigenvalue


class ConvergenceError(SolverFailure):
    """
    Iterative algorithm failed to converge.

    Raised when the latent-mode Newton iteration does not meet its
    convergence criterion within the maximum number of iterations.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None,
        backend_name: str | None = None,
    ):
        super().__init__(message, reason=reason or 'max_iterations',
                         backend_name=backend_name)
        self.iterations = iterations
        self.final_change = final_change
        self.threshold = threshold

import logging


# Library logger - no configuration, user controls output
logger = logging.getLogger(__name__)


class DircolBaseError(Exception):
    """
    Base class for all dircol-specific errors.

    All dircol exceptions inherit from this class, allowing users to catch
    any dircol-specific error with a single except clause.

    Args:
        message: The error message describing what went wrong
        context: Optional additional context about where the error occurred
    """

    def __init__(self, message: str, context: str | None = None) -> None:
        self.message = message
        self.context = context

        # Library logs at DEBUG level - user can promote if needed
        logger.debug("dircol exception: %s", self._format_message())
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with optional context."""
        if self.context:
            return f"{self.message} (Context: {self.context})"
        return self.message


class InvalidConfigurationError(DircolBaseError):
    """
    Raised when a problem, mesh or solver is configured inconsistently.

    Detected eagerly, when the offending object is declared, built or attached
    to a solver, never deferred until the NLP solver runs.

    Examples:
        - Mesh with fewer than 2 points
        - Duplicate variable names or empty bound ranges
        - Non-monotonic time bounds
        - Dynamics output length different from the number of states
    """

    pass


class PreconditionViolationError(DircolBaseError):
    """
    Raised when an operation is called in a state that does not allow it.

    This is a programming error, e.g. calling ``solve()`` on a solver that has
    no problem attached.
    """

    pass


class EvaluationError(DircolBaseError):
    """
    Raised when a user callback throws or produces non-finite values.

    The current solve is aborted. When the failure can be traced to a mesh
    location, ``mesh_point`` holds its index and ``time`` its normalized time
    fraction (or physical time when known).
    """

    def __init__(
        self,
        message: str,
        context: str | None = None,
        mesh_point: int | None = None,
        time: float | None = None,
    ) -> None:
        self.mesh_point = mesh_point
        self.time = time
        super().__init__(message, context)


class DataIntegrityError(DircolBaseError):
    """
    Raised when internal data corruption or inconsistency is detected.

    Examples:
        - Iterate matrices whose column count does not match the time vector
        - Derivative structure escaping the declared sparsity pattern
        - Mismatched array dimensions in internal calculations
    """

    pass


class IterateFormatError(DircolBaseError):
    """Raised when a trajectory CSV file is malformed; ``line`` is 1-based."""

    def __init__(self, message: str, line: int | None = None, context: str | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, context)


class SolutionExtractionError(DircolBaseError):
    """
    Raised when solution data cannot be extracted from the optimization result.

    This exception occurs when the raw primal vector returned by the NLP
    solver cannot be mapped back onto the mesh.
    """

    pass

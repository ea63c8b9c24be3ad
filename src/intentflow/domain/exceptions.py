"""
Domain exceptions for intentflow.

Retry policy is decided by the callers (queue runner, phase orchestrator);
these types only carry what happened.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from intentflow.domain.models import Run


class IntentflowError(Exception):
    """Base class for all intentflow errors."""


class ConfigError(IntentflowError):
    """
    Raised when an intent, plan or settings file is malformed or invalid.

    Never retried: the same input fails the same way.
    """


class ServerUnavailable(IntentflowError):
    """
    Raised when the external tool process fails.

    Covers non-zero exits, timeouts and malformed responses. The executor
    does not retry; the phase orchestrator may.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
        partial_run: "Run | None" = None,
    ):
        """
        Args:
            message: Human-readable error message
            exit_code: Process exit code (None on timeout or spawn failure)
            stderr: Captured diagnostic output
            partial_run: Sealed envelope of the steps completed before failure
        """
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.partial_run = partial_run


class BudgetExceeded(IntentflowError):
    """
    Raised when a run would exceed one of its budgets (N, b, d, K).

    Always carries the partial run so the envelope can still be emitted.
    """

    def __init__(
        self,
        message: str,
        budget: str,
        limit: int,
        partial_run: "Run | None" = None,
    ):
        """
        Args:
            message: Human-readable error message
            budget: Which budget was hit ("maxSteps", "branchFactor", ...)
            limit: The configured limit
            partial_run: Sealed envelope of the steps completed before abort
        """
        super().__init__(message)
        self.budget = budget
        self.limit = limit
        self.partial_run = partial_run


class ValidationFailure(IntentflowError):
    """Raised when a Run envelope violates the output contract."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        partial_run: "Run | None" = None,
    ):
        super().__init__(message)
        self.errors = errors or []
        self.partial_run = partial_run


class PhaseFailure(IntentflowError):
    """Raised by a phase handler to signal a (retryable) phase failure."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase}: {message}")
        self.phase = phase

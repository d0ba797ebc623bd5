"""Error taxonomy, tagged exceptions and failure classification.

Every failure that reaches the job orchestrator is mapped onto an
``ErrorCode``.  Each code carries a default severity, a recoverability flag,
ordered recovery actions and a base retry delay.  Exceptions raised inside the
package are tagged with their code so classification does not depend on the
wording of messages; message matching is only used for foreign exceptions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import asyncio
import logging
import re

from pydantic import ValidationError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Failure category."""
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    OPTIMIZATION_ERROR = "OPTIMIZATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_ERROR = "RESOURCE_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorSeverity(str, Enum):
    """How serious a failure is for the user."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(str, Enum):
    """Suggested follow-up for a failure."""
    RETRY_WITH_DELAY = "retry_with_delay"
    FALLBACK_TO_SIMPLER_ALGORITHM = "fallback_to_simpler_algorithm"
    CANCEL = "cancel"
    MANUAL_INTERVENTION = "manual_intervention"


@dataclass(frozen=True)
class ErrorPolicy:
    """Default handling for one error code.

    Attributes:
        severity: Default severity
        recoverable: Whether a retry may succeed
        recovery_actions: Ordered suggestions
        base_delay_seconds: First retry delay; doubles with each retry
    """
    severity: ErrorSeverity
    recoverable: bool
    recovery_actions: tuple
    base_delay_seconds: float


ERROR_POLICIES: Dict[ErrorCode, ErrorPolicy] = {
    ErrorCode.DATABASE_ERROR: ErrorPolicy(
        ErrorSeverity.HIGH, True,
        (RecoveryAction.RETRY_WITH_DELAY, RecoveryAction.MANUAL_INTERVENTION), 5.0,
    ),
    ErrorCode.NETWORK_ERROR: ErrorPolicy(
        ErrorSeverity.MEDIUM, True,
        (RecoveryAction.RETRY_WITH_DELAY,), 3.0,
    ),
    ErrorCode.OPTIMIZATION_ERROR: ErrorPolicy(
        ErrorSeverity.MEDIUM, True,
        (RecoveryAction.FALLBACK_TO_SIMPLER_ALGORITHM, RecoveryAction.RETRY_WITH_DELAY), 10.0,
    ),
    ErrorCode.VALIDATION_ERROR: ErrorPolicy(
        ErrorSeverity.LOW, False,
        (RecoveryAction.CANCEL, RecoveryAction.MANUAL_INTERVENTION), 5.0,
    ),
    ErrorCode.RESOURCE_ERROR: ErrorPolicy(
        ErrorSeverity.HIGH, True,
        (RecoveryAction.RETRY_WITH_DELAY, RecoveryAction.FALLBACK_TO_SIMPLER_ALGORITHM), 30.0,
    ),
    ErrorCode.TIMEOUT_ERROR: ErrorPolicy(
        ErrorSeverity.MEDIUM, True,
        (RecoveryAction.RETRY_WITH_DELAY, RecoveryAction.FALLBACK_TO_SIMPLER_ALGORITHM), 5.0,
    ),
    ErrorCode.UNKNOWN_ERROR: ErrorPolicy(
        ErrorSeverity.MEDIUM, True,
        (RecoveryAction.RETRY_WITH_DELAY, RecoveryAction.MANUAL_INTERVENTION), 5.0,
    ),
}


def base_retry_delay(code: ErrorCode) -> float:
    """Return the first retry delay in seconds for an error code."""
    return ERROR_POLICIES.get(code, ERROR_POLICIES[ErrorCode.UNKNOWN_ERROR]).base_delay_seconds


# ============================================================================
# Tagged exceptions
# ============================================================================


class PlanningError(Exception):
    """Base class for all errors raised by the planning engine.

    Subclasses set ``code``; callers may override severity or recoverability
    for a single instance.
    """
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        severity: Optional[ErrorSeverity] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        policy = ERROR_POLICIES[self.code]
        self.severity = severity or policy.severity
        self.recoverable = policy.recoverable if recoverable is None else recoverable


class ModelDefinitionError(PlanningError):
    """Constraint model is structurally invalid."""
    code = ErrorCode.VALIDATION_ERROR


class InvalidInputError(PlanningError):
    """Input data failed validation."""
    code = ErrorCode.VALIDATION_ERROR


class WarehouseDataError(InvalidInputError):
    """Forecast or SKU data is missing or unusable."""


class InfeasibleModelError(PlanningError):
    """Solver proved that no assignment satisfies the model."""
    code = ErrorCode.OPTIMIZATION_ERROR


class SolverFailureError(PlanningError):
    """Solver could not produce a result."""
    code = ErrorCode.OPTIMIZATION_ERROR


class PersistenceError(PlanningError):
    """A collaborator service failed to read or write data."""
    code = ErrorCode.DATABASE_ERROR


class CollaboratorUnavailableError(PlanningError):
    """A remote collaborator could not be reached."""
    code = ErrorCode.NETWORK_ERROR


class ResourceExhaustedError(PlanningError):
    """Memory, workers or another resource ran out."""
    code = ErrorCode.RESOURCE_ERROR


class CircuitOpenError(ResourceExhaustedError):
    """Raised when a circuit breaker rejects a call."""

    def __init__(self, breaker_name: str, retry_after_seconds: float = 0.0):
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open; "
            f"retry in {max(retry_after_seconds, 0.0):.1f}s"
        )
        self.breaker_name = breaker_name
        self.retry_after_seconds = retry_after_seconds


class JobTimeoutError(PlanningError):
    """Job exceeded its wall-clock limit."""
    code = ErrorCode.TIMEOUT_ERROR


class JobCancelledError(PlanningError):
    """Job was cancelled while running."""
    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str = "Job was cancelled"):
        super().__init__(message, severity=ErrorSeverity.LOW, recoverable=False)


# ============================================================================
# Classification
# ============================================================================


@dataclass
class ErrorContext:
    """Where a failure happened."""
    operation: str
    job_id: Optional[str] = None
    scenario_id: Optional[int] = None
    run_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorDetails:
    """Classified failure, safe to show to users.

    Attributes:
        code: Failure category
        severity: Failure severity
        recoverable: Whether the orchestrator may retry
        recovery_actions: Ordered recovery suggestions
        user_message: Sanitized message (no secrets, paths or tracebacks)
        context: Operation context
        original_type: Class name of the underlying exception
    """
    code: ErrorCode
    severity: ErrorSeverity
    recoverable: bool
    recovery_actions: List[RecoveryAction]
    user_message: str
    context: ErrorContext
    original_type: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code.value,
            'severity': self.severity.value,
            'recoverable': self.recoverable,
            'recovery_actions': [a.value for a in self.recovery_actions],
            'user_message': self.user_message,
            'operation': self.context.operation,
            'job_id': self.context.job_id,
            'scenario_id': self.context.scenario_id,
            'run_id': self.context.run_id,
            'timestamp': self.context.timestamp.isoformat(),
            'original_type': self.original_type,
        }


_SECRET_PATTERN = re.compile(
    r"\b(password|secret|token|api[_-]?key|key|auth|credential|database_url)"
    r"(\s*[=:]\s*)(\"[^\"]*\"|'[^']*'|\S+)",
    re.IGNORECASE,
)
_URL_PATTERN = re.compile(r"\b(postgres(?:ql)?|mysql|redis|mongodb|amqp)://\S+", re.IGNORECASE)
_PATH_PATTERN = re.compile(r"(?:[A-Za-z]:\\|/)(?:[\w.\-]+[\\/])+[\w.\-]*")
_TRACEBACK_PATTERN = re.compile(r"Traceback \(most recent call last\):.*", re.DOTALL)

# (code, substrings) checked in order against lowercased messages
_MESSAGE_RULES = (
    (ErrorCode.TIMEOUT_ERROR, ("timeout", "timed out", "aborted")),
    (ErrorCode.DATABASE_ERROR, ("database", "postgres", "sql", "deadlock")),
    (ErrorCode.NETWORK_ERROR, ("connection", "network", "econnrefused", "unreachable", "dns")),
    (ErrorCode.VALIDATION_ERROR, ("validation", "invalid", "required", "must be")),
    (ErrorCode.RESOURCE_ERROR, ("memory", "resource", "too many", "capacity exceeded")),
    (ErrorCode.OPTIMIZATION_ERROR, ("infeasible", "unbounded", "solver", "optimization")),
)


def sanitize_message(message: str, max_length: int = 500) -> str:
    """Remove secrets, connection URLs, file paths and tracebacks from a message.

    Args:
        message: Raw error text
        max_length: Result is truncated to this many characters

    Returns:
        Text that is safe to store on a job and show to users

    Example:
        >>> sanitize_message("login failed password=hunter2")
        'login failed password=[REDACTED]'
    """
    text = _TRACEBACK_PATTERN.sub("", str(message))
    text = _URL_PATTERN.sub(lambda m: f"{m.group(1)}://[REDACTED]", text)
    text = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]", text)
    text = _PATH_PATTERN.sub("[PATH]", text)
    text = " ".join(text.split())
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text or "An unexpected error occurred"


class ErrorClassifier:
    """Maps exceptions to ``ErrorDetails``.

    Lookup order:
        1. ``PlanningError`` subclasses (tagged with their code)
        2. Well-known foreign exception types
        3. Message patterns
    """

    def classify(self, error: BaseException, context: ErrorContext) -> ErrorDetails:
        code = self._code_for(error)
        policy = ERROR_POLICIES[code]
        severity = policy.severity
        recoverable = policy.recoverable

        if isinstance(error, PlanningError):
            severity = error.severity
            recoverable = error.recoverable
        if code == ErrorCode.VALIDATION_ERROR:
            recoverable = False

        details = ErrorDetails(
            code=code,
            severity=severity,
            recoverable=recoverable,
            recovery_actions=list(policy.recovery_actions),
            user_message=sanitize_message(str(error) or type(error).__name__),
            context=context,
            original_type=type(error).__name__,
        )

        logger.debug(
            f"Classified {details.original_type} in '{context.operation}' as "
            f"{code.value} (recoverable={recoverable})"
        )
        return details

    def _code_for(self, error: BaseException) -> ErrorCode:
        if isinstance(error, PlanningError):
            return error.code
        if isinstance(error, ValidationError):
            return ErrorCode.VALIDATION_ERROR
        if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
            return ErrorCode.TIMEOUT_ERROR
        if isinstance(error, MemoryError):
            return ErrorCode.RESOURCE_ERROR
        if isinstance(error, ConnectionError):
            return ErrorCode.NETWORK_ERROR

        message = str(error).lower()
        for code, needles in _MESSAGE_RULES:
            if any(needle in message for needle in needles):
                return code

        if isinstance(error, (ValueError, TypeError, KeyError)):
            return ErrorCode.VALIDATION_ERROR
        return ErrorCode.UNKNOWN_ERROR

from typing import Callable, List, Optional, Tuple, Type, TypeVar

from zkevm_deployment.utils import DeploymentConfigError, DeploymentConsistencyError

T = TypeVar("T")

FATAL_ERRORS = (DeploymentConfigError, DeploymentConsistencyError)


class AttemptsExhausted(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, message: str, errors: List[Exception]):
        super().__init__(message)
        self.errors = errors


def retry(
    operation: Callable[[], T],
    attempts: int,
    on_failure: Optional[Callable[[int, Exception], None]] = None,
    description: str = "operation",
    fatal: Tuple[Type[Exception], ...] = FATAL_ERRORS,
) -> T:
    """
    Runs `operation` until it succeeds, at most `attempts` times, without backoff.
    `on_failure` is told the zero-based attempt index and the error of every failed attempt.
    Errors of a `fatal` type are raised as they are, without further attempts.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    errors = list()
    for attempt in range(attempts):
        try:
            return operation()
        except fatal:
            raise
        except Exception as e:
            errors.append(e)
            if on_failure:
                on_failure(attempt, e)

    raise AttemptsExhausted(
        f"{description} failed after {attempts} attempt(s); last error: {errors[-1]!r}",
        errors=errors,
    ) from errors[-1]

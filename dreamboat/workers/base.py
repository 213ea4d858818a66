"""
Base Worker Classes
Provides the exception hierarchy, the shared retry executor, and the RQ
progress helpers used by generation and validation workers.
"""

import asyncio
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from rq import get_current_job
from rq.job import Job

from dreamboat.core.database import utcnow

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Gemini quota errors say e.g. "Please retry in 12.5s."
RETRY_HINT_PATTERN = re.compile(r"retry in ([\d.]+)\s*s", re.IGNORECASE)


class JobStatus(str, Enum):
    """RQ-side worker status enumeration."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.retryable = retryable
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


class RetryableError(WorkerException):
    """Error that SHOULD be retried (e.g., API timeout)."""

    def __init__(self, message: str, retry_after: Optional[float] = None, details: Optional[dict] = None):
        super().__init__(message, retryable=True, details=details)
        self.retry_after = retry_after


class SynthesisError(RetryableError):
    """The image-synthesis provider returned no image."""


class ExhaustedRetriesError(WorkerException):
    """An operation failed on every allowed attempt."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(
            f"Failed after {attempts} attempts: {last_error}",
            retryable=False,
            details={"attempts": attempts, "error_type": type(last_error).__name__},
        )
        self.last_error = last_error
        self.attempts = attempts

    @property
    def last_message(self) -> str:
        return str(self.last_error)


class TaskError(WorkerException):
    """One generation task failed after its retries."""

    def __init__(self, message: str, task: Any = None, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)
        self.task = task


class ValidationFailure(WorkerException):
    """Photo validation could not produce a verdict (system error, not policy)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


def suggested_delay(error: BaseException) -> Optional[float]:
    """Provider-specified wait for an error, if it carries one."""
    retry_after = getattr(error, "retry_after", None)
    if retry_after is not None:
        return float(retry_after)

    match = RETRY_HINT_PATTERN.search(str(error))
    if match:
        try:
            return float(match.group(1))
        except ValueError:
            return None
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    """True for provider quota / 429 errors."""
    if getattr(error, "code", None) == 429 or getattr(error, "status_code", None) == 429:
        return True
    message = str(error)
    return "429" in message or "RESOURCE_EXHAUSTED" in message or "quota" in message.lower()


def _retry_by_default(error: BaseException) -> bool:
    if isinstance(error, WorkerException):
        return error.retryable
    return True


class RetryExecutor:
    """
    Bounded retry with exponential backoff around an async operation.

    After failed attempt n (1-indexed) the executor waits
    base_delay * 2 ** (n - 1) seconds before attempt n + 1, unless the error
    carries a provider-suggested wait, which takes precedence. There is no
    wait after the final attempt.

    Args:
        max_attempts: Total attempts, including the first one
        base_delay: Delay after the first failure (seconds)
        retry_if: Predicate deciding whether an error is worth retrying.
            Errors it rejects propagate unchanged.
        sleep: Awaitable sleep, injectable for tests
        name: Label used in log lines
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retry_if: Callable[[BaseException], bool] = _retry_by_default,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "operation",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retry_if = retry_if
        self._sleep = sleep
        self.name = name

    def backoff(self, attempt: int) -> float:
        """Computed wait after failed attempt `attempt` (1-indexed)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` until it succeeds or every attempt has failed.

        Raises:
            ExhaustedRetriesError: every attempt failed with a retryable error
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()

            except NonRetryableError as e:
                logger.error(f"[Non-Retryable] {self.name}: {e}")
                raise

            except Exception as e:
                if not self.retry_if(e):
                    raise

                last_error = e
                if attempt == self.max_attempts:
                    break

                hint = suggested_delay(e)
                delay = hint if hint is not None else self.backoff(attempt)
                logger.warning(
                    f"[Retry {attempt}/{self.max_attempts}] {self.name} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await self._sleep(delay)

        logger.error(f"[Failed] {self.name} exhausted all {self.max_attempts} attempts: {last_error}")
        raise ExhaustedRetriesError(last_error, self.max_attempts) from last_error


class BaseWorker:
    """
    Helpers for code running inside an RQ job.

    Features:
    - Job progress tracking in RQ job meta
    - Structured start/complete/error logging
    Outside an RQ worker every helper degrades to logging only.
    """

    TASK_NAME = "task"

    def __init__(self):
        self.start_time: Optional[datetime] = None

    def _get_current_job(self) -> Optional[Job]:
        """Get the current RQ job context."""
        return get_current_job()

    def _update_progress(self, progress: float, message: str = ""):
        """
        Update job progress (0.0 to 1.0).

        Args:
            progress: Progress value between 0 and 1
            message: Optional status message
        """
        job = self._get_current_job()
        if job:
            job.meta["progress"] = min(max(progress, 0), 1)
            job.meta["progress_message"] = message
            job.meta["updated_at"] = utcnow().isoformat()
            job.save_meta()

        logger.debug(f"Progress: {progress:.0%} - {message}")

    def _set_status(self, status: JobStatus, details: Optional[dict] = None):
        """Set job status with optional details."""
        job = self._get_current_job()
        if job:
            job.meta["worker_status"] = status.value
            job.meta["status_details"] = details or {}
            job.meta["updated_at"] = utcnow().isoformat()
            job.save_meta()

    def _log_start(self, **context):
        """Log task start with context."""
        self.start_time = utcnow()
        self._set_status(JobStatus.RUNNING)
        logger.info(f"[START] {self.TASK_NAME} | Context: {context}")

    def _log_complete(self, result_summary: str = ""):
        """Log task completion with timing."""
        duration = (utcnow() - self.start_time).total_seconds() if self.start_time else 0
        self._set_status(JobStatus.SUCCESS)
        self._update_progress(1.0, "Complete")
        logger.info(f"[COMPLETE] {self.TASK_NAME} | Duration: {duration:.2f}s | {result_summary}")

    def _log_error(self, error: Exception):
        """Log task error with details."""
        duration = (utcnow() - self.start_time).total_seconds() if self.start_time else 0
        self._set_status(JobStatus.FAILED, {"error": str(error)})
        logger.error(f"[ERROR] {self.TASK_NAME} | Duration: {duration:.2f}s | Error: {error}")


__all__ = [
    "JobStatus",
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "SynthesisError",
    "ExhaustedRetriesError",
    "TaskError",
    "ValidationFailure",
    "suggested_delay",
    "is_rate_limit_error",
    "RetryExecutor",
    "BaseWorker"
]

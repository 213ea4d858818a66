# Workers package - batched generation and async job processing with RQ

from dreamboat.workers.base import (
    JobStatus,
    WorkerException,
    NonRetryableError,
    RetryableError,
    SynthesisError,
    ExhaustedRetriesError,
    TaskError,
    ValidationFailure,
    RetryExecutor,
    BaseWorker
)
from dreamboat.workers.rate_limiter import RateLimiter, get_rate_limiter
from dreamboat.workers.scheduler import EmptyFanoutError, Task, TaskOutcome, expand, BatchScheduler

__all__ = [
    # Base
    "JobStatus",
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "SynthesisError",
    "ExhaustedRetriesError",
    "TaskError",
    "ValidationFailure",
    "RetryExecutor",
    "BaseWorker",
    # Rate limiting
    "RateLimiter",
    "get_rate_limiter",
    # Fan-out
    "EmptyFanoutError",
    "Task",
    "TaskOutcome",
    "expand",
    "BatchScheduler"
]

"""
Task Fan-out and Batch Scheduler
Expands a (photos x scenarios) request into tasks and runs them in
fixed-size concurrent batches.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from dreamboat.workers.base import TaskError

logger = logging.getLogger(__name__)


class EmptyFanoutError(ValueError):
    """Raised when a request has no photos or no scenarios."""


@dataclass(frozen=True)
class Task:
    """One synthesis call: a source photo rendered into one scenario."""
    photo: Any
    scenario: str
    custom_prompt: Optional[str] = None
    index: int = 0

    @property
    def label(self) -> str:
        photo_id = getattr(self.photo, "id", self.photo)
        return f"#{self.index + 1} {photo_id}/{self.scenario}"


@dataclass
class TaskOutcome:
    """Settled result of one task."""
    task: Task
    success: bool
    result: Any = None
    error: Optional[TaskError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "photo_id": getattr(self.task.photo, "id", self.task.photo),
            "scenario": self.task.scenario,
            "success": self.success,
            "result_id": getattr(self.result, "id", None),
            "error": str(self.error) if self.error else None,
        }


def expand(
    images: Sequence[Any],
    scenarios: Sequence[str],
    custom_prompts: Optional[Dict[str, str]] = None,
) -> List[Task]:
    """
    Build one task per (image, scenario) pair.

    Order is image-outer, scenario-inner, so task i is
    images[i // len(scenarios)] x scenarios[i % len(scenarios)].

    Raises:
        EmptyFanoutError: if either input is empty
    """
    if not images:
        raise EmptyFanoutError("At least one source photo is required")
    if not scenarios:
        raise EmptyFanoutError("At least one scenario is required")

    custom_prompts = custom_prompts or {}
    tasks = []
    for image in images:
        for scenario in scenarios:
            tasks.append(Task(
                photo=image,
                scenario=scenario,
                custom_prompt=custom_prompts.get(scenario),
                index=len(tasks),
            ))
    return tasks


class BatchScheduler:
    """
    Runs tasks in fixed-size concurrent batches with settle-all semantics.

    Each batch is awaited as a whole before the next one starts. A task that
    raises never cancels its siblings; its exception becomes a failed
    TaskOutcome. Outcomes are returned in task order.
    """

    def __init__(self, batch_size: int = 30):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size

    def partition(self, tasks: Sequence[Task]) -> List[Sequence[Task]]:
        return [tasks[i:i + self.batch_size] for i in range(0, len(tasks), self.batch_size)]

    async def run(
        self,
        tasks: Sequence[Task],
        worker: Callable[[Task], Awaitable[Any]],
        on_batch_settled: Optional[Callable[[int, int], None]] = None,
    ) -> List[TaskOutcome]:
        """
        Execute every task through `worker`.

        Args:
            tasks: Tasks in their final reporting order
            worker: Async unit of work; its return value becomes the result
            on_batch_settled: Optional progress callback(done, total)

        Returns:
            One TaskOutcome per task, in input order
        """
        outcomes: List[TaskOutcome] = []
        batches = self.partition(tasks)

        for number, batch in enumerate(batches, start=1):
            logger.info(
                f"[Batch {number}/{len(batches)}] Running {len(batch)} task(s)"
            )
            settled = await asyncio.gather(
                *(worker(task) for task in batch),
                return_exceptions=True,
            )

            for task, value in zip(batch, settled):
                outcomes.append(self._to_outcome(task, value))

            failed = sum(1 for o in outcomes[-len(batch):] if not o.success)
            logger.info(
                f"[Batch {number}/{len(batches)}] Settled: {len(batch) - failed} ok, {failed} failed"
            )

            if on_batch_settled:
                on_batch_settled(len(outcomes), len(tasks))

        return outcomes

    @staticmethod
    def _to_outcome(task: Task, value: Any) -> TaskOutcome:
        if isinstance(value, BaseException):
            if not isinstance(value, Exception):
                # KeyboardInterrupt / CancelledError are not task failures
                raise value
            error = value if isinstance(value, TaskError) else TaskError(str(value) or type(value).__name__, task=task)
            logger.warning(f"[Task {task.label}] Failed: {error}")
            return TaskOutcome(task=task, success=False, error=error)
        return TaskOutcome(task=task, success=True, result=value)


__all__ = ["EmptyFanoutError", "Task", "TaskOutcome", "expand", "BatchScheduler"]

"""
Generation Tracker
Owns the generation job state machine: in_progress -> completed | failed.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from dreamboat.core.database import new_id, utcnow
from dreamboat.models.generation import GenerationJob, GenerationStatus

logger = logging.getLogger(__name__)


class JobStateError(Exception):
    """Illegal generation job state transition."""


class GenerationTracker:
    """Opens and finalizes generation jobs."""

    def __init__(self, db: Session):
        self.db = db

    def open(
        self,
        owner_id: str,
        payment_credit_id: Optional[str],
        total_tasks: int,
        scenarios: Optional[List[str]] = None,
    ) -> GenerationJob:
        """Insert an in_progress job before any task runs."""
        if total_tasks < 1:
            raise ValueError("total_tasks must be at least 1")

        job = GenerationJob(
            id=new_id("gen"),
            owner_id=owner_id,
            payment_credit_id=payment_credit_id,
            status=GenerationStatus.IN_PROGRESS,
            total_tasks=total_tasks,
            completed_tasks=0,
            scenarios=list(scenarios or []),
            created_at=utcnow(),
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"[Generation] Opened job {job.id} for {owner_id}: {total_tasks} task(s)")
        return job

    def close(self, job_id: str, success_count: int, total_tasks: int) -> GenerationJob:
        """
        Finalize a job exactly once.

        The job is completed only when every task succeeded; anything less is
        failed, with completed_tasks recording how many did succeed.

        Raises:
            ValueError: counts are negative or success_count > total_tasks
            JobStateError: the job does not exist or is already terminal
        """
        if success_count < 0 or total_tasks < 0 or success_count > total_tasks:
            raise ValueError(
                f"Invalid counts for job {job_id}: {success_count}/{total_tasks}"
            )

        status = GenerationStatus.COMPLETED if success_count == total_tasks else GenerationStatus.FAILED

        updated = (
            self.db.query(GenerationJob)
            .filter(GenerationJob.id == job_id, GenerationJob.status == GenerationStatus.IN_PROGRESS)
            .update(
                {
                    GenerationJob.status: status,
                    GenerationJob.completed_tasks: success_count,
                    GenerationJob.completed_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise JobStateError(f"Job {job_id} is not in progress")
        self.db.commit()

        job = self.get(job_id)
        self.db.refresh(job)

        log = logger.info if status == GenerationStatus.COMPLETED else logger.warning
        log(f"[Generation] Job {job_id} {status}: {success_count}/{total_tasks} succeeded")
        return job

    def get(self, job_id: str) -> Optional[GenerationJob]:
        return self.db.query(GenerationJob).filter(GenerationJob.id == job_id).first()

    def list_for_owner(self, owner_id: str, limit: int = 20) -> List[GenerationJob]:
        return (
            self.db.query(GenerationJob)
            .filter(GenerationJob.owner_id == owner_id)
            .order_by(GenerationJob.created_at.desc())
            .limit(limit)
            .all()
        )

    def active_job(self, owner_id: str) -> Optional[GenerationJob]:
        """Newest in_progress job for an owner."""
        return (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.owner_id == owner_id,
                GenerationJob.status == GenerationStatus.IN_PROGRESS,
            )
            .order_by(GenerationJob.created_at.desc())
            .first()
        )

    def find_orphans(self, older_than: timedelta, now: Optional[datetime] = None) -> List[GenerationJob]:
        """Jobs still in_progress whose creation is older than `older_than`."""
        cutoff = (now or utcnow()) - older_than
        return (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.status == GenerationStatus.IN_PROGRESS,
                GenerationJob.created_at < cutoff,
            )
            .order_by(GenerationJob.created_at)
            .all()
        )

    def close_orphan(self, job: GenerationJob) -> GenerationJob:
        """
        Finalize an orphaned job from the results it persisted.

        A job that lost only its finalization (every result landed) closes as
        completed; any shortfall closes it as failed.
        """
        persisted = min(len(job.results), job.total_tasks)
        logger.warning(
            f"[Generation] Closing orphaned job {job.id}: {persisted}/{job.total_tasks} persisted"
        )
        return self.close(job.id, persisted, job.total_tasks)


__all__ = ["JobStateError", "GenerationTracker"]

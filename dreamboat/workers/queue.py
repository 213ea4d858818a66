"""
Queue Management Utilities
RQ queue wrappers for enqueueing generation and sample jobs and reading
their status.
"""

import logging
from typing import Any, Dict, List, Optional

from rq import Queue
from rq.job import Job, JobStatus as RQJobStatus

from dreamboat.core.config import settings
from dreamboat.core.database import utcnow
from dreamboat.core.redis import get_redis, Queues

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Manages the named RQ queues.

    The Redis connection is opened lazily, so building a manager never
    touches the network.
    """

    def __init__(self, connection=None):
        self._queues: Dict[str, Queue] = {}
        self._redis = connection

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.DEFAULT) -> Queue:
        """Get or create a queue by name."""
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                name=queue_name,
                connection=self.redis,
                default_timeout=settings.JOB_TIMEOUT_GENERATION
            )
            logger.debug(f"Created queue: {queue_name}")

        return self._queues[queue_name]

    def enqueue_generation(
        self,
        owner_id: str,
        photo_ids: List[str],
        scenarios: List[str],
        payment_reference: Optional[str] = None,
        custom_prompts: Optional[Dict[str, str]] = None,
    ) -> Job:
        """
        Enqueue a full generation run.

        The job is not retried by RQ: the credit is redeemed inside it, and a
        failed run needs a fresh credit.
        """
        from dreamboat.workers.tasks import run_generation_task

        job = self.get_queue(Queues.GENERATION).enqueue(
            run_generation_task,
            owner_id=owner_id,
            photo_ids=photo_ids,
            scenarios=scenarios,
            payment_reference=payment_reference,
            custom_prompts=custom_prompts,
            job_timeout=settings.JOB_TIMEOUT_GENERATION,
            meta={
                "type": "generation",
                "owner_id": owner_id,
                "total_tasks": len(photo_ids) * len(scenarios),
                "created_at": utcnow().isoformat(),
            }
        )

        logger.info(f"Enqueued generation for {owner_id}: {job.id}")
        return job

    def enqueue_sample_generation(self, owner_id: str, photo_id: str, scenario: Optional[str] = None) -> Job:
        """Enqueue the detached preview generation for a validated photo."""
        from dreamboat.workers.tasks import run_sample_generation_task

        job = self.get_queue(Queues.SAMPLES).enqueue(
            run_sample_generation_task,
            owner_id=owner_id,
            photo_id=photo_id,
            scenario=scenario,
            job_timeout=settings.JOB_TIMEOUT_SAMPLE,
            meta={
                "type": "sample",
                "owner_id": owner_id,
                "photo_id": photo_id,
                "created_at": utcnow().isoformat(),
            }
        )

        logger.info(f"Enqueued sample generation for {owner_id} ({photo_id}): {job.id}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Fetch an RQ job by id, or None."""
        try:
            return Job.fetch(job_id, connection=self.redis)
        except Exception as e:
            logger.debug(f"Job not found: {job_id} - {e}")
            return None

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Status, timing, meta, and result or error of an RQ job."""
        job = self.get_job(job_id)

        if not job:
            return {
                "found": False,
                "status": "unknown",
                "message": f"Job {job_id} not found"
            }

        rq_status = job.get_status()
        status = {
            "found": True,
            "job_id": job.id,
            "status": str(rq_status.value if hasattr(rq_status, "value") else rq_status),
            "created_at": job.created_at.isoformat() if job.created_at else None,
            "started_at": job.started_at.isoformat() if job.started_at else None,
            "ended_at": job.ended_at.isoformat() if job.ended_at else None,
            "meta": job.meta or {}
        }

        if rq_status == RQJobStatus.FINISHED:
            status["result"] = job.return_value()

        if rq_status == RQJobStatus.FAILED:
            status["error"] = job.exc_info

        return status


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


__all__ = [
    "QueueManager",
    "get_queue_manager"
]

"""
Generator Worker
Runs a paid (photos x scenarios) generation job: reserve the credit, open the
job, synthesize every task in batches, close the job, and pick a default
profile set when the owner has none.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dreamboat.core.config import settings
from dreamboat.core.database import new_id, utcnow
from dreamboat.models.generation import GenerationStatus
from dreamboat.models.photo import SourcePhoto
from dreamboat.models.result import GeneratedResult
from dreamboat.services.payments import PaymentGate
from dreamboat.services.profile import ProfileSelector
from dreamboat.services.scenarios import build_prompt, identity_prompt
from dreamboat.services.tracker import GenerationTracker
from dreamboat.workers.base import ExhaustedRetriesError, NonRetryableError, RetryExecutor, TaskError
from dreamboat.workers.scheduler import BatchScheduler, Task, TaskOutcome, expand

logger = logging.getLogger(__name__)


class GenerationRequestError(NonRetryableError):
    """The request names photos that are missing, foreign, or not validated."""


@dataclass(frozen=True)
class PhotoRef:
    """Plain copy of the photo columns a task needs, read once before fan-out."""
    id: str
    storage_key: str

    @classmethod
    def of(cls, photo: SourcePhoto) -> "PhotoRef":
        return cls(id=photo.id, storage_key=photo.storage_key)


@dataclass
class GenerationSummary:
    """What one generation run produced."""
    job_id: str
    status: str
    total_tasks: int
    completed_tasks: int
    payment_credit_id: Optional[str] = None
    outcomes: List[TaskOutcome] = field(default_factory=list)
    auto_selected: List[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return self.status == GenerationStatus.FAILED and self.completed_tasks < self.total_tasks

    @property
    def failed_tasks(self) -> int:
        return self.total_tasks - self.completed_tasks

    def to_dict(self) -> Dict:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "partial_failure": self.partial_failure,
            "payment_credit_id": self.payment_credit_id,
            "auto_selected": self.auto_selected,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class GenerationWorker:
    """
    Unit of work for one task: prompt, synthesize with retries, persist.

    A task whose retries run out, or whose result row cannot be written,
    raises TaskError, which the scheduler turns into a failed outcome. Tasks
    share one session, so a failed write is rolled back before it can poison
    its siblings.
    """

    def __init__(self, db: Session, synthesizer, retry: RetryExecutor, owner_id: str, job_id: Optional[str]):
        self.db = db
        self.synthesizer = synthesizer
        self.retry = retry
        self.owner_id = owner_id
        self.job_id = job_id

    async def __call__(self, task: Task) -> GeneratedResult:
        prompt = build_prompt(task.scenario, task.custom_prompt)
        photo = task.photo

        try:
            response = await self.retry.execute(
                lambda: self.synthesizer.generate(photo.storage_key, identity_prompt(prompt))
            )
        except ExhaustedRetriesError as e:
            raise TaskError(e.last_message, task=task, details=e.details) from e
        except NonRetryableError as e:
            raise TaskError(str(e), task=task, details=e.details) from e

        result_id = new_id("res")
        result = GeneratedResult(
            id=result_id,
            owner_id=self.owner_id,
            generation_job_id=self.job_id,
            source_photo_id=photo.id,
            scenario=task.scenario,
            prompt=prompt,
            storage_key=response.result_key,
            provider_request_id=response.request_id,
            is_sample=self.job_id is None,
            created_at=utcnow(),
        )
        try:
            self.db.add(result)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[Task {task.label}] Could not store result: {e}")
            raise TaskError(f"Could not store result: {e}", task=task) from e

        logger.info(f"[Task {task.label}] Stored result {result_id}")
        return result


class GenerationPipeline:
    """
    End-to-end generation for one request.

    Collaborators are injected so the API, the RQ task and tests can each
    supply their own.
    """

    def __init__(
        self,
        db: Session,
        synthesizer,
        gate: PaymentGate,
        tracker: Optional[GenerationTracker] = None,
        selector: Optional[ProfileSelector] = None,
        scheduler: Optional[BatchScheduler] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        self.db = db
        self.synthesizer = synthesizer
        self.gate = gate
        self.tracker = tracker or GenerationTracker(db)
        self.selector = selector or ProfileSelector(db, slots=settings.PROFILE_SLOTS)
        self.scheduler = scheduler or BatchScheduler(batch_size=settings.GENERATION_BATCH_SIZE)
        self.retry = retry or RetryExecutor(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            name="image synthesis",
        )

    def load_photos(self, owner_id: str, photo_ids: Sequence[str]) -> List[SourcePhoto]:
        """
        Owner's photos in request order, each cleared for generation.

        Raises:
            GenerationRequestError: a photo is unknown, foreign, or unsettled
        """
        if not photo_ids:
            return []

        found = {
            p.id: p
            for p in self.db.query(SourcePhoto)
            .filter(SourcePhoto.owner_id == owner_id, SourcePhoto.id.in_(list(photo_ids)))
            .all()
        }
        missing = [pid for pid in photo_ids if pid not in found]
        if missing:
            raise GenerationRequestError(f"Photos not found: {', '.join(missing)}")

        unsettled = [pid for pid in photo_ids if not found[pid].is_settled]
        if unsettled:
            raise GenerationRequestError(
                f"Photos not validated: {', '.join(unsettled)}",
                details={"photo_ids": unsettled},
            )

        # Duplicate ids in the request collapse to one task row per photo
        ordered = []
        for pid in photo_ids:
            if found[pid] not in ordered:
                ordered.append(found[pid])
        return ordered

    async def run(
        self,
        owner_id: str,
        photo_ids: Sequence[str],
        scenarios: Sequence[str],
        payment_reference: Optional[str] = None,
        custom_prompts: Optional[Dict[str, str]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> GenerationSummary:
        """
        Generate one image per (photo, scenario).

        Raises:
            EmptyFanoutError: no photos or no scenarios (no credit is spent)
            GenerationRequestError: photo problems (no credit is spent)
            PaymentError: the credit could not be reserved
        """
        photos = self.load_photos(owner_id, photo_ids)
        tasks = expand([PhotoRef.of(p) for p in photos], list(scenarios), custom_prompts)

        credit = self.gate.reserve(owner_id, payment_reference)
        job = self.tracker.open(owner_id, credit.id, len(tasks), list(scenarios))

        logger.info(
            f"[Generation] {job.id}: {len(photos)} photo(s) x {len(scenarios)} scenario(s) = {len(tasks)} task(s)"
        )

        worker = GenerationWorker(self.db, self.synthesizer, self.retry, owner_id, job.id)
        try:
            outcomes = await self.scheduler.run(tasks, worker, on_batch_settled=on_progress)
        except BaseException:
            # Finalize from whatever was persisted before the run broke off
            self.db.rollback()
            self.tracker.close_orphan(self.tracker.get(job.id))
            raise

        success_count = sum(1 for o in outcomes if o.success)
        closed = self.tracker.close(job.id, success_count, len(tasks))

        auto_selected = []
        if not self.selector.has_selection(owner_id):
            auto_selected = [r.id for r in self.selector.auto_select(owner_id)]

        return GenerationSummary(
            job_id=closed.id,
            status=closed.status,
            total_tasks=closed.total_tasks,
            completed_tasks=closed.completed_tasks,
            payment_credit_id=credit.id,
            outcomes=outcomes,
            auto_selected=auto_selected,
        )


def has_sample(db: Session, owner_id: str) -> bool:
    return (
        db.query(GeneratedResult)
        .filter(GeneratedResult.owner_id == owner_id, GeneratedResult.is_sample.is_(True))
        .first()
        is not None
    )


async def generate_sample(
    db: Session,
    synthesizer,
    owner_id: str,
    photo: SourcePhoto,
    scenario: Optional[str] = None,
    retry: Optional[RetryExecutor] = None,
) -> GeneratedResult:
    """
    Generate the free preview image for a freshly validated photo.

    Not tied to a job or a credit.

    Raises:
        TaskError: synthesis failed on every attempt
    """
    retry = retry or RetryExecutor(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
        name="sample synthesis",
    )
    worker = GenerationWorker(db, synthesizer, retry, owner_id, job_id=None)
    task = Task(photo=PhotoRef.of(photo), scenario=scenario or settings.SAMPLE_SCENARIO)

    logger.info(f"[Sample] Generating {task.scenario} sample for {owner_id} from {photo.id}")
    return await worker(task)


__all__ = [
    "GenerationRequestError",
    "PhotoRef",
    "GenerationSummary",
    "GenerationWorker",
    "GenerationPipeline",
    "has_sample",
    "generate_sample",
]

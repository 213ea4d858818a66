"""
RQ Task Definitions
Task functions executed by the RQ workers.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from dreamboat.core.config import settings
from dreamboat.workers.base import BaseWorker, NonRetryableError

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run async code from a sync RQ job."""
    return asyncio.run(coro)


class GenerationTaskRunner(BaseWorker):
    """Runs the generation pipeline inside an RQ job, reporting progress to job meta."""

    TASK_NAME = "generation"

    def on_progress(self, done: int, total: int):
        self._update_progress(done / total if total else 1.0, f"{done}/{total} tasks settled")


class SampleTaskRunner(BaseWorker):
    TASK_NAME = "sample_generation"


def run_generation_task(
    owner_id: str,
    photo_ids: List[str],
    scenarios: List[str],
    payment_reference: Optional[str] = None,
    custom_prompts: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    RQ task for a full generation run.

    Returns:
        GenerationSummary as a dict
    """
    runner = GenerationTaskRunner()
    runner._log_start(owner_id=owner_id, photos=len(photo_ids), scenarios=scenarios)

    async def _generate():
        from dreamboat.core.database import SessionLocal
        from dreamboat.services.gemini_image import GeminiImageService
        from dreamboat.services.payments import PaymentGate, PaymentLedger
        from dreamboat.services.storage import StorageService
        from dreamboat.workers.generator import GenerationPipeline

        db = SessionLocal()
        try:
            storage = StorageService()
            pipeline = GenerationPipeline(
                db,
                synthesizer=GeminiImageService(storage_service=storage),
                gate=PaymentGate(PaymentLedger(db)),
            )
            summary = await pipeline.run(
                owner_id,
                photo_ids,
                scenarios,
                payment_reference=payment_reference,
                custom_prompts=custom_prompts,
                on_progress=runner.on_progress,
            )
            return summary.to_dict()
        finally:
            db.close()

    try:
        result = _run_async(_generate())
    except Exception as e:
        runner._log_error(e)
        raise

    runner._log_complete(
        f"Job {result['job_id']} {result['status']}: {result['completed_tasks']}/{result['total_tasks']}"
    )
    return result


def run_sample_generation_task(owner_id: str, photo_id: str, scenario: Optional[str] = None) -> Dict[str, Any]:
    """
    RQ task for the free preview image.

    Skips quietly when the owner already has a sample. Failures propagate so
    RQ records them in the failed-job registry.
    """
    runner = SampleTaskRunner()
    runner._log_start(owner_id=owner_id, photo_id=photo_id)

    async def _sample():
        from dreamboat.core.database import SessionLocal
        from dreamboat.models.photo import SourcePhoto
        from dreamboat.services.gemini_image import GeminiImageService
        from dreamboat.services.storage import StorageService
        from dreamboat.workers.generator import generate_sample, has_sample

        db = SessionLocal()
        try:
            if has_sample(db, owner_id):
                logger.info(f"[Sample] {owner_id} already has a sample, skipping")
                return {"owner_id": owner_id, "skipped": True}

            photo = (
                db.query(SourcePhoto)
                .filter(SourcePhoto.id == photo_id, SourcePhoto.owner_id == owner_id)
                .first()
            )
            if photo is None:
                raise NonRetryableError(f"Photo not found: {photo_id}")

            storage = StorageService()
            result = await generate_sample(
                db,
                GeminiImageService(storage_service=storage),
                owner_id,
                photo,
                scenario=scenario or settings.SAMPLE_SCENARIO,
            )
            return {
                "owner_id": owner_id,
                "skipped": False,
                "result_id": result.id,
                "storage_key": result.storage_key,
            }
        finally:
            db.close()

    try:
        result = _run_async(_sample())
    except Exception as e:
        runner._log_error(e)
        raise

    runner._log_complete(f"Sample for {owner_id}: {result.get('result_id', 'skipped')}")
    return result


__all__ = ["run_generation_task", "run_sample_generation_task"]

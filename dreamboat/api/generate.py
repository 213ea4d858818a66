"""
Generate API Routes
Starts paid (photos x scenarios) generation runs.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from dreamboat.api.deps import (
    get_generation_pipeline,
    get_owner_id,
    get_payment_gate,
    get_queues,
    payment_http_error,
)
from dreamboat.schemas.generate import GenerateRequest, GenerateResponse, QueuedGenerateResponse
from dreamboat.services.payments import PaymentError, PaymentGate
from dreamboat.workers.generator import GenerationPipeline, GenerationRequestError
from dreamboat.workers.queue import QueueManager
from dreamboat.workers.scheduler import EmptyFanoutError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
async def generate_images(
    request: GenerateRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: GenerationPipeline = Depends(get_generation_pipeline),
    gate: PaymentGate = Depends(get_payment_gate),
    queues: QueueManager = Depends(get_queues),
):
    """
    Generate one image per (photo, scenario).

    Inline runs return the job summary; a failed status with
    partial_failure set means some tasks failed and the rest were kept.
    Queued runs return the RQ job id to poll.
    """
    if request.queue:
        if gate.check_access(owner_id) is None:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail="No unredeemed payment found"
            )
        job = queues.enqueue_generation(
            owner_id,
            request.photo_ids,
            request.scenarios,
            payment_reference=request.payment_reference,
            custom_prompts=request.custom_prompts,
        )
        return QueuedGenerateResponse(
            rq_job_id=job.id,
            status="queued",
            message="Generation queued",
        )

    try:
        summary = await pipeline.run(
            owner_id,
            request.photo_ids,
            request.scenarios,
            payment_reference=request.payment_reference,
            custom_prompts=request.custom_prompts,
        )
    except (EmptyFanoutError, GenerationRequestError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentError as e:
        logger.info(f"[Generate] Payment gate refused {owner_id}: {e}")
        raise payment_http_error(e)

    return GenerateResponse(**summary.to_dict())

"""
API Dependencies
Common dependencies for FastAPI routes: database sessions, the request owner,
and the service graph built from them.
"""

from functools import lru_cache
from typing import Generator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from dreamboat.core.config import settings
from dreamboat.core.database import SessionLocal
from dreamboat.services.gemini_image import GeminiImageService
from dreamboat.services.payments import (
    AlreadyRedeemedError,
    InvalidReferenceError,
    NoCreditError,
    PaymentError,
    PaymentGate,
    PaymentLedger,
)
from dreamboat.services.photo_validator import PhotoValidator
from dreamboat.services.profile import ProfileSelector
from dreamboat.services.storage import StorageService
from dreamboat.services.tracker import GenerationTracker
from dreamboat.workers.generator import GenerationPipeline
from dreamboat.workers.queue import QueueManager, get_queue_manager
from dreamboat.workers.rate_limiter import get_rate_limiter


def get_db() -> Generator:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_owner_id(x_owner_id: str = Header(..., alias="X-Owner-Id")) -> str:
    """Authenticated owner, as forwarded by the auth layer."""
    owner_id = x_owner_id.strip()
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing owner")
    return owner_id


@lru_cache()
def get_storage() -> StorageService:
    return StorageService()


@lru_cache()
def get_gemini() -> GeminiImageService:
    return GeminiImageService(storage_service=get_storage())


def get_queues() -> QueueManager:
    return get_queue_manager()


def get_payment_gate(db: Session = Depends(get_db)) -> PaymentGate:
    return PaymentGate(PaymentLedger(db))


def get_tracker(db: Session = Depends(get_db)) -> GenerationTracker:
    return GenerationTracker(db)


def get_selector(db: Session = Depends(get_db)) -> ProfileSelector:
    return ProfileSelector(db, slots=settings.PROFILE_SLOTS)


def get_validator(
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    gemini: GeminiImageService = Depends(get_gemini),
) -> PhotoValidator:
    limiter = get_rate_limiter("gemini-vision", settings.VALIDATION_MIN_INTERVAL)
    return PhotoValidator(db, storage, analyzer=gemini, limiter=limiter)


def get_generation_pipeline(
    db: Session = Depends(get_db),
    gemini: GeminiImageService = Depends(get_gemini),
) -> GenerationPipeline:
    return GenerationPipeline(db, synthesizer=gemini, gate=PaymentGate(PaymentLedger(db)))


def payment_http_error(error: PaymentError) -> HTTPException:
    """Map a payment gating error to its HTTP status."""
    if isinstance(error, NoCreditError):
        code = status.HTTP_402_PAYMENT_REQUIRED
    elif isinstance(error, AlreadyRedeemedError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, InvalidReferenceError):
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(error))

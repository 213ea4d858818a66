"""
Photos API Routes
Source photo registration, validation and bypass.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from dreamboat.api.deps import get_db, get_owner_id, get_queues, get_storage, get_validator
from dreamboat.core.database import new_id, utcnow
from dreamboat.models.photo import SourcePhoto, ValidationStatus
from dreamboat.schemas.photo import (
    BypassRequest,
    BypassResponse,
    PhotoCreate,
    PhotoResponse,
    ValidationResponse,
)
from dreamboat.services.photo_validator import PhotoValidator
from dreamboat.services.storage import StorageService
from dreamboat.workers.generator import has_sample
from dreamboat.workers.queue import QueueManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _enqueue_sample(db: Session, queues: QueueManager, owner_id: str, photo_id: str) -> Optional[str]:
    """Queue the preview image unless the owner already has one."""
    if has_sample(db, owner_id):
        return None
    try:
        return queues.enqueue_sample_generation(owner_id, photo_id).id
    except RedisError as e:
        logger.warning(f"[Photos] Could not queue sample for {owner_id}: {e}")
        return None


@router.post("", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED)
async def create_photo(
    photo_in: PhotoCreate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    """Record a photo the client has uploaded to storage."""
    if not await storage.exists(photo_in.storage_key):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Nothing stored at {photo_in.storage_key}"
        )

    photo = SourcePhoto(
        id=new_id("photo"),
        owner_id=owner_id,
        storage_key=photo_in.storage_key,
        original_file_name=photo_in.original_file_name,
        content_type=photo_in.content_type,
        validation_status=ValidationStatus.PENDING,
        validation_warnings=[],
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(photo)
    db.commit()
    db.refresh(photo)
    return photo


@router.get("", response_model=List[PhotoResponse])
async def list_photos(
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
):
    """List the owner's photos, newest first."""
    return (
        db.query(SourcePhoto)
        .filter(SourcePhoto.owner_id == owner_id)
        .order_by(SourcePhoto.created_at.desc())
        .all()
    )


@router.post("/bypass", response_model=BypassResponse)
async def bypass_validation(
    request: BypassRequest,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    validator: PhotoValidator = Depends(get_validator),
    queues: QueueManager = Depends(get_queues),
):
    """Accept photos without validation."""
    count = validator.bypass(owner_id, request.photo_ids)
    sample_job_id = None
    if count:
        sample_job_id = _enqueue_sample(db, queues, owner_id, request.photo_ids[0])
    return BypassResponse(bypassed=count, sample_job_id=sample_job_id)


@router.post("/{photo_id}/validate", response_model=ValidationResponse)
async def validate_photo(
    photo_id: str,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    validator: PhotoValidator = Depends(get_validator),
    queues: QueueManager = Depends(get_queues),
):
    """Validate a photo against the content policy."""
    photo = (
        db.query(SourcePhoto)
        .filter(SourcePhoto.id == photo_id, SourcePhoto.owner_id == owner_id)
        .first()
    )
    if not photo:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Photo not found"
        )

    result = await validator.validate(photo.id, photo.storage_key)

    sample_job_id = None
    if result.is_valid:
        sample_job_id = _enqueue_sample(db, queues, owner_id, photo.id)

    return ValidationResponse(**result.to_dict(), sample_job_id=sample_job_id)

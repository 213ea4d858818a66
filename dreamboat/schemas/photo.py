"""
Photo Schemas
Pydantic models for source photo upload and validation.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class PhotoCreate(BaseModel):
    """Schema for recording an uploaded photo."""
    storage_key: str
    original_file_name: Optional[str] = None
    content_type: str = "image/jpeg"


class PhotoResponse(BaseModel):
    """Schema for source photo response."""
    id: str
    owner_id: str
    storage_key: str
    original_file_name: Optional[str]
    content_type: str
    validation_status: str
    validation_warnings: List[str] = []
    validated_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ValidationResponse(BaseModel):
    """Schema for a validation verdict."""
    photo_id: str
    is_valid: bool
    warnings: List[str] = []
    status: str
    error: Optional[str] = None
    details: Optional[Dict[str, bool]] = None  # Per-criterion flags
    sample_job_id: Optional[str] = None


class BypassRequest(BaseModel):
    """Schema for accepting photos without validation."""
    photo_ids: List[str] = Field(..., min_length=1)


class BypassResponse(BaseModel):
    bypassed: int
    sample_job_id: Optional[str] = None

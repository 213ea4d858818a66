"""
Profile Schemas
Pydantic models for profile selection.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class ResultResponse(BaseModel):
    """Schema for a generated result."""
    id: str
    generation_job_id: Optional[str]
    source_photo_id: str
    scenario: str
    storage_key: str
    profile_order: Optional[int]
    is_sample: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SelectionItem(BaseModel):
    result_id: str
    order: int = Field(..., ge=1)


class SelectionsUpdate(BaseModel):
    """Schema for replacing the whole selection."""
    selections: List[SelectionItem] = []


class ToggleRequest(BaseModel):
    """Schema for moving one result into or out of a slot."""
    result_id: str
    order: Optional[int] = Field(None, ge=1)

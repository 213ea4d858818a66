"""
Generate Schemas
Pydantic models for generation API requests and responses.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Schema for generation request."""
    photo_ids: List[str] = Field(..., min_length=1)
    scenarios: List[str] = Field(..., min_length=1)
    payment_reference: Optional[str] = None  # Credit id or store transaction id
    custom_prompts: Dict[str, str] = {}  # Scenario -> prompt override
    queue: bool = False  # Run on the generation RQ queue instead of inline


class TaskOutcomeResponse(BaseModel):
    """Settled result of one (photo, scenario) task."""
    photo_id: str
    scenario: str
    success: bool
    result_id: Optional[str] = None
    error: Optional[str] = None


class GenerateResponse(BaseModel):
    """Schema for an inline generation run."""
    job_id: str
    status: str
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    partial_failure: bool
    payment_credit_id: Optional[str] = None
    auto_selected: List[str] = []
    outcomes: List[TaskOutcomeResponse] = []


class QueuedGenerateResponse(BaseModel):
    """Schema for a generation run handed to the RQ worker."""
    rq_job_id: str
    status: str
    message: str

"""
Job Schemas
Pydantic models for job API responses.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class JobResponse(BaseModel):
    """Schema for generation job response."""
    id: str
    owner_id: str
    payment_credit_id: Optional[str]
    status: str
    total_tasks: int
    completed_tasks: int
    scenarios: List[str] = []
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class QueueJobStatusResponse(BaseModel):
    """Schema for RQ job status."""
    found: bool
    status: str
    job_id: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    meta: Dict[str, Any] = {}
    result: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None

"""
Payment Schemas
Pydantic models for payment credit queries.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class PaymentCreditResponse(BaseModel):
    """Schema for payment credit response."""
    id: str
    transaction_id: str
    amount: int
    currency: str
    redeemed: bool
    paid_at: datetime
    redeemed_at: Optional[datetime]

    class Config:
        from_attributes = True


class AccessResponse(BaseModel):
    """Whether the owner can start a generation run."""
    has_access: bool
    credit: Optional[PaymentCreditResponse] = None

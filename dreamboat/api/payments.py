"""
Payments API Routes
Read-only view of the owner's payment credits.
"""

from typing import List

from fastapi import APIRouter, Depends

from dreamboat.api.deps import get_owner_id, get_payment_gate
from dreamboat.schemas.payment import AccessResponse, PaymentCreditResponse
from dreamboat.services.payments import PaymentGate

router = APIRouter()


@router.get("/access", response_model=AccessResponse)
async def check_access(
    owner_id: str = Depends(get_owner_id),
    gate: PaymentGate = Depends(get_payment_gate),
):
    """Whether the owner holds an unredeemed credit."""
    credit = gate.check_access(owner_id)
    return AccessResponse(
        has_access=credit is not None,
        credit=PaymentCreditResponse.model_validate(credit) if credit else None,
    )


@router.get("/history", response_model=List[PaymentCreditResponse])
async def payment_history(
    owner_id: str = Depends(get_owner_id),
    gate: PaymentGate = Depends(get_payment_gate),
):
    """All credits, newest first."""
    return gate.ledger.history(owner_id)

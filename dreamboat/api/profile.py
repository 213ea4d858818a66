"""
Profile API Routes
The owner's curated set of up to six results.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from dreamboat.api.deps import get_owner_id, get_selector
from dreamboat.schemas.profile import ResultResponse, SelectionsUpdate, ToggleRequest
from dreamboat.services.profile import ProfileSelector, SelectionError

router = APIRouter()


@router.get("/selections", response_model=List[ResultResponse])
async def get_selections(
    owner_id: str = Depends(get_owner_id),
    selector: ProfileSelector = Depends(get_selector),
):
    """Selected results in slot order."""
    return selector.selected(owner_id)


@router.put("/selections", response_model=List[ResultResponse])
async def replace_selections(
    update: SelectionsUpdate,
    owner_id: str = Depends(get_owner_id),
    selector: ProfileSelector = Depends(get_selector),
):
    """Replace the whole selection."""
    try:
        return selector.set_selections(
            owner_id, [(item.result_id, item.order) for item in update.selections]
        )
    except SelectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/toggle", response_model=ResultResponse)
async def toggle_selection(
    request: ToggleRequest,
    owner_id: str = Depends(get_owner_id),
    selector: ProfileSelector = Depends(get_selector),
):
    """Put one result into a slot, or take it out with a null order."""
    try:
        return selector.toggle(owner_id, request.result_id, request.order)
    except SelectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

from typing import Optional

from fastapi import APIRouter, Depends

from tripsplit.core.auth import CurrentUser, get_current_user
from tripsplit.schemas.debt import CreditorDetailResponse, DebtOverviewResponse
from tripsplit.services.debt_service import DebtService
from tripsplit.services.presenter import present_creditor_detail, present_overview

router = APIRouter()


@router.get("/overview", response_model=DebtOverviewResponse)
async def get_overview(
    trip_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user)
):
    """What the current user owes, has paid, and must confirm"""
    overview = await DebtService.get_overview(current_user.id, trip_id)
    return present_overview(overview)


@router.get("/creditors/{creditor_id}", response_model=CreditorDetailResponse)
async def get_creditor_detail(
    creditor_id: str,
    trip_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Balance and payment history between the current user and one creditor"""
    detail = await DebtService.get_creditor_detail(current_user.id, creditor_id, trip_id)
    return present_creditor_detail(detail)

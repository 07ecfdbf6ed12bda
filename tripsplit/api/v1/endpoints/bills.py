from fastapi import APIRouter, Depends

from tripsplit.core.auth import CurrentUser, get_current_user
from tripsplit.schemas.settlement import BillCreate, BillResponse
from tripsplit.services.bill_service import BillService

router = APIRouter()


@router.post("", response_model=BillResponse, status_code=201)
async def create_bill(
    bill_in: BillCreate,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Add a bill paid by the current user and split it between participants"""
    return await BillService.create_bill(bill_in, current_user.id)

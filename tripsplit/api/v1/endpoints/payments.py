from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from tripsplit.core.auth import CurrentUser, get_current_user
from tripsplit.schemas.settlement import (
    DecisionResponse,
    PaymentSubmitResponse,
    PendingProofResponse,
)
from tripsplit.services.debt_service import DebtService
from tripsplit.services.settlement_service import SettlementService

router = APIRouter()

SettlementKind = Literal["payment", "payment_proof"]


@router.get("/pending", response_model=List[PendingProofResponse])
async def list_pending(
    current_user: CurrentUser = Depends(get_current_user)
):
    """Slips waiting for the current user's confirmation"""
    return await DebtService.pending_proofs(current_user.id)


@router.post("", response_model=PaymentSubmitResponse, status_code=201)
async def submit_payment(
    bill_id: str = Form(...),
    amount: float = Form(...),
    slip: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Record a payment against the current user's share of a bill"""
    image = await slip.read() if slip else None
    return await SettlementService.submit_payment(
        current_user.id,
        bill_id,
        amount,
        image=image,
        filename=slip.filename if slip else None,
    )


@router.post("/{kind}/{record_id}/approve", response_model=DecisionResponse)
async def approve_payment(
    kind: SettlementKind,
    record_id: str,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Confirm a payment the current user received"""
    return await SettlementService.approve(kind, record_id, current_user.id)


@router.post("/{kind}/{record_id}/reject", response_model=DecisionResponse)
async def reject_payment(
    kind: SettlementKind,
    record_id: str,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Turn down a payment the current user did not receive"""
    return await SettlementService.reject(kind, record_id, current_user.id)

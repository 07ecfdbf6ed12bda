from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tripsplit.models.settlement import SettlementStatus, SlipStatus


EventKey = Tuple[str, str, Optional[float]]


class SettlementEvent(BaseModel):
    """One "payment happened" signal after joining it to its bill."""
    source: str  # "payment_proof" or "payment"
    record_id: str
    bill_id: str
    debtor_user_id: str
    creditor_id: str
    amount: Optional[float] = None
    status: SettlementStatus
    submission_id: Optional[str] = None
    trip_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> EventKey:
        """Best-effort fingerprint shared by both records of one event."""
        return (self.bill_id, self.debtor_user_id, self.amount)


class SlipVerification(BaseModel):
    """Advisory OCR comparison; informs a human approver, nothing more."""
    status: SlipStatus
    expected_amount: Optional[float] = None
    extracted_amount: Optional[float] = None
    difference: Optional[float] = None
    date_string: Optional[str] = None


class PaymentSubmitResponse(BaseModel):
    payment_id: str
    proof_id: str
    submission_id: str
    bill_share_id: str
    amount: float
    slip_url: Optional[str] = None
    verification: Optional[SlipVerification] = None


class DecisionResponse(BaseModel):
    """Outcome of an approve/reject call."""
    kind: str
    record_id: str
    status: SettlementStatus
    twin_record_id: Optional[str] = None
    bill_share_id: Optional[str] = None
    share_status: Optional[str] = None
    share_amount_paid: Optional[float] = None
    overpaid_by: float = 0.0
    anomaly: bool = False


class PendingProofResponse(BaseModel):
    id: str
    bill_id: str
    debtor_user_id: str
    amount: Optional[float] = None
    slip_url: Optional[str] = None
    ocr_amount: Optional[float] = None
    ocr_status: Optional[SlipStatus] = None
    created_at: datetime

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class BillCreate(BaseModel):
    trip_id: str
    total_amount: float = Field(..., gt=0)
    participant_ids: list[str] = Field(..., min_length=1)
    base_per_person: Optional[float] = None
    extras: dict[str, float] = {}
    note: Optional[str] = None
    category_id: Optional[str] = None


class BillShareResponse(BaseModel):
    id: str
    user_id: str
    amount_share: float
    status: str


class BillResponse(BaseModel):
    id: str
    trip_id: Optional[str] = None
    total_amount: float
    paid_by_user_id: str
    note: Optional[str] = None
    created_at: datetime
    shares: list[BillShareResponse] = []

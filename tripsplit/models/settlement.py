from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from tripsplit.models.base import MongoModel, utcnow


class SettlementStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SlipStatus(str, Enum):
    MATCHED = "matched"
    MISMATCH = "mismatch"
    ERROR = "error"


class Payment(MongoModel):
    """A debtor's payment attempt against one bill share."""
    bill_share_id: str
    amount: float
    method: str = "qr"
    status: SettlementStatus = SettlementStatus.PENDING
    slip_url: Optional[str] = None
    submission_id: Optional[str] = None  # absent on legacy rows
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PaymentProof(MongoModel):
    """Slip evidence for the same event a Payment records."""
    bill_id: str
    creditor_id: str
    debtor_user_id: str
    amount: Optional[float] = None
    image_uri_local: Optional[str] = None
    slip_qr: Optional[str] = None
    status: SettlementStatus = SettlementStatus.PENDING
    submission_id: Optional[str] = None
    # Advisory OCR annotation, kept for audit
    ocr_amount: Optional[float] = None
    ocr_status: Optional[SlipStatus] = None
    created_at: datetime = Field(default_factory=utcnow)

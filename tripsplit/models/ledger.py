"""
Ledger documents - bills, per-participant shares and the denormalized
debt summary.

- A bill is created together with one share per participant
- Shares are immutable except for status / amount_paid / is_confirmed
- The creditor of every share is the bill's payer
- debt_summary is a running total per (trip, debtor, creditor); it may be
  stale or absent and is never authoritative on its own
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from tripsplit.models.base import MongoModel, utcnow


class ShareStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class DebtStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    SETTLED = "settled"


class Bill(MongoModel):
    trip_id: Optional[str] = None
    total_amount: float
    paid_by_user_id: str  # creditor
    note: Optional[str] = None
    category_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class BillShare(MongoModel):
    """
    One debtor's portion of a bill.

    Invariant: amount_paid may exceed amount_share only as a data anomaly;
    it is reported, never clamped.
    """
    bill_id: str
    user_id: str  # debtor
    amount_share: float
    status: ShareStatus = ShareStatus.UNPAID
    amount_paid: float = 0.0
    is_confirmed: bool = False
    updated_at: datetime = Field(default_factory=utcnow)

    def overpaid_by(self) -> float:
        return max(self.amount_paid - self.amount_share, 0.0)


class DebtSummary(MongoModel):
    trip_id: Optional[str] = None
    debtor_user: str
    creditor_user: str
    amount_owed: float = 0.0
    amount_paid: float = 0.0
    status: DebtStatus = DebtStatus.PENDING
    last_update: datetime = Field(default_factory=utcnow)

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from tripsplit.schemas.settlement import SettlementEvent


class TripOutstanding(BaseModel):
    trip_id: Optional[str] = None
    total: float = 0.0
    bill_count: int = 0
    representative_bill_id: Optional[str] = None


class CreditorOutstanding(BaseModel):
    creditor_id: str
    total: float = 0.0
    bill_count: int = 0
    trip_count: int = 0
    last_activity: Optional[datetime] = None
    trips: List[TripOutstanding] = []


class CreditorSettlement(BaseModel):
    creditor_id: str
    pending: float = 0.0
    confirmed: float = 0.0


class DebtOverview(BaseModel):
    """Aggregated balances for one user; cached as JSON."""
    user_id: str
    trip_id: Optional[str] = None
    outstanding: List[CreditorOutstanding] = []
    paid: List[CreditorSettlement] = []
    awaiting_confirmation: List[SettlementEvent] = []
    generated_at: datetime


# Display shapes: amounts rounded to 2 decimal places

class CreditorOutstandingResponse(BaseModel):
    creditor_id: str
    total: float
    bill_count: int
    trip_count: int
    last_activity: Optional[datetime] = None
    trips: List[TripOutstanding] = []


class CreditorSettlementResponse(BaseModel):
    creditor_id: str
    pending: float
    confirmed: float


class AwaitingConfirmationResponse(BaseModel):
    source: str
    record_id: str
    bill_id: str
    debtor_user_id: str
    amount: Optional[float] = None
    trip_id: Optional[str] = None
    created_at: Optional[datetime] = None


class DebtOverviewResponse(BaseModel):
    user_id: str
    trip_id: Optional[str] = None
    outstanding_total: float
    outstanding: List[CreditorOutstandingResponse]
    paid: List[CreditorSettlementResponse]
    awaiting_confirmation: List[AwaitingConfirmationResponse]
    generated_at: datetime


class CreditorDetail(BaseModel):
    """Everything between one debtor and one creditor."""
    user_id: str
    creditor_id: str
    trip_id: Optional[str] = None
    outstanding: Optional[CreditorOutstanding] = None
    settlement: CreditorSettlement
    events: List[SettlementEvent] = []


class SettlementEventResponse(BaseModel):
    source: str
    record_id: str
    bill_id: str
    amount: Optional[float] = None
    status: str
    trip_id: Optional[str] = None
    created_at: Optional[datetime] = None


class CreditorDetailResponse(BaseModel):
    creditor_id: str
    trip_id: Optional[str] = None
    outstanding_total: float
    bill_count: int
    trips: List[TripOutstanding] = []
    pending: float
    confirmed: float
    events: List[SettlementEventResponse]

"""
LedgerRepository - reads and writes against the settlement collections.

Read side (one snapshot per user, optionally narrowed to a trip):
1. every bill_share the user owes, and the bills behind them
2. every bill the user paid for, and the shares other people owe on them
3. pending / approved payment_proof rows where the user is either party
4. pending / approved payment rows on any share loaded above
5. debt_summary rows involving the user

A failed query raises DataUnavailableError; an empty result is not an error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from tripsplit.core.exceptions import DataUnavailableError
from tripsplit.models.ledger import Bill, BillShare, DebtStatus, DebtSummary, ShareStatus
from tripsplit.models.settlement import Payment, PaymentProof, SettlementStatus

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

OPEN_STATUSES = [SettlementStatus.PENDING.value, SettlementStatus.APPROVED.value]


@dataclass
class LedgerSnapshot:
    user_id: str
    trip_id: Optional[str] = None
    unpaid_shares: List[Tuple[BillShare, Bill]] = field(default_factory=list)
    proofs: List[PaymentProof] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    shares_by_id: Dict[str, BillShare] = field(default_factory=dict)
    bills_by_id: Dict[str, Bill] = field(default_factory=dict)
    summaries: List[DebtSummary] = field(default_factory=list)


def _parse(model: Type[M], docs: Iterable[dict]) -> List[M]:
    parsed = []
    for doc in docs:
        try:
            parsed.append(model.model_validate(doc))
        except ValidationError as e:
            logger.warning("Skipping malformed %s %s: %s", model.__name__, doc.get("_id"), e)
    return parsed


class LedgerRepository:
    """Repository for bills, shares, payments, proofs and debt summaries."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.bills = db["bill"]
        self.shares = db["bill_share"]
        self.payments = db["payment"]
        self.proofs = db["payment_proof"]
        self.summaries = db["debt_summary"]

    async def _find(self, collection, query: dict) -> List[dict]:
        try:
            return await collection.find(query).to_list(None)
        except PyMongoError as e:
            logger.error("Query on %s failed: %s", collection.name, e)
            raise DataUnavailableError(f"Could not read {collection.name}") from e

    async def _find_one(self, collection, query: dict) -> Optional[dict]:
        try:
            return await collection.find_one(query)
        except PyMongoError as e:
            logger.error("Lookup on %s failed: %s", collection.name, e)
            raise DataUnavailableError(f"Could not read {collection.name}") from e

    # ===== SNAPSHOT =====

    async def read_snapshot(self, user_id: str, trip_id: Optional[str] = None) -> LedgerSnapshot:
        snapshot = LedgerSnapshot(user_id=user_id, trip_id=trip_id)

        debtor_shares = _parse(BillShare, await self._find(self.shares, {"user_id": user_id}))

        creditor_query = {"paid_by_user_id": user_id}
        if trip_id:
            creditor_query["trip_id"] = trip_id
        creditor_bills = _parse(Bill, await self._find(self.bills, creditor_query))

        bill_ids = list({s.bill_id for s in debtor_shares} - {b.id for b in creditor_bills})
        debtor_bills = []
        if bill_ids:
            debtor_bills = _parse(Bill, await self._find(self.bills, {"_id": {"$in": bill_ids}}))

        for bill in creditor_bills + debtor_bills:
            if trip_id and bill.trip_id != trip_id:
                continue
            snapshot.bills_by_id[bill.id] = bill

        creditor_shares = []
        if creditor_bills:
            creditor_shares = _parse(BillShare, await self._find(
                self.shares, {"bill_id": {"$in": [b.id for b in creditor_bills]}}
            ))

        for share in debtor_shares + creditor_shares:
            if share.bill_id in snapshot.bills_by_id:
                snapshot.shares_by_id[share.id] = share
            elif not trip_id:
                logger.warning("bill_share %s references missing bill %s", share.id, share.bill_id)

        snapshot.unpaid_shares = [
            (share, snapshot.bills_by_id[share.bill_id])
            for share in debtor_shares
            if share.status == ShareStatus.UNPAID and share.bill_id in snapshot.bills_by_id
        ]

        proofs = _parse(PaymentProof, await self._find(self.proofs, {
            "$or": [{"creditor_id": user_id}, {"debtor_user_id": user_id}],
            "status": {"$in": OPEN_STATUSES},
        }))
        if trip_id:
            proofs = [p for p in proofs if p.bill_id in snapshot.bills_by_id]
        snapshot.proofs = proofs

        if snapshot.shares_by_id:
            snapshot.payments = _parse(Payment, await self._find(self.payments, {
                "bill_share_id": {"$in": list(snapshot.shares_by_id)},
                "status": {"$in": OPEN_STATUSES},
            }))

        summary_query = {"$or": [{"debtor_user": user_id}, {"creditor_user": user_id}]}
        if trip_id:
            summary_query["trip_id"] = trip_id
        snapshot.summaries = _parse(DebtSummary, await self._find(self.summaries, summary_query))

        return snapshot

    # ===== LOOKUPS =====

    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        doc = await self._find_one(self.bills, {"_id": bill_id})
        return Bill.model_validate(doc) if doc else None

    async def get_share(self, share_id: str) -> Optional[BillShare]:
        doc = await self._find_one(self.shares, {"_id": share_id})
        return BillShare.model_validate(doc) if doc else None

    async def find_share(self, bill_id: str, user_id: str) -> Optional[BillShare]:
        doc = await self._find_one(self.shares, {"bill_id": bill_id, "user_id": user_id})
        return BillShare.model_validate(doc) if doc else None

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        doc = await self._find_one(self.payments, {"_id": payment_id})
        return Payment.model_validate(doc) if doc else None

    async def get_proof(self, proof_id: str) -> Optional[PaymentProof]:
        doc = await self._find_one(self.proofs, {"_id": proof_id})
        return PaymentProof.model_validate(doc) if doc else None

    async def payments_for_share(self, share_id: str) -> List[Payment]:
        return _parse(Payment, await self._find(self.payments, {"bill_share_id": share_id}))

    async def proofs_for_share(self, bill_id: str, debtor_id: str) -> List[PaymentProof]:
        return _parse(PaymentProof, await self._find(
            self.proofs, {"bill_id": bill_id, "debtor_user_id": debtor_id}
        ))

    async def pending_proofs_for_creditor(self, creditor_id: str) -> List[PaymentProof]:
        try:
            docs = await self.proofs.find({
                "creditor_id": creditor_id,
                "status": SettlementStatus.PENDING.value,
            }).sort("created_at", -1).to_list(None)
        except PyMongoError as e:
            raise DataUnavailableError("Could not read payment_proof") from e
        return _parse(PaymentProof, docs)

    async def shares_owed_to(self, creditor_id: str, debtor_id: str, trip_id: Optional[str]) -> List[BillShare]:
        query = {"paid_by_user_id": creditor_id}
        if trip_id:
            query["trip_id"] = trip_id
        bills = await self._find(self.bills, query)
        if not bills:
            return []
        return _parse(BillShare, await self._find(self.shares, {
            "bill_id": {"$in": [b["_id"] for b in bills]},
            "user_id": debtor_id,
        }))

    # ===== WRITES =====

    async def insert_submission(self, payment: Payment, proof: PaymentProof) -> None:
        try:
            await self.payments.insert_one(payment.to_document())
            await self.proofs.insert_one(proof.to_document())
        except PyMongoError as e:
            raise DataUnavailableError("Could not record payment") from e

    async def transition(
        self,
        kind: str,
        record_id: str,
        new_status: SettlementStatus,
    ) -> Optional[dict]:
        """
        Move a payment or proof from pending to new_status.

        Returns the updated document, or None when the record is missing or
        no longer pending.
        """
        collection = self.payments if kind == "payment" else self.proofs
        update = {"status": new_status.value}
        if kind == "payment":
            update["updated_at"] = datetime.now(timezone.utc)
        try:
            return await collection.find_one_and_update(
                {"_id": record_id, "status": SettlementStatus.PENDING.value},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DataUnavailableError(f"Could not update {kind}") from e

    async def update_share_settlement(
        self, share_id: str, amount_paid: float, settled: bool
    ) -> Optional[BillShare]:
        try:
            doc = await self.shares.find_one_and_update(
                {"_id": share_id},
                {"$set": {
                    "amount_paid": amount_paid,
                    "status": (ShareStatus.PAID if settled else ShareStatus.UNPAID).value,
                    "is_confirmed": settled,
                    "updated_at": datetime.now(timezone.utc),
                }},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DataUnavailableError("Could not update bill_share") from e
        return BillShare.model_validate(doc) if doc else None

    async def ensure_debt_summary(
        self, trip_id: Optional[str], debtor_id: str, creditor_id: str, amount_owed: float
    ) -> None:
        """Create the pair's summary row if none exists yet."""
        summary = DebtSummary(
            trip_id=trip_id,
            debtor_user=debtor_id,
            creditor_user=creditor_id,
            amount_owed=amount_owed,
        )
        doc = summary.to_document()
        key = {"trip_id": trip_id, "debtor_user": debtor_id, "creditor_user": creditor_id}
        try:
            await self.summaries.update_one(
                key,
                {"$setOnInsert": {k: v for k, v in doc.items() if k not in key}},
                upsert=True,
            )
        except PyMongoError as e:
            raise DataUnavailableError("Could not write debt_summary") from e

    async def upsert_debt_summary(
        self,
        trip_id: Optional[str],
        debtor_id: str,
        creditor_id: str,
        amount_owed: float,
        amount_paid: float,
    ) -> DebtStatus:
        if amount_paid <= 0:
            status = DebtStatus.PENDING
        elif amount_paid >= amount_owed - 0.01:
            status = DebtStatus.SETTLED
        else:
            status = DebtStatus.PARTIAL

        key = {"trip_id": trip_id, "debtor_user": debtor_id, "creditor_user": creditor_id}
        try:
            await self.summaries.update_one(
                key,
                {
                    "$set": {
                        "amount_owed": amount_owed,
                        "amount_paid": amount_paid,
                        "status": status.value,
                        "last_update": datetime.now(timezone.utc),
                    },
                    "$setOnInsert": {"_id": DebtSummary(**key).id},
                },
                upsert=True,
            )
        except PyMongoError as e:
            raise DataUnavailableError("Could not write debt_summary") from e
        return status

    async def insert_bill(self, bill: Bill, shares: List[BillShare]) -> None:
        try:
            await self.bills.insert_one(bill.to_document())
            if shares:
                await self.shares.insert_many([s.to_document() for s in shares])
        except PyMongoError as e:
            raise DataUnavailableError("Could not create bill") from e

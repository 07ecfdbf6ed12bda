"""
Settlement writes - a debtor submits a payment, the creditor decides it.

One submission writes a payment and a payment_proof sharing a fresh
submission_id. Deciding either record moves its twin the same way, so the
reconciler sees one event whichever record it meets first.
"""

import logging
from typing import List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from tripsplit.core.exceptions import (
    DataUnavailableError,
    PermissionDeniedError,
    RecordNotFoundError,
    SettlementConflictError,
    SettlementValidationError,
)
from tripsplit.db.mongo import get_database
from tripsplit.models.base import new_id
from tripsplit.models.ledger import Bill, BillShare
from tripsplit.models.settlement import Payment, PaymentProof, SettlementStatus
from tripsplit.repositories.ledger_repo import OPEN_STATUSES, LedgerRepository
from tripsplit.schemas.settlement import DecisionResponse, PaymentSubmitResponse, SlipVerification
from tripsplit.services.aggregator import share_status_for
from tripsplit.services.blob_store import BlobStore, content_type_for
from tripsplit.services.cache import cache_hooks
from tripsplit.services.inflight import settlement_guard
from tripsplit.services.notification_service import NotificationService
from tripsplit.services.ocr_client import ocr_client
from tripsplit.services.reconciler import approved_total, reconcile
from tripsplit.services.slip_matcher import verify_slip

logger = logging.getLogger(__name__)

DECIDABLE_KINDS = ("payment", "payment_proof")


async def check_slip(image: bytes, mime_type: str, expected: float) -> SlipVerification:
    """OCR the slip off the event loop and compare it with the claimed amount."""
    result = await run_in_threadpool(ocr_client.recognize, image, mime_type)
    if not result.ok:
        logger.info("Slip OCR unavailable: %s", result.error)
    return verify_slip(expected, result.text if result.ok else None)


def _pick_twin(candidates, submission_id: Optional[str], amount: Optional[float]):
    """The pending record written alongside the one being decided."""
    pending = [c for c in candidates if c.status == SettlementStatus.PENDING]
    if submission_id:
        for candidate in pending:
            if candidate.submission_id == submission_id:
                return candidate
    for candidate in pending:
        if not candidate.submission_id and candidate.amount == amount:
            return candidate
    return None


class SettlementService:
    @staticmethod
    async def submit_payment(
        debtor_id: str,
        bill_id: str,
        amount: float,
        image: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> PaymentSubmitResponse:
        if amount is None or amount <= 0:
            raise SettlementValidationError("Amount must be greater than zero")

        db = await get_database()
        repo = LedgerRepository(db)

        bill = await repo.get_bill(bill_id)
        if not bill:
            raise RecordNotFoundError(f"Bill {bill_id} not found")
        creditor_id = bill.paid_by_user_id
        if creditor_id == debtor_id:
            raise SettlementValidationError("Cannot pay a bill you paid for")

        share = await repo.find_share(bill_id, debtor_id)
        if not share:
            raise RecordNotFoundError(f"No share of bill {bill_id} for this user")

        async with settlement_guard.hold(f"bill_share:{share.id}"):
            submission_id = new_id()
            slip_path = None
            slip_url = None
            verification = None

            if image:
                ext, content_type = content_type_for(filename)
                slip_path = f"slips/{bill_id}/{debtor_id}/{submission_id}.{ext}"
                try:
                    slip_url = await BlobStore(db).upload(slip_path, image, content_type)
                except ValueError as e:
                    raise SettlementValidationError(str(e)) from e
                verification = await check_slip(image, content_type, amount)

            payment = Payment(
                bill_share_id=share.id,
                amount=amount,
                slip_url=slip_url,
                submission_id=submission_id,
            )
            proof = PaymentProof(
                bill_id=bill_id,
                creditor_id=creditor_id,
                debtor_user_id=debtor_id,
                amount=amount,
                image_uri_local=slip_path,
                submission_id=submission_id,
                ocr_amount=verification.extracted_amount if verification else None,
                ocr_status=verification.status if verification else None,
            )
            try:
                await repo.insert_submission(payment, proof)
            except DataUnavailableError:
                if slip_path:
                    await BlobStore(db).delete(slip_path)
                raise
            await repo.ensure_debt_summary(bill.trip_id, debtor_id, creditor_id, share.amount_share)

        logger.info(
            "Payment %s submitted: %s -> %s, %.2f on bill %s",
            submission_id, debtor_id, creditor_id, amount, bill_id,
        )
        await NotificationService.notify(
            [creditor_id],
            "Payment submitted",
            f"A payment of {amount:.2f} is waiting for your confirmation",
            kind="payment_submitted",
            trip_id=bill.trip_id,
        )
        cache_hooks.on_write([debtor_id, creditor_id], [bill.trip_id])

        return PaymentSubmitResponse(
            payment_id=payment.id,
            proof_id=proof.id,
            submission_id=submission_id,
            bill_share_id=share.id,
            amount=amount,
            slip_url=slip_url,
            verification=verification,
        )

    @staticmethod
    async def approve(kind: str, record_id: str, actor_id: str) -> DecisionResponse:
        return await SettlementService.decide(kind, record_id, actor_id, SettlementStatus.APPROVED)

    @staticmethod
    async def reject(kind: str, record_id: str, actor_id: str) -> DecisionResponse:
        return await SettlementService.decide(kind, record_id, actor_id, SettlementStatus.REJECTED)

    @staticmethod
    async def decide(
        kind: str,
        record_id: str,
        actor_id: str,
        new_status: SettlementStatus,
    ) -> DecisionResponse:
        if kind not in DECIDABLE_KINDS:
            raise SettlementValidationError(f"Unknown settlement kind: {kind}")

        db = await get_database()
        repo = LedgerRepository(db)
        record, share, bill = await SettlementService._resolve(repo, kind, record_id)

        debtor_id = share.user_id if share else record.debtor_user_id
        if actor_id != bill.paid_by_user_id:
            raise PermissionDeniedError("Only the creditor can approve or reject this payment")

        response = DecisionResponse(
            kind=kind,
            record_id=record_id,
            status=new_status,
            bill_share_id=share.id if share else None,
        )

        async with settlement_guard.hold(f"{kind}:{record_id}"):
            updated = await repo.transition(kind, record_id, new_status)
            if updated is None:
                if record.status == new_status:
                    # an earlier decision may have stopped before the twin or share
                    logger.info("Re-applying %s %s %s", kind, record_id, new_status.value)
                    await SettlementService._follow_through(repo, kind, record, share, bill, new_status, response)
                    cache_hooks.on_write([debtor_id, bill.paid_by_user_id], [bill.trip_id])
                raise SettlementConflictError(f"{kind} {record_id} is no longer pending")

            try:
                await SettlementService._follow_through(repo, kind, record, share, bill, new_status, response)
            except DataUnavailableError:
                logger.error(
                    "%s %s is %s but its twin or bill_share %s was not updated; "
                    "deciding it again re-applies the change",
                    kind, record_id, new_status.value, share.id if share else None,
                )
                cache_hooks.on_write([debtor_id, bill.paid_by_user_id], [bill.trip_id])
                raise

        logger.info("%s %s %s by %s", kind, record_id, new_status.value, actor_id)
        await NotificationService.notify(
            [debtor_id],
            "Payment approved" if new_status == SettlementStatus.APPROVED else "Payment rejected",
            f"Your payment on bill {bill.note or bill.id} was {new_status.value}",
            kind=f"payment_{new_status.value}",
            trip_id=bill.trip_id,
        )
        cache_hooks.on_write([debtor_id, bill.paid_by_user_id], [bill.trip_id])
        return response

    @staticmethod
    async def _follow_through(
        repo: LedgerRepository,
        kind: str,
        record,
        share: Optional[BillShare],
        bill: Bill,
        new_status: SettlementStatus,
        response: DecisionResponse,
    ) -> None:
        """Move the twin record and, on approval, recompute the share."""
        twin_kind, twin = await SettlementService._find_twin(repo, kind, record, share, bill)
        if twin is not None:
            if await repo.transition(twin_kind, twin.id, new_status):
                response.twin_record_id = twin.id
            else:
                logger.warning("Twin %s %s was decided concurrently", twin_kind, twin.id)

        if share is not None and new_status == SettlementStatus.APPROVED:
            await SettlementService._apply_to_share(repo, share, bill, response)

    @staticmethod
    async def _resolve(repo: LedgerRepository, kind: str, record_id: str):
        if kind == "payment":
            record = await repo.get_payment(record_id)
            if not record:
                raise RecordNotFoundError(f"Payment {record_id} not found")
            share = await repo.get_share(record.bill_share_id)
            if not share:
                raise RecordNotFoundError(f"bill_share {record.bill_share_id} not found")
            bill = await repo.get_bill(share.bill_id)
        else:
            record = await repo.get_proof(record_id)
            if not record:
                raise RecordNotFoundError(f"Payment proof {record_id} not found")
            bill = await repo.get_bill(record.bill_id)
            share = await repo.find_share(record.bill_id, record.debtor_user_id)
            if not share:
                logger.warning("payment_proof %s has no matching bill_share", record_id)

        if not bill:
            raise RecordNotFoundError(f"Bill for {kind} {record_id} not found")
        return record, share, bill

    @staticmethod
    async def _find_twin(
        repo: LedgerRepository, kind: str, record, share: Optional[BillShare], bill: Bill
    ) -> Tuple[str, Optional[object]]:
        if kind == "payment":
            proofs = await repo.proofs_for_share(bill.id, share.user_id)
            return "payment_proof", _pick_twin(proofs, record.submission_id, record.amount)
        if share is None:
            return "payment", None
        payments = await repo.payments_for_share(share.id)
        return "payment", _pick_twin(payments, record.submission_id, record.amount)

    @staticmethod
    async def _apply_to_share(
        repo: LedgerRepository, share: BillShare, bill: Bill, response: DecisionResponse
    ) -> None:
        """Recompute amount_paid from every approved event on the share."""
        payments = [p for p in await repo.payments_for_share(share.id) if p.status in OPEN_STATUSES]
        proofs = [
            p for p in await repo.proofs_for_share(bill.id, share.user_id)
            if p.status in OPEN_STATUSES
        ]
        events = reconcile(proofs, payments, {share.id: share}, {bill.id: bill})
        paid = approved_total(events)

        settled, overpaid_by = share_status_for(share.amount_share, paid)
        updated = await repo.update_share_settlement(share.id, paid, settled)
        if overpaid_by > 0:
            logger.warning(
                "bill_share %s overpaid by %.2f (share %.2f, paid %.2f)",
                share.id, overpaid_by, share.amount_share, paid,
            )

        response.share_status = (updated.status if updated else share.status).value
        response.share_amount_paid = paid
        response.overpaid_by = overpaid_by
        response.anomaly = overpaid_by > 0

        await SettlementService._refresh_summary(repo, bill, share.user_id)

    @staticmethod
    async def _refresh_summary(repo: LedgerRepository, bill: Bill, debtor_id: str) -> None:
        shares: List[BillShare] = await repo.shares_owed_to(
            bill.paid_by_user_id, debtor_id, bill.trip_id
        )
        owed = sum(s.amount_share for s in shares)
        paid = sum(s.amount_paid for s in shares)
        status = await repo.upsert_debt_summary(
            bill.trip_id, debtor_id, bill.paid_by_user_id, owed, paid
        )
        logger.debug(
            "debt_summary %s -> %s (trip %s): owed=%.2f paid=%.2f %s",
            debtor_id, bill.paid_by_user_id, bill.trip_id, owed, paid, status.value,
        )

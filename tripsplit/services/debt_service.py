import logging
from typing import List, Optional

from tripsplit.core.config import settings
from tripsplit.db.mongo import get_database
from tripsplit.models.base import utcnow
from tripsplit.repositories.ledger_repo import LedgerRepository
from tripsplit.schemas.debt import CreditorDetail, CreditorSettlement, DebtOverview
from tripsplit.schemas.settlement import PendingProofResponse
from tripsplit.services.aggregator import (
    aggregate_outstanding,
    aggregate_settlements,
    as_aware,
    awaiting_confirmation,
)
from tripsplit.services.blob_store import public_url
from tripsplit.services.cache import result_cache, trip_tag, user_tag
from tripsplit.services.reconciler import reconcile

logger = logging.getLogger(__name__)


def overview_cache_key(user_id: str, trip_id: Optional[str]) -> str:
    return f"overview:{user_id}:{trip_id or 'all'}"


def _tags(*user_ids: str, trip_id: Optional[str] = None) -> List[str]:
    tags = [user_tag(u) for u in user_ids]
    if trip_id:
        tags.append(trip_tag(trip_id))
    return tags


class DebtService:
    @staticmethod
    async def build_overview(user_id: str, trip_id: Optional[str] = None) -> DebtOverview:
        """Read the ledger and fold it into the user's balances (uncached)."""
        db = await get_database()
        snapshot = await LedgerRepository(db).read_snapshot(user_id, trip_id)

        events = reconcile(
            snapshot.proofs,
            snapshot.payments,
            snapshot.shares_by_id,
            snapshot.bills_by_id,
        )
        overview = DebtOverview(
            user_id=user_id,
            trip_id=trip_id,
            outstanding=aggregate_outstanding(snapshot.unpaid_shares, user_id),
            paid=aggregate_settlements(events, user_id, snapshot.summaries),
            awaiting_confirmation=awaiting_confirmation(events, user_id),
            generated_at=utcnow(),
        )
        logger.debug(
            "Overview for %s (trip=%s): %d creditors, %d paid, %d awaiting",
            user_id, trip_id, len(overview.outstanding), len(overview.paid),
            len(overview.awaiting_confirmation),
        )
        return overview

    @staticmethod
    async def get_overview(user_id: str, trip_id: Optional[str] = None) -> DebtOverview:
        async def produce():
            overview = await DebtService.build_overview(user_id, trip_id)
            return overview.model_dump(mode="json")

        data = await result_cache.get_or_set(
            overview_cache_key(user_id, trip_id),
            produce,
            ttl=settings.OVERVIEW_CACHE_TTL,
            tags=_tags(user_id, trip_id=trip_id),
        )
        return DebtOverview.model_validate(data)

    @staticmethod
    async def get_creditor_detail(
        user_id: str, creditor_id: str, trip_id: Optional[str] = None
    ) -> CreditorDetail:
        async def produce():
            db = await get_database()
            snapshot = await LedgerRepository(db).read_snapshot(user_id, trip_id)

            rows = [
                (share, bill) for share, bill in snapshot.unpaid_shares
                if bill.paid_by_user_id == creditor_id
            ]
            outstanding = aggregate_outstanding(rows, user_id)

            events = [
                e for e in reconcile(
                    snapshot.proofs,
                    snapshot.payments,
                    snapshot.shares_by_id,
                    snapshot.bills_by_id,
                    creditor_id=creditor_id,
                )
                if e.debtor_user_id == user_id
            ]
            summaries = [s for s in snapshot.summaries if s.creditor_user == creditor_id]
            settled = aggregate_settlements(events, user_id, summaries)

            detail = CreditorDetail(
                user_id=user_id,
                creditor_id=creditor_id,
                trip_id=trip_id,
                outstanding=outstanding[0] if outstanding else None,
                settlement=settled[0] if settled else CreditorSettlement(creditor_id=creditor_id),
                events=sorted(events, key=lambda e: as_aware(e.created_at), reverse=True),
            )
            return detail.model_dump(mode="json")

        data = await result_cache.get_or_set(
            f"creditor:{user_id}:{creditor_id}:{trip_id or 'all'}",
            produce,
            ttl=settings.OVERVIEW_CACHE_TTL,
            tags=_tags(user_id, creditor_id, trip_id=trip_id),
        )
        return CreditorDetail.model_validate(data)

    @staticmethod
    async def pending_proofs(creditor_id: str) -> List[PendingProofResponse]:
        """Slips waiting on the creditor's decision, newest first."""
        db = await get_database()
        proofs = await LedgerRepository(db).pending_proofs_for_creditor(creditor_id)
        return [
            PendingProofResponse(
                id=p.id,
                bill_id=p.bill_id,
                debtor_user_id=p.debtor_user_id,
                amount=p.amount,
                slip_url=public_url(p.image_uri_local) if p.image_uri_local else None,
                ocr_amount=p.ocr_amount,
                ocr_status=p.ocr_status,
                created_at=p.created_at,
            )
            for p in proofs
            if p.debtor_user_id != creditor_id
        ]

import logging
from typing import Dict, List, Mapping, Optional

from tripsplit.core.exceptions import (
    PermissionDeniedError,
    RecordNotFoundError,
    SettlementValidationError,
)
from tripsplit.db.mongo import get_database
from tripsplit.models.ledger import Bill, BillShare
from tripsplit.repositories.ledger_repo import LedgerRepository
from tripsplit.repositories.trip_repo import TripRepository
from tripsplit.schemas.settlement import BillCreate, BillResponse, BillShareResponse
from tripsplit.services.cache import cache_hooks
from tripsplit.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def split_amounts(
    total: float,
    participant_ids: List[str],
    base_per_person: Optional[float] = None,
    extras: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    """
    Per-participant share of a bill, rounded to 2 decimal places.

    Without a base amount, a participant with an extra pays exactly that extra
    and everyone else splits what is left evenly. With a base amount, a
    participant with an extra pays base + extra and the rest split the
    remainder evenly.
    """
    participants = list(dict.fromkeys(participant_ids))
    if not participants:
        return {}

    extras = {
        user_id: float(amount)
        for user_id, amount in (extras or {}).items()
        if user_id in participants and amount and amount > 0
    }
    base = base_per_person or 0.0

    with_extras = [p for p in participants if p in extras]
    without_extras = [p for p in participants if p not in extras]

    if base > 0:
        fixed = {p: base + extras[p] for p in with_extras}
    else:
        fixed = {p: extras[p] for p in with_extras}

    remaining = total - sum(fixed.values())
    per_person = remaining / len(without_extras) if without_extras else 0.0

    shares = {}
    for participant in participants:
        amount = fixed.get(participant, per_person)
        shares[participant] = round(amount, 2)
    return shares


class BillService:
    @staticmethod
    async def create_bill(bill_in: BillCreate, payer_id: str) -> BillResponse:
        db = await get_database()
        trips = TripRepository(db)

        trip = await trips.get_trip(bill_in.trip_id)
        if not trip:
            raise RecordNotFoundError(f"Trip {bill_in.trip_id} not found")

        members = set(await trips.member_ids(bill_in.trip_id))
        if payer_id not in members and payer_id != trip.created_by:
            raise PermissionDeniedError("Only trip members can add bills")
        outsiders = [p for p in bill_in.participant_ids if p not in members and p != trip.created_by]
        if outsiders:
            raise SettlementValidationError(f"Not trip members: {', '.join(outsiders)}")

        amounts = split_amounts(
            bill_in.total_amount,
            bill_in.participant_ids,
            bill_in.base_per_person,
            bill_in.extras,
        )
        negative = [p for p, amount in amounts.items() if amount < 0]
        if negative:
            raise SettlementValidationError("Extras exceed the bill total")

        bill = Bill(
            trip_id=bill_in.trip_id,
            total_amount=round(bill_in.total_amount, 2),
            paid_by_user_id=payer_id,
            note=(bill_in.note or "").strip() or None,
            category_id=bill_in.category_id,
        )
        shares = [
            BillShare(bill_id=bill.id, user_id=user_id, amount_share=amount)
            for user_id, amount in amounts.items()
        ]
        await LedgerRepository(db).insert_bill(bill, shares)
        logger.info(
            "Bill %s created in trip %s: %.2f paid by %s, %d shares",
            bill.id, bill.trip_id, bill.total_amount, payer_id, len(shares),
        )

        recipients = [s.user_id for s in shares if s.user_id != payer_id]
        await NotificationService.notify(
            recipients,
            "New bill in trip",
            f"A new bill of {bill.total_amount:,.2f} was added",
            kind="bill_created",
            trip_id=bill.trip_id,
        )
        cache_hooks.on_write([payer_id, *recipients], [bill.trip_id])

        return BillResponse(
            id=bill.id,
            trip_id=bill.trip_id,
            total_amount=bill.total_amount,
            paid_by_user_id=bill.paid_by_user_id,
            note=bill.note,
            created_at=bill.created_at,
            shares=[
                BillShareResponse(
                    id=s.id, user_id=s.user_id, amount_share=s.amount_share, status=s.status.value
                )
                for s in shares
            ],
        )

"""
Aggregator - fold ledger rows into per-creditor balances.

Outstanding view (what the user still owes):
1. Group unpaid shares by the bill's payer (the creditor), skipping shares
   the user owes to themselves.
2. Sum what is left of each share (amount_share less approved amount_paid),
   count distinct trips and bills, remember the newest bill timestamp.
3. Order by total descending, then most recent activity first.

Already-paid view (what the user has sent): pending and confirmed amounts
per creditor, taken from reconciled settlement events.

Amounts are summed as floats; rounding belongs to presentation.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from tripsplit.models.ledger import Bill, BillShare, DebtSummary
from tripsplit.models.settlement import SettlementStatus
from tripsplit.schemas.debt import CreditorOutstanding, CreditorSettlement, TripOutstanding
from tripsplit.schemas.settlement import SettlementEvent

logger = logging.getLogger(__name__)

ShareRow = Tuple[BillShare, Bill]

# Tolerance when comparing summed float amounts
AMOUNT_EPSILON = 0.01

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def as_aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def aggregate_outstanding(rows: Iterable[ShareRow], user_id: str) -> List[CreditorOutstanding]:
    """Per-creditor totals of the user's unpaid shares."""
    groups: Dict[str, CreditorOutstanding] = {}
    trips: Dict[str, Dict[Optional[str], TripOutstanding]] = {}
    bills_seen: Dict[str, set] = {}

    for share, bill in rows:
        creditor_id = bill.paid_by_user_id
        if creditor_id == user_id or share.user_id == creditor_id:
            continue

        remaining = max(share.amount_share - share.amount_paid, 0.0)
        if remaining <= 0:
            continue

        group = groups.get(creditor_id)
        if group is None:
            group = CreditorOutstanding(creditor_id=creditor_id)
            groups[creditor_id] = group
            trips[creditor_id] = {}
            bills_seen[creditor_id] = set()

        group.total += remaining
        bills_seen[creditor_id].add(bill.id)

        if group.last_activity is None or as_aware(bill.created_at) > as_aware(group.last_activity):
            group.last_activity = bill.created_at

        trip = trips[creditor_id].get(bill.trip_id)
        if trip is None:
            trip = TripOutstanding(trip_id=bill.trip_id, representative_bill_id=bill.id)
            trips[creditor_id][bill.trip_id] = trip
        trip.total += remaining
        trip.bill_count += 1

    result = []
    for creditor_id, group in groups.items():
        group.bill_count = len(bills_seen[creditor_id])
        group.trip_count = len([t for t in trips[creditor_id] if t is not None])
        group.trips = sorted(trips[creditor_id].values(), key=lambda t: t.total, reverse=True)
        result.append(group)

    result.sort(key=lambda g: (g.total, as_aware(g.last_activity)), reverse=True)
    return result


def aggregate_settlements(
    events: Iterable[SettlementEvent],
    user_id: str,
    summaries: Iterable[DebtSummary] = (),
) -> List[CreditorSettlement]:
    """Pending and confirmed amounts the user has sent, per creditor."""
    pending: Dict[str, float] = {}
    confirmed: Dict[str, float] = {}

    for event in events:
        if event.debtor_user_id != user_id or event.creditor_id == user_id:
            continue
        amount = event.amount or 0.0
        if event.status == SettlementStatus.PENDING:
            pending[event.creditor_id] = pending.get(event.creditor_id, 0.0) + amount
        elif event.status == SettlementStatus.APPROVED:
            confirmed[event.creditor_id] = confirmed.get(event.creditor_id, 0.0) + amount

    # debt_summary only ever raises the confirmed figure
    summary_paid: Dict[str, float] = {}
    for summary in summaries:
        if summary.debtor_user != user_id or summary.creditor_user == user_id:
            continue
        summary_paid[summary.creditor_user] = (
            summary_paid.get(summary.creditor_user, 0.0) + summary.amount_paid
        )
    for creditor_id, paid in summary_paid.items():
        from_events = confirmed.get(creditor_id, 0.0)
        if abs(paid - from_events) > AMOUNT_EPSILON:
            logger.info(
                "debt_summary drift for %s -> %s: events=%.2f summary=%.2f",
                user_id, creditor_id, from_events, paid,
            )
        if paid > from_events:
            confirmed[creditor_id] = paid

    creditors = set(pending) | set(confirmed)
    result = [
        CreditorSettlement(
            creditor_id=creditor_id,
            pending=pending.get(creditor_id, 0.0),
            confirmed=confirmed.get(creditor_id, 0.0),
        )
        for creditor_id in creditors
        if pending.get(creditor_id, 0.0) > 0 or confirmed.get(creditor_id, 0.0) > 0
    ]
    result.sort(key=lambda s: (s.pending + s.confirmed, s.creditor_id), reverse=True)
    return result


def awaiting_confirmation(events: Iterable[SettlementEvent], user_id: str) -> List[SettlementEvent]:
    """Pending events the user must approve or reject, newest first."""
    queue = [
        event for event in events
        if event.creditor_id == user_id
        and event.debtor_user_id != user_id
        and event.status == SettlementStatus.PENDING
    ]
    queue.sort(key=lambda e: as_aware(e.created_at), reverse=True)
    return queue


def share_status_for(amount_share: float, amount_paid: float) -> Tuple[bool, float]:
    """(settled, overpaid_by) for a share after payments are applied."""
    settled = amount_paid >= amount_share - AMOUNT_EPSILON
    overpaid_by = amount_paid - amount_share
    if overpaid_by <= AMOUNT_EPSILON:
        overpaid_by = 0.0
    return settled, overpaid_by

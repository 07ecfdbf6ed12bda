"""
Reconciler - merge the redundant "payment happened" records into one view.

A single payment is written twice (payment + payment_proof) and the two can
drift. Merge rules:
1. Proof-derived events are taken first.
2. Payment rows are joined payment -> bill_share -> bill to recover the
   debtor, the bill and the creditor. A failed join skips that row only.
3. A payment event is a duplicate of a proof event when they carry the same
   submission_id, or, for rows written before submission ids existed, when
   their (bill_id, debtor_user_id, amount) fingerprints match.
4. Surviving payment events are appended.

The fingerprint is an approximation: two genuinely distinct payments of the
same amount on the same bill by the same debtor collapse into one.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tripsplit.models.ledger import Bill, BillShare
from tripsplit.models.settlement import Payment, PaymentProof, SettlementStatus
from tripsplit.schemas.settlement import SettlementEvent

logger = logging.getLogger(__name__)

ShareKey = Tuple[str, str]


def share_keys(shares: Iterable[BillShare]) -> Set[ShareKey]:
    """(bill_id, debtor) pairs that resolve to an existing share."""
    return {(share.bill_id, share.user_id) for share in shares}


def events_from_proofs(
    proofs: Iterable[PaymentProof],
    bills_by_id: Optional[Dict[str, Bill]] = None,
    known_shares: Optional[Set[ShareKey]] = None,
    creditor_id: Optional[str] = None,
) -> List[SettlementEvent]:
    events: List[SettlementEvent] = []
    seen: Set[str] = set()

    for proof in proofs:
        if proof.id in seen:
            continue
        seen.add(proof.id)

        if proof.creditor_id == proof.debtor_user_id:
            logger.debug("Skipping self-debt proof %s", proof.id)
            continue
        if creditor_id is not None and proof.creditor_id != creditor_id:
            continue
        if known_shares is not None and (proof.bill_id, proof.debtor_user_id) not in known_shares:
            logger.warning(
                "Orphaned payment_proof %s: no bill_share for bill %s / user %s",
                proof.id, proof.bill_id, proof.debtor_user_id,
            )
            continue

        bill = (bills_by_id or {}).get(proof.bill_id)
        events.append(SettlementEvent(
            source="payment_proof",
            record_id=proof.id,
            bill_id=proof.bill_id,
            debtor_user_id=proof.debtor_user_id,
            creditor_id=proof.creditor_id,
            amount=proof.amount,
            status=proof.status,
            submission_id=proof.submission_id,
            trip_id=bill.trip_id if bill else None,
            created_at=proof.created_at,
        ))

    return events


def events_from_payments(
    payments: Iterable[Payment],
    shares_by_id: Dict[str, BillShare],
    bills_by_id: Dict[str, Bill],
    creditor_id: Optional[str] = None,
) -> List[SettlementEvent]:
    events: List[SettlementEvent] = []
    seen: Set[str] = set()

    for payment in payments:
        if payment.id in seen:
            continue
        seen.add(payment.id)

        share = shares_by_id.get(payment.bill_share_id)
        if share is None:
            logger.warning(
                "Orphaned payment %s: bill_share %s not found",
                payment.id, payment.bill_share_id,
            )
            continue
        bill = bills_by_id.get(share.bill_id)
        if bill is None:
            logger.warning(
                "Orphaned payment %s: bill %s not found", payment.id, share.bill_id
            )
            continue

        if bill.paid_by_user_id == share.user_id:
            continue
        if creditor_id is not None and bill.paid_by_user_id != creditor_id:
            continue

        events.append(SettlementEvent(
            source="payment",
            record_id=payment.id,
            bill_id=bill.id,
            debtor_user_id=share.user_id,
            creditor_id=bill.paid_by_user_id,
            amount=payment.amount,
            status=payment.status,
            submission_id=payment.submission_id,
            trip_id=bill.trip_id,
            created_at=payment.created_at,
        ))

    return events


def merge_events(
    proof_events: List[SettlementEvent],
    payment_events: List[SettlementEvent],
) -> List[SettlementEvent]:
    """Proof events first, then payment events that are not duplicates."""
    merged = list(proof_events)

    proof_submissions = {e.submission_id for e in proof_events if e.submission_id}
    all_keys = {e.key for e in proof_events}
    legacy_keys = {e.key for e in proof_events if not e.submission_id}

    for event in payment_events:
        if event.submission_id:
            duplicate = event.submission_id in proof_submissions or event.key in legacy_keys
        else:
            duplicate = event.key in all_keys

        if duplicate:
            logger.debug("Dropping duplicate payment event %s", event.record_id)
            continue
        merged.append(event)

    return merged


def reconcile(
    proofs: Iterable[PaymentProof],
    payments: Iterable[Payment],
    shares_by_id: Dict[str, BillShare],
    bills_by_id: Dict[str, Bill],
    creditor_id: Optional[str] = None,
    require_share: bool = True,
) -> List[SettlementEvent]:
    """Single deduplicated list of settlement events."""
    known = share_keys(shares_by_id.values()) if require_share else None
    proof_events = events_from_proofs(proofs, bills_by_id, known, creditor_id)
    payment_events = events_from_payments(payments, shares_by_id, bills_by_id, creditor_id)
    return merge_events(proof_events, payment_events)


def approved_total(events: Iterable[SettlementEvent]) -> float:
    total = 0.0
    for event in events:
        if event.status == SettlementStatus.APPROVED:
            total += event.amount or 0.0
    return total

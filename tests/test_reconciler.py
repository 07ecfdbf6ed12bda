"""
Test merging of payment and payment_proof records into settlement events
"""
import logging

from tripsplit.models.ledger import Bill, BillShare
from tripsplit.models.settlement import Payment, PaymentProof, SettlementStatus
from tripsplit.services.reconciler import (
    approved_total,
    events_from_payments,
    events_from_proofs,
    reconcile,
)

A = "user-a"
B = "user-b"


def ledger():
    bills = {
        "b1": Bill(id="b1", trip_id="trip-1", total_amount=150.0, paid_by_user_id=B),
        "b2": Bill(id="b2", trip_id="trip-1", total_amount=80.0, paid_by_user_id=A),
    }
    shares = {
        "s1": BillShare(id="s1", bill_id="b1", user_id=A, amount_share=50.0),
        "s-self": BillShare(id="s-self", bill_id="b2", user_id=A, amount_share=40.0),
    }
    return shares, bills


def proof(proof_id, amount=50.0, status=SettlementStatus.PENDING, submission_id=None, bill_id="b1"):
    return PaymentProof(
        id=proof_id,
        bill_id=bill_id,
        creditor_id=B,
        debtor_user_id=A,
        amount=amount,
        status=status,
        submission_id=submission_id,
    )


def payment(payment_id, amount=50.0, status=SettlementStatus.PENDING, submission_id=None, share_id="s1"):
    return Payment(
        id=payment_id,
        bill_share_id=share_id,
        amount=amount,
        status=status,
        submission_id=submission_id,
    )


class TestDedup:
    def test_same_fuzzy_key_merges_to_one(self):
        """Payment and proof for (X, A, 50.00) are one event."""
        shares, bills = ledger()
        events = reconcile([proof("p1")], [payment("pay1")], shares, bills)

        assert len(events) == 1
        assert events[0].source == "payment_proof"
        assert events[0].record_id == "p1"
        assert events[0].trip_id == "trip-1"

    def test_shared_submission_id_merges(self):
        shares, bills = ledger()
        events = reconcile(
            [proof("p1", submission_id="sub-1")],
            [payment("pay1", submission_id="sub-1")],
            shares, bills,
        )
        assert [e.record_id for e in events] == ["p1"]

    def test_distinct_submission_ids_kept_apart(self):
        """Two real payments of the same amount survive when ids differ."""
        shares, bills = ledger()
        events = reconcile(
            [proof("p1", submission_id="sub-1")],
            [payment("pay2", submission_id="sub-2")],
            shares, bills,
        )
        assert sorted(e.record_id for e in events) == ["p1", "pay2"]

    def test_legacy_proof_still_matches_new_payment_by_key(self):
        shares, bills = ledger()
        events = reconcile([proof("p1")], [payment("pay1", submission_id="sub-9")], shares, bills)
        assert len(events) == 1

    def test_different_amounts_not_merged(self):
        shares, bills = ledger()
        events = reconcile([proof("p1", amount=20.0)], [payment("pay1", amount=30.0)], shares, bills)
        assert len(events) == 2

    def test_payment_without_proof_kept(self):
        shares, bills = ledger()
        events = reconcile([], [payment("pay1", status=SettlementStatus.APPROVED)], shares, bills)

        assert len(events) == 1
        assert events[0].source == "payment"
        assert events[0].debtor_user_id == A
        assert events[0].creditor_id == B


def test_reconcile_is_idempotent():
    shares, bills = ledger()
    proofs = [proof("p1"), proof("p2", amount=10.0, submission_id="sub-2")]
    payments = [payment("pay1"), payment("pay2", amount=10.0, submission_id="sub-2"), payment("pay3", amount=7.5)]

    first = reconcile(proofs, payments, shares, bills)
    second = reconcile(proofs, payments, shares, bills)

    assert first == second
    assert len(first) == 3


def test_duplicate_input_rows_collapse():
    shares, bills = ledger()
    events = reconcile([proof("p1"), proof("p1")], [payment("pay9", amount=3.0)] * 2, shares, bills)
    assert sorted(e.record_id for e in events) == ["p1", "pay9"]


class TestOrphansAndSelfDebt:
    def test_payment_with_missing_share_skipped(self, caplog):
        shares, bills = ledger()
        with caplog.at_level(logging.WARNING):
            events = events_from_payments([payment("pay1", share_id="gone")], shares, bills)

        assert events == []
        assert "Orphaned payment pay1" in caplog.text

    def test_payment_with_missing_bill_skipped(self):
        shares, _ = ledger()
        assert events_from_payments([payment("pay1")], shares, {}) == []

    def test_proof_without_share_skipped_when_required(self, caplog):
        shares, bills = ledger()
        with caplog.at_level(logging.WARNING):
            events = reconcile([proof("p1", bill_id="b-unknown")], [], shares, bills)

        assert events == []
        assert "Orphaned payment_proof p1" in caplog.text

    def test_proof_kept_without_share_check(self):
        events = events_from_proofs([proof("p1", bill_id="b-unknown")])
        assert len(events) == 1
        assert events[0].trip_id is None

    def test_self_debt_payment_skipped(self):
        shares, bills = ledger()
        assert events_from_payments([payment("pay1", share_id="s-self")], shares, bills) == []

    def test_self_debt_proof_skipped(self):
        self_proof = PaymentProof(id="p1", bill_id="b2", creditor_id=A, debtor_user_id=A, amount=40.0)
        assert events_from_proofs([self_proof]) == []

    def test_creditor_filter(self):
        shares, bills = ledger()
        events = reconcile([proof("p1")], [payment("pay1", amount=9.0)], shares, bills, creditor_id="someone-else")
        assert events == []


def test_approved_total_counts_only_approved():
    shares, bills = ledger()
    events = reconcile(
        [proof("p1", amount=20.0, status=SettlementStatus.APPROVED)],
        [payment("pay1", amount=15.0, status=SettlementStatus.APPROVED), payment("pay2", amount=5.0)],
        shares, bills,
    )
    assert approved_total(events) == 35.0

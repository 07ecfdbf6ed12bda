import logging

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from tripsplit.core.exceptions import (
    DataUnavailableError,
    PermissionDeniedError,
    RecordNotFoundError,
    SettlementConflictError,
    SettlementInProgressError,
    SettlementValidationError,
)
from tripsplit.models.ledger import Bill, BillShare, DebtStatus, ShareStatus
from tripsplit.models.settlement import Payment, PaymentProof, SettlementStatus, SlipStatus
from tripsplit.services.cache import result_cache, user_tag
from tripsplit.services.inflight import settlement_guard
from tripsplit.services.ocr_client import OcrResult
from tripsplit.services.settlement_service import SettlementService

A = "user-a"
B = "user-b"

BILL = Bill(id="b1", trip_id="trip-1", total_amount=200.0, paid_by_user_id=B, note="Dinner")
SHARE = BillShare(id="s1", bill_id="b1", user_id=A, amount_share=100.0)


def proof(status=SettlementStatus.PENDING, amount=100.0, submission_id="sub-1", proof_id="p1"):
    return PaymentProof(
        id=proof_id, bill_id="b1", creditor_id=B, debtor_user_id=A,
        amount=amount, status=status, submission_id=submission_id,
    )


def payment(status=SettlementStatus.PENDING, amount=100.0, submission_id="sub-1", payment_id="pay1"):
    return Payment(id=payment_id, bill_share_id="s1", amount=amount, status=status, submission_id=submission_id)


@pytest.fixture
def repo():
    repo = MagicMock()
    repo.get_bill = AsyncMock(return_value=BILL)
    repo.find_share = AsyncMock(return_value=SHARE)
    repo.get_share = AsyncMock(return_value=SHARE)
    repo.get_payment = AsyncMock(return_value=payment())
    repo.get_proof = AsyncMock(return_value=proof())
    repo.payments_for_share = AsyncMock(return_value=[])
    repo.proofs_for_share = AsyncMock(return_value=[])
    repo.insert_submission = AsyncMock()
    repo.ensure_debt_summary = AsyncMock()
    repo.transition = AsyncMock(return_value={"status": "approved"})
    repo.update_share_settlement = AsyncMock(return_value=None)
    repo.shares_owed_to = AsyncMock(return_value=[])
    repo.upsert_debt_summary = AsyncMock(return_value=DebtStatus.SETTLED)
    return repo


@pytest.fixture
def notify():
    with patch(
        "tripsplit.services.settlement_service.NotificationService.notify",
        new_callable=AsyncMock,
    ) as mock_notify:
        yield mock_notify


@pytest.fixture
def service_env(repo, notify):
    with patch("tripsplit.services.settlement_service.get_database", return_value=MagicMock()), \
            patch("tripsplit.services.settlement_service.LedgerRepository", return_value=repo):
        yield repo


@pytest.mark.asyncio
class TestSubmitPayment:
    async def test_submit_writes_twin_records(self, service_env, notify):
        result_cache.set("overview:user-b:all", {"stale": True}, tags=[user_tag(B)])

        response = await SettlementService.submit_payment(A, "b1", 100.0)

        payment_doc, proof_doc = service_env.insert_submission.call_args[0]
        assert payment_doc.submission_id == proof_doc.submission_id == response.submission_id
        assert payment_doc.bill_share_id == "s1"
        assert proof_doc.creditor_id == B
        assert proof_doc.debtor_user_id == A
        assert response.verification is None
        service_env.ensure_debt_summary.assert_awaited_once_with("trip-1", A, B, 100.0)
        assert notify.call_args[0][0] == [B]
        assert result_cache.get("overview:user-b:all") is None

    async def test_submit_with_slip_records_advisory_ocr(self, service_env):
        blob_store = MagicMock()
        blob_store.upload = AsyncMock(return_value="http://localhost:8000/api/v1/blobs/slip.jpg")
        ocr = MagicMock()
        ocr.recognize.return_value = OcrResult(text="จำนวนเงิน 99.00 บาท", language="tha")

        with patch("tripsplit.services.settlement_service.BlobStore", return_value=blob_store), \
                patch("tripsplit.services.settlement_service.ocr_client", ocr):
            response = await SettlementService.submit_payment(A, "b1", 100.0, image=b"\x89PNG", filename="slip.png")

        path, data, content_type = blob_store.upload.call_args[0]
        assert path == f"slips/b1/{A}/{response.submission_id}.png"
        assert content_type == "image/png"
        assert response.verification.status == SlipStatus.MATCHED
        assert response.verification.extracted_amount == 99.0

        _, proof_doc = service_env.insert_submission.call_args[0]
        assert proof_doc.ocr_amount == 99.0
        assert proof_doc.ocr_status == SlipStatus.MATCHED
        assert proof_doc.status == SettlementStatus.PENDING

    async def test_unreadable_slip_is_error_and_still_pending(self, service_env):
        blob_store = MagicMock()
        blob_store.upload = AsyncMock(return_value="url")
        ocr = MagicMock()
        ocr.recognize.return_value = OcrResult(error="no text recognized (tha,eng)")

        with patch("tripsplit.services.settlement_service.BlobStore", return_value=blob_store), \
                patch("tripsplit.services.settlement_service.ocr_client", ocr):
            response = await SettlementService.submit_payment(A, "b1", 100.0, image=b"img")

        assert response.verification.status == SlipStatus.ERROR
        _, proof_doc = service_env.insert_submission.call_args[0]
        assert proof_doc.status == SettlementStatus.PENDING

    async def test_self_payment_rejected(self, service_env):
        with pytest.raises(SettlementValidationError):
            await SettlementService.submit_payment(B, "b1", 50.0)
        service_env.insert_submission.assert_not_called()

    async def test_missing_share(self, service_env):
        service_env.find_share.return_value = None
        with pytest.raises(RecordNotFoundError):
            await SettlementService.submit_payment(A, "b1", 50.0)

    async def test_missing_bill(self, service_env):
        service_env.get_bill.return_value = None
        with pytest.raises(RecordNotFoundError):
            await SettlementService.submit_payment(A, "nope", 50.0)

    async def test_failed_insert_removes_uploaded_slip(self, service_env):
        blob_store = MagicMock()
        blob_store.upload = AsyncMock(return_value="url")
        blob_store.delete = AsyncMock(return_value=1)
        ocr = MagicMock()
        ocr.recognize.return_value = OcrResult(text="100.00")
        service_env.insert_submission.side_effect = DataUnavailableError("Could not record payment")

        with patch("tripsplit.services.settlement_service.BlobStore", return_value=blob_store), \
                patch("tripsplit.services.settlement_service.ocr_client", ocr):
            with pytest.raises(DataUnavailableError):
                await SettlementService.submit_payment(A, "b1", 100.0, image=b"img", filename="slip.jpg")

        uploaded_path = blob_store.upload.call_args[0][0]
        blob_store.delete.assert_awaited_once_with(uploaded_path)
        service_env.ensure_debt_summary.assert_not_called()

    @pytest.mark.parametrize("amount", [0, -5.0])
    async def test_non_positive_amount(self, service_env, amount):
        with pytest.raises(SettlementValidationError):
            await SettlementService.submit_payment(A, "b1", amount)


@pytest.mark.asyncio
class TestDecide:
    async def test_approve_proof_moves_twin_and_settles_share(self, service_env, notify):
        repo = service_env
        repo.payments_for_share.side_effect = [
            [payment()],
            [payment(status=SettlementStatus.APPROVED)],
        ]
        repo.proofs_for_share.return_value = [proof(status=SettlementStatus.APPROVED)]
        repo.update_share_settlement.return_value = SHARE.model_copy(
            update={"status": ShareStatus.PAID, "amount_paid": 100.0}
        )
        repo.shares_owed_to.return_value = [SHARE.model_copy(update={"amount_paid": 100.0})]

        response = await SettlementService.approve("payment_proof", "p1", B)

        assert response.status == SettlementStatus.APPROVED
        assert response.twin_record_id == "pay1"
        assert repo.transition.await_args_list[0].args == ("payment_proof", "p1", SettlementStatus.APPROVED)
        assert repo.transition.await_args_list[1].args == ("payment", "pay1", SettlementStatus.APPROVED)
        repo.update_share_settlement.assert_awaited_once_with("s1", 100.0, True)
        assert response.share_status == "paid"
        assert response.share_amount_paid == 100.0
        assert response.anomaly is False
        repo.upsert_debt_summary.assert_awaited_once_with("trip-1", A, B, 100.0, 100.0)
        assert notify.call_args[0][0] == [A]

    async def test_approve_payment_finds_legacy_twin_by_amount(self, service_env):
        repo = service_env
        repo.get_payment.return_value = payment(submission_id=None)
        repo.proofs_for_share.side_effect = [
            [proof(submission_id=None, amount=40.0, proof_id="p-other"), proof(submission_id=None)],
            [],
        ]

        response = await SettlementService.approve("payment", "pay1", B)

        assert response.twin_record_id == "p1"

    async def test_overpayment_surfaced(self, service_env, caplog):
        repo = service_env
        repo.payments_for_share.side_effect = [
            [],
            [payment(status=SettlementStatus.APPROVED, amount=70.0, submission_id="x"),
             payment(status=SettlementStatus.APPROVED, amount=50.0, submission_id="y", payment_id="pay2")],
        ]

        with caplog.at_level(logging.WARNING):
            response = await SettlementService.approve("payment_proof", "p1", B)

        assert response.anomaly is True
        assert response.overpaid_by == pytest.approx(20.0)
        repo.update_share_settlement.assert_awaited_once_with("s1", 120.0, True)
        assert "overpaid" in caplog.text

    async def test_reject_leaves_share_alone(self, service_env, notify):
        repo = service_env
        repo.payments_for_share.return_value = [payment()]

        response = await SettlementService.reject("payment_proof", "p1", B)

        assert response.status == SettlementStatus.REJECTED
        assert response.twin_record_id == "pay1"
        repo.update_share_settlement.assert_not_called()
        assert notify.call_args[0][1] == "Payment rejected"

    async def test_only_creditor_may_decide(self, service_env):
        with pytest.raises(PermissionDeniedError):
            await SettlementService.approve("payment_proof", "p1", A)
        service_env.transition.assert_not_called()

    async def test_already_decided_conflicts(self, service_env):
        service_env.transition.return_value = None
        with pytest.raises(SettlementConflictError):
            await SettlementService.approve("payment", "pay1", B)

    async def test_concurrent_decision_rejected(self, service_env):
        async with settlement_guard.hold("payment:pay1"):
            with pytest.raises(SettlementInProgressError):
                await SettlementService.approve("payment", "pay1", B)
        service_env.transition.assert_not_called()

    async def test_unknown_record(self, service_env):
        service_env.get_proof.return_value = None
        with pytest.raises(RecordNotFoundError):
            await SettlementService.reject("payment_proof", "missing", B)

    async def test_unknown_kind(self, service_env):
        with pytest.raises(SettlementValidationError):
            await SettlementService.approve("debt_summary", "x", B)

    async def test_share_failure_after_approval_is_logged(self, service_env, caplog):
        repo = service_env
        repo.update_share_settlement.side_effect = DataUnavailableError("Could not update bill_share")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(DataUnavailableError):
                await SettlementService.approve("payment_proof", "p1", B)

        assert "was not updated" in caplog.text
        assert settlement_guard.is_active("payment_proof:p1") is False

    async def test_approving_again_repairs_share(self, service_env):
        """A retry after a half-finished approval recomputes the share, then reports the conflict."""
        repo = service_env
        repo.get_proof.return_value = proof(status=SettlementStatus.APPROVED)
        repo.transition.return_value = None
        repo.proofs_for_share.return_value = [proof(status=SettlementStatus.APPROVED)]
        repo.shares_owed_to.return_value = [SHARE.model_copy(update={"amount_paid": 100.0})]
        result_cache.set("overview:user-a:all", {"stale": True}, tags=[user_tag(A)])

        with pytest.raises(SettlementConflictError):
            await SettlementService.approve("payment_proof", "p1", B)

        repo.update_share_settlement.assert_awaited_once_with("s1", 100.0, True)
        repo.upsert_debt_summary.assert_awaited_once_with("trip-1", A, B, 100.0, 100.0)
        assert result_cache.get("overview:user-a:all") is None

    async def test_rejecting_approved_record_does_not_repair(self, service_env):
        repo = service_env
        repo.get_proof.return_value = proof(status=SettlementStatus.APPROVED)
        repo.transition.return_value = None

        with pytest.raises(SettlementConflictError):
            await SettlementService.reject("payment_proof", "p1", B)
        repo.update_share_settlement.assert_not_called()

"""Tests for cancellation requests: create, preview, approve, reject, process."""
from datetime import date, datetime
from unittest.mock import patch

import pytest
import stripe

from golfapp.application.cancellations import (
    CreateCancellationRequestUseCase, PreviewRefundUseCase,
    ApproveCancellationRequestUseCase, RejectCancellationRequestUseCase,
    ProcessCancellationRequestUseCase, CancellationValidationError,
    PaymentProcessingError, list_cancellation_requests,
)
from golfapp.infrastructure.db.models import CancellationRequestModel, SubscriptionModel


class FakeGateway:
    """Records calls instead of talking to Stripe."""

    def __init__(self, refund_id="re_123", refund_error=None, cancel_error=None):
        self.refund_id = refund_id
        self.refund_error = refund_error
        self.cancel_error = cancel_error
        self.refunds = []
        self.cancellations = []
        self.idempotency_keys = []

    def refund_latest_charge(self, stripe_subscription_id, amount, idempotency_key=None, metadata=None):
        if self.refund_error:
            raise self.refund_error
        self.refunds.append((stripe_subscription_id, amount, metadata))
        self.idempotency_keys.append(idempotency_key)
        return self.refund_id

    def cancel_subscription(self, stripe_subscription_id, at_period_end):
        if self.cancel_error:
            raise self.cancel_error
        self.cancellations.append((stripe_subscription_id, at_period_end))


@pytest.fixture(autouse=True)
def mock_send_email():
    with patch("golfapp.application.cancellations.send_email") as m:
        yield m


@pytest.fixture
def user(make_user):
    return make_user(email="golfer@example.com", name="山田太郎", subscription_status="active")


@pytest.fixture
def yearly_sub(make_subscription, user):
    return make_subscription(user, plan="yearly", start=datetime(2025, 1, 15), stripe_subscription_id="sub_yearly")


@pytest.fixture
def monthly_sub(make_subscription, user):
    return make_subscription(user, plan="monthly", start=datetime(2025, 1, 15), stripe_subscription_id="sub_monthly")


def _request(db, request_id):
    return db.query(CancellationRequestModel).filter(CancellationRequestModel.id == request_id).first()


# ======================================================================
# 1. Create
# ======================================================================

class TestCreateCancellationRequest:
    def test_creates_pending_request(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, "  スコアが伸びない  ")
        req = _request(db_session, rid)
        assert req.status == "pending"
        assert req.reason == "スコアが伸びない"
        assert req.user_id == user.id

    def test_blank_reason_stored_as_none(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, "   ")
        assert _request(db_session, rid).reason is None

    def test_notifies_admin(self, db_session, user, yearly_sub, mock_send_email):
        CreateCancellationRequestUseCase(db_session).execute(user.id, "忙しい")
        mock_send_email.assert_called_once()
        to, subject, text = mock_send_email.call_args.args
        assert to == ["admin@golfapp.jp"]
        assert "解約申請" in subject
        assert "golfer@example.com" in text
        assert "年額プラン" in text
        assert "忙しい" in text

    def test_email_failure_does_not_fail_request(self, db_session, user, yearly_sub, mock_send_email):
        mock_send_email.side_effect = RuntimeError("resend down")
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        assert _request(db_session, rid).status == "pending"

    def test_unknown_user(self, db_session):
        with pytest.raises(CancellationValidationError) as exc:
            CreateCancellationRequestUseCase(db_session).execute(999, None)
        assert exc.value.code == "not_found"

    def test_requires_active_subscription(self, db_session, user):
        with pytest.raises(CancellationValidationError, match="アクティブなサブスクリプション"):
            CreateCancellationRequestUseCase(db_session).execute(user.id, None)

    def test_only_one_pending_request(self, db_session, user, yearly_sub):
        CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        with pytest.raises(CancellationValidationError, match="処理待ち"):
            CreateCancellationRequestUseCase(db_session).execute(user.id, None)

    def test_new_request_allowed_after_rejection(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        RejectCancellationRequestUseCase(db_session).execute(rid, "admin@golfapp.jp")
        rid2 = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        assert rid2 != rid


# ======================================================================
# 2. Preview
# ======================================================================

class TestPreviewRefund:
    def test_preview_has_no_side_effects(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        calc = PreviewRefundUseCase(db_session).execute(rid, today=date(2025, 3, 1))
        assert calc.refund_amount == 4126
        assert calc.service_end_date == date(2025, 4, 15)
        assert _request(db_session, rid).status == "pending"
        assert yearly_sub.status == "active"

    def test_preview_missing_request(self, db_session):
        with pytest.raises(CancellationValidationError) as exc:
            PreviewRefundUseCase(db_session).execute(42)
        assert exc.value.code == "not_found"


# ======================================================================
# 3. Approve
# ======================================================================

class TestApprove:
    def test_yearly_refunds_and_cancels_immediately(self, db_session, user, yearly_sub, mock_send_email):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway()

        result = ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )

        assert result.refund_id == "re_123"
        assert result.calculation.refund_amount == 4126
        sub_id, amount, metadata = gateway.refunds[0]
        assert (sub_id, amount) == ("sub_yearly", 4126)
        assert metadata["usedMonths"] == "3"
        assert metadata["serviceEndDate"] == "2025-04-15"
        assert gateway.cancellations == [("sub_yearly", False)]

        req = _request(db_session, rid)
        assert req.status == "approved"
        assert req.processed_by == "admin@golfapp.jp"
        assert req.processed_at is not None
        assert req.refund_amount == 4126
        assert req.refund_id == "re_123"
        assert req.service_end_date == date(2025, 4, 15)

        sub = db_session.query(SubscriptionModel).filter(SubscriptionModel.id == yearly_sub.id).first()
        assert sub.status == "canceled"
        assert sub.canceled_at is not None
        assert sub.service_end_date == date(2025, 4, 15)
        assert user.subscription_status == "canceled"

    def test_user_is_mailed_refund_details(self, db_session, user, yearly_sub, mock_send_email):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        mock_send_email.reset_mock()
        ApproveCancellationRequestUseCase(db_session, FakeGateway()).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        to, subject, text = mock_send_email.call_args.args
        assert to == ["golfer@example.com"]
        assert "解約確定" in subject
        assert "4,126円" in text
        assert "2025/4/15" in text
        assert "2025/4/16" in text  # access stops the day after

    def test_monthly_cancels_at_period_end_without_refund(self, db_session, user, monthly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway()
        result = ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 1, 20),
        )
        assert gateway.refunds == []
        assert gateway.cancellations == [("sub_monthly", True)]
        assert result.refund_id is None
        assert _request(db_session, rid).refund_amount == 0
        assert _request(db_session, rid).service_end_date == date(2025, 2, 15)

    def test_no_charge_found_still_cancels(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway(refund_id=None)
        result = ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        assert result.refund_id is None
        assert _request(db_session, rid).status == "approved"
        assert gateway.cancellations == [("sub_yearly", False)]

    def test_refund_failure_aborts(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway(refund_error=stripe.StripeError("card_declined"))
        with pytest.raises(PaymentProcessingError, match="返金処理に失敗"):
            ApproveCancellationRequestUseCase(db_session, gateway).execute(
                rid, "admin@golfapp.jp", today=date(2025, 3, 1),
            )
        assert gateway.cancellations == []
        assert _request(db_session, rid).status == "pending"
        assert yearly_sub.status == "active"

    def test_cancel_failure_aborts(self, db_session, user, monthly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway(cancel_error=stripe.StripeError("boom"))
        with pytest.raises(PaymentProcessingError, match="キャンセルに失敗"):
            ApproveCancellationRequestUseCase(db_session, gateway).execute(
                rid, "admin@golfapp.jp", today=date(2025, 1, 20),
            )
        assert _request(db_session, rid).status == "pending"

    def test_retry_after_cancel_failure_does_not_refund_twice(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway(cancel_error=stripe.APIConnectionError("network down"))
        with pytest.raises(PaymentProcessingError):
            ApproveCancellationRequestUseCase(db_session, gateway).execute(
                rid, "admin@golfapp.jp", today=date(2025, 3, 1),
            )
        req = _request(db_session, rid)
        assert req.status == "pending"
        assert req.refund_id == "re_123"
        assert req.refund_amount == 4126

        gateway.cancel_error = None
        result = ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        assert len(gateway.refunds) == 1
        assert result.refund_id == "re_123"
        assert gateway.cancellations == [("sub_yearly", False)]
        assert _request(db_session, rid).status == "approved"

    def test_refund_uses_request_scoped_idempotency_key(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway()
        ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        assert gateway.idempotency_keys == [f"cancellation-request-{rid}-refund"]

    def test_email_failure_is_swallowed(self, db_session, user, yearly_sub, mock_send_email):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        mock_send_email.side_effect = RuntimeError("resend down")
        result = ApproveCancellationRequestUseCase(db_session, FakeGateway()).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        assert result.refund_id == "re_123"
        assert _request(db_session, rid).status == "approved"

    def test_without_stripe_id_skips_gateway(self, db_session, user, make_subscription):
        make_subscription(user, plan="yearly", start=datetime(2025, 1, 15))
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        gateway = FakeGateway()
        ApproveCancellationRequestUseCase(db_session, gateway).execute(
            rid, "admin@golfapp.jp", today=date(2025, 3, 1),
        )
        assert gateway.refunds == []
        assert gateway.cancellations == []
        assert _request(db_session, rid).status == "approved"

    def test_already_processed(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        RejectCancellationRequestUseCase(db_session).execute(rid, "admin@golfapp.jp")
        with pytest.raises(CancellationValidationError, match="既に処理") as exc:
            ApproveCancellationRequestUseCase(db_session, FakeGateway()).execute(rid, "admin@golfapp.jp")
        assert exc.value.code == "invalid_state"

    def test_subscription_gone_before_approval(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        yearly_sub.status = "canceled"
        db_session.flush()
        with pytest.raises(CancellationValidationError) as exc:
            ApproveCancellationRequestUseCase(db_session, FakeGateway()).execute(rid, "admin@golfapp.jp")
        assert exc.value.code == "not_found"


# ======================================================================
# 4. Reject / process / list
# ======================================================================

class TestRejectAndProcess:
    def test_reject(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        RejectCancellationRequestUseCase(db_session).execute(rid, "admin@golfapp.jp")
        req = _request(db_session, rid)
        assert req.status == "rejected"
        assert req.processed_by == "admin@golfapp.jp"
        assert yearly_sub.status == "active"

    def test_reject_missing(self, db_session):
        with pytest.raises(CancellationValidationError) as exc:
            RejectCancellationRequestUseCase(db_session).execute(7, "admin@golfapp.jp")
        assert exc.value.code == "not_found"

    def test_process_reject(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        result = ProcessCancellationRequestUseCase(db_session, FakeGateway()).execute(rid, "reject", "admin@golfapp.jp")
        assert result is None
        assert _request(db_session, rid).status == "rejected"

    def test_process_approve(self, db_session, user, monthly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        result = ProcessCancellationRequestUseCase(db_session, FakeGateway()).execute(rid, "approve", "admin@golfapp.jp")
        assert result.request_id == rid
        assert _request(db_session, rid).status == "approved"

    def test_process_unknown_action(self, db_session, user, yearly_sub):
        rid = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        with pytest.raises(CancellationValidationError, match="不正なアクション"):
            ProcessCancellationRequestUseCase(db_session, FakeGateway()).execute(rid, "delete", "admin@golfapp.jp")

    def test_list_filters_by_status(self, db_session, user, yearly_sub, make_user, make_subscription):
        other = make_user(email="other@example.com")
        make_subscription(other, plan="monthly")
        rid1 = CreateCancellationRequestUseCase(db_session).execute(user.id, None)
        rid2 = CreateCancellationRequestUseCase(db_session).execute(other.id, None)
        RejectCancellationRequestUseCase(db_session).execute(rid1, "admin@golfapp.jp")

        assert {r.id for r in list_cancellation_requests(db_session)} == {rid1, rid2}
        assert [r.id for r in list_cancellation_requests(db_session, "pending")] == [rid2]
        assert [r.id for r in list_cancellation_requests(db_session, "rejected")] == [rid1]

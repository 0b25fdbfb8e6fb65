"""
Cancellation request use cases: file, preview, approve, reject.

Works directly with the ORM. Approval calls the payment gateway before the
status changes: a payment failure leaves the request pending, while a failed
e-mail is only logged. An issued refund id is committed at once so a retried
approval never refunds again.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

import stripe
from sqlalchemy.orm import Session

from golfapp.application.mailer import (
    send_email, build_cancellation_request_notice, build_cancellation_confirmed_notice,
)
from golfapp.application.payments import StripeGateway
from golfapp.config import get_settings
from golfapp.domain.plan import (
    PLAN_YEARLY, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_CANCELED, USER_STATUS_CANCELED,
    REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED, plan_to_interval,
)
from golfapp.domain.refund import RefundCalculation, calculate_refund
from golfapp.infrastructure.db.models import User, SubscriptionModel, CancellationRequestModel

logger = logging.getLogger(__name__)


class CancellationValidationError(ValueError):
    """Rejected request. `code` is one of: not_found, invalid_state."""

    def __init__(self, message: str, code: str = "invalid_state"):
        super().__init__(message)
        self.code = code


class PaymentProcessingError(RuntimeError):
    pass


@dataclass(frozen=True)
class ApprovalResult:
    request_id: int
    calculation: RefundCalculation
    refund_id: str | None


def _get_request(db: Session, request_id: int) -> CancellationRequestModel:
    req = db.query(CancellationRequestModel).filter(
        CancellationRequestModel.id == request_id,
    ).first()
    if not req:
        raise CancellationValidationError("解約申請が見つかりません", code="not_found")
    return req


def _get_pending_request(db: Session, request_id: int) -> CancellationRequestModel:
    req = _get_request(db, request_id)
    if req.status != REQUEST_PENDING:
        raise CancellationValidationError("この解約申請は既に処理されています")
    return req


def get_active_subscription(db: Session, user_id: int) -> SubscriptionModel | None:
    return db.query(SubscriptionModel).filter(
        SubscriptionModel.user_id == user_id,
        SubscriptionModel.status == SUBSCRIPTION_ACTIVE,
    ).order_by(SubscriptionModel.start_date.desc()).first()


def _require_active_subscription(db: Session, user_id: int) -> SubscriptionModel:
    sub = get_active_subscription(db, user_id)
    if not sub:
        raise CancellationValidationError("アクティブなサブスクリプションが見つかりません", code="not_found")
    return sub


def list_cancellation_requests(db: Session, status: str | None = None) -> list[CancellationRequestModel]:
    """All requests, newest first, optionally filtered by status."""
    q = db.query(CancellationRequestModel)
    if status:
        q = q.filter(CancellationRequestModel.status == status)
    return q.order_by(
        CancellationRequestModel.created_at.desc(),
        CancellationRequestModel.id.desc(),
    ).all()


class CreateCancellationRequestUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, reason: str | None = None) -> int:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise CancellationValidationError("ユーザーが見つかりません", code="not_found")

        sub = get_active_subscription(self.db, user_id)
        if not sub:
            raise CancellationValidationError("アクティブなサブスクリプションがありません")

        existing = self.db.query(CancellationRequestModel).filter(
            CancellationRequestModel.user_id == user_id,
            CancellationRequestModel.status == REQUEST_PENDING,
        ).first()
        if existing:
            raise CancellationValidationError("既に解約申請が処理待ちです")

        reason = (reason or "").strip() or None
        req = CancellationRequestModel(
            user_id=user_id,
            reason=reason,
            status=REQUEST_PENDING,
        )
        self.db.add(req)
        self.db.flush()
        self.db.commit()

        self._notify_admin(user, sub, req)
        return req.id

    def _notify_admin(self, user: User, sub: SubscriptionModel, req: CancellationRequestModel) -> None:
        subject, text = build_cancellation_request_notice(
            user_name=user.name or user.email,
            user_email=user.email,
            plan=sub.plan,
            reason=req.reason,
            created_at=req.created_at or datetime.now(timezone.utc),
        )
        try:
            send_email([get_settings().ADMIN_EMAIL], subject, text)
        except Exception:
            logger.exception("Failed to send cancellation request notice for request_id=%d", req.id)


class PreviewRefundUseCase:
    """Refund the admin would grant if the request were approved on `today`."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, request_id: int, today: date | None = None) -> RefundCalculation:
        req = _get_request(self.db, request_id)
        sub = _require_active_subscription(self.db, req.user_id)
        return calculate_refund(sub.start_date, plan_to_interval(sub.plan), today)


class ApproveCancellationRequestUseCase:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def execute(self, request_id: int, admin_email: str, today: date | None = None) -> ApprovalResult:
        req = _get_pending_request(self.db, request_id)
        user = self.db.query(User).filter(User.id == req.user_id).first()
        if not user:
            raise CancellationValidationError("ユーザーが見つかりません", code="not_found")
        sub = _require_active_subscription(self.db, user.id)

        calc = calculate_refund(sub.start_date, plan_to_interval(sub.plan), today)
        refund_id = req.refund_id

        if sub.stripe_subscription_id:
            # A retry after a failed cancel must not refund twice
            if calc.should_refund and calc.refund_amount > 0 and not refund_id:
                refund_id = self._refund(req, user, sub, calc)
                if refund_id:
                    req.refund_id = refund_id
                    req.refund_amount = calc.refund_amount
                    self.db.commit()
            self._cancel_on_stripe(sub)

        now = datetime.now(timezone.utc)
        sub.status = SUBSCRIPTION_CANCELED
        sub.canceled_at = now
        sub.service_end_date = calc.service_end_date
        user.subscription_status = USER_STATUS_CANCELED

        req.status = REQUEST_APPROVED
        req.processed_at = now
        req.processed_by = admin_email
        req.refund_id = refund_id
        if req.refund_amount is None:
            req.refund_amount = calc.refund_amount
        req.service_end_date = calc.service_end_date
        self.db.commit()

        logger.info(
            "Cancellation request %d approved by %s: refund=%d JPY, service until %s",
            req.id, admin_email, calc.refund_amount, calc.service_end_date.isoformat(),
        )

        subject, text = build_cancellation_confirmed_notice(sub.plan, calc)
        try:
            send_email([user.email], subject, text)
        except Exception:
            logger.exception("Failed to send cancellation confirmation for request_id=%d", req.id)

        return ApprovalResult(request_id=req.id, calculation=calc, refund_id=refund_id)

    def _refund(
        self,
        req: CancellationRequestModel,
        user: User,
        sub: SubscriptionModel,
        calc: RefundCalculation,
    ) -> str | None:
        try:
            refund_id = self.gateway.refund_latest_charge(
                sub.stripe_subscription_id,
                calc.refund_amount,
                idempotency_key=f"cancellation-request-{req.id}-refund",
                metadata={
                    "userId": str(user.id),
                    "cancellationRequestId": str(req.id),
                    "usedMonths": str(calc.used_months),
                    "serviceEndDate": calc.service_end_date.isoformat(),
                },
            )
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for subscription %s: %s", sub.stripe_subscription_id, e)
            raise PaymentProcessingError(f"Stripeでの返金処理に失敗しました: {e}") from e

        if not refund_id:
            logger.warning("Could not find charge for refund, continuing with cancellation (request_id=%d)", req.id)
        return refund_id

    def _cancel_on_stripe(self, sub: SubscriptionModel) -> None:
        # Yearly plans end immediately (the unused part was refunded);
        # monthly plans run out the paid period.
        try:
            self.gateway.cancel_subscription(
                sub.stripe_subscription_id,
                at_period_end=sub.plan != PLAN_YEARLY,
            )
        except stripe.StripeError as e:
            logger.error("Stripe cancel failed for subscription %s: %s", sub.stripe_subscription_id, e)
            raise PaymentProcessingError(f"Stripeでのサブスクリプションキャンセルに失敗しました: {e}") from e


class RejectCancellationRequestUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, request_id: int, admin_email: str) -> None:
        req = _get_pending_request(self.db, request_id)
        req.status = REQUEST_REJECTED
        req.processed_at = datetime.now(timezone.utc)
        req.processed_by = admin_email
        self.db.commit()
        logger.info("Cancellation request %d rejected by %s", req.id, admin_email)


class ProcessCancellationRequestUseCase:
    """Single entry point for admin decisions: action is "approve" or "reject"."""

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def execute(self, request_id: int, action: str, admin_email: str) -> ApprovalResult | None:
        if action == "approve":
            return ApproveCancellationRequestUseCase(self.db, self.gateway).execute(request_id, admin_email)
        if action == "reject":
            RejectCancellationRequestUseCase(self.db).execute(request_id, admin_email)
            return None
        raise CancellationValidationError(f"不正なアクションです: {action}")

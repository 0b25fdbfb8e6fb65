"""
Admin cancellation-request endpoints.

Access: only users with is_admin=True (session cookie).
"""
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from golfapp.api.deps import get_db, get_payment_gateway, require_admin
from golfapp.api.v1.subscription import CancellationRequestResponse, request_to_response
from golfapp.application.cancellations import (
    ApproveCancellationRequestUseCase, RejectCancellationRequestUseCase,
    ProcessCancellationRequestUseCase, PreviewRefundUseCase,
    CancellationValidationError, PaymentProcessingError, ApprovalResult,
    list_cancellation_requests,
)
from golfapp.application.payments import StripeGateway
from golfapp.domain.refund import RefundCalculation, RefundCalculationError
from golfapp.infrastructure.db.models import User, CancellationRequestModel

router = APIRouter(prefix="/api/admin/cancellation-requests", tags=["admin"])


# ── Schemas ──────────────────────────────────────────────────────────────────

class RefundPreviewResponse(BaseModel):
    should_refund: bool
    refund_amount: int
    used_months: int
    used_amount: int
    service_end_date: date
    reason: str


class RefundOutcome(BaseModel):
    should_refund: bool
    refund_amount: int
    refund_id: str | None
    service_end_date: date


class DecisionResponse(BaseModel):
    success: bool
    request: CancellationRequestResponse
    refund: RefundOutcome | None = None
    message: str


class ProcessBody(BaseModel):
    action: str  # approve | reject


# ── Helpers ──────────────────────────────────────────────────────────────────

def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, CancellationValidationError):
        return HTTPException(status_code=404 if e.code == "not_found" else 400, detail=str(e))
    if isinstance(e, PaymentProcessingError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _preview(calc: RefundCalculation) -> RefundPreviewResponse:
    return RefundPreviewResponse(
        should_refund=calc.should_refund,
        refund_amount=calc.refund_amount,
        used_months=calc.used_months,
        used_amount=calc.used_amount,
        service_end_date=calc.service_end_date,
        reason=calc.reason,
    )


def _decision(db: Session, request_id: int, message: str, result: ApprovalResult | None) -> DecisionResponse:
    req = db.query(CancellationRequestModel).filter(CancellationRequestModel.id == request_id).first()
    refund = None
    if result is not None:
        refund = RefundOutcome(
            should_refund=result.calculation.should_refund,
            refund_amount=result.calculation.refund_amount,
            refund_id=result.refund_id,
            service_end_date=result.calculation.service_end_date,
        )
    return DecisionResponse(success=True, request=request_to_response(req), refund=refund, message=message)


# ── Routes ───────────────────────────────────────────────────────────────────

@router.get("", response_model=list[CancellationRequestResponse])
def admin_list_requests(
    status: str | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [request_to_response(r) for r in list_cancellation_requests(db, status)]


@router.get("/{request_id}/refund-preview", response_model=RefundPreviewResponse)
def admin_refund_preview(
    request_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        calc = PreviewRefundUseCase(db).execute(request_id)
    except (CancellationValidationError, RefundCalculationError) as e:
        raise _to_http(e) from e
    return _preview(calc)


@router.post("/{request_id}/approve", response_model=DecisionResponse)
def admin_approve_request(
    request_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    try:
        result = ApproveCancellationRequestUseCase(db, gateway).execute(request_id, admin.email)
    except (CancellationValidationError, PaymentProcessingError, RefundCalculationError) as e:
        raise _to_http(e) from e
    return _decision(db, request_id, "解約申請を承認しました", result)


@router.post("/{request_id}/reject", response_model=DecisionResponse)
def admin_reject_request(
    request_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        RejectCancellationRequestUseCase(db).execute(request_id, admin.email)
    except CancellationValidationError as e:
        raise _to_http(e) from e
    return _decision(db, request_id, "解約申請を拒否しました", None)


@router.post("/{request_id}/process", response_model=DecisionResponse)
def admin_process_request(
    request_id: int,
    body: ProcessBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    try:
        result = ProcessCancellationRequestUseCase(db, gateway).execute(request_id, body.action, admin.email)
    except (CancellationValidationError, PaymentProcessingError, RefundCalculationError) as e:
        raise _to_http(e) from e
    message = "サブスクリプションを解約しました" if body.action == "approve" else "解約申請を拒否しました"
    return _decision(db, request_id, message, result)

"""
Subscription API endpoints (current user)
"""
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from golfapp.api.deps import get_db, get_current_user
from golfapp.application.cancellations import (
    CreateCancellationRequestUseCase, CancellationValidationError, get_active_subscription,
)
from golfapp.domain.refund import business_today, is_service_active
from golfapp.infrastructure.db.models import User, SubscriptionModel, CancellationRequestModel


router = APIRouter(prefix="/api/subscription", tags=["subscription"])


# === Request/Response models ===

class CancelRequestBody(BaseModel):
    reason: str | None = None


class CancellationRequestResponse(BaseModel):
    id: int
    user_id: int
    reason: str | None
    status: str
    refund_amount: int | None
    refund_id: str | None
    service_end_date: date | None
    processed_at: datetime | None
    processed_by: str | None
    created_at: datetime | None


class CancelRequestResponse(BaseModel):
    success: bool
    request: CancellationRequestResponse


class SubscriptionResponse(BaseModel):
    id: int
    plan: str
    status: str
    start_date: datetime
    current_period_end: datetime | None
    service_end_date: date | None


class SubscriptionStatusResponse(BaseModel):
    subscription_status: str
    is_active: bool
    subscription: SubscriptionResponse | None


def request_to_response(req: CancellationRequestModel) -> CancellationRequestResponse:
    return CancellationRequestResponse(
        id=req.id,
        user_id=req.user_id,
        reason=req.reason,
        status=req.status,
        refund_amount=req.refund_amount,
        refund_id=req.refund_id,
        service_end_date=req.service_end_date,
        processed_at=req.processed_at,
        processed_by=req.processed_by,
        created_at=req.created_at,
    )


def _has_access(db: Session, user: User, today: date) -> bool:
    """Active subscription, or a canceled one still inside its service period."""
    if get_active_subscription(db, user.id):
        return True
    latest_canceled = db.query(SubscriptionModel).filter(
        SubscriptionModel.user_id == user.id,
        SubscriptionModel.service_end_date.isnot(None),
    ).order_by(SubscriptionModel.service_end_date.desc()).first()
    return bool(latest_canceled and is_service_active(today, latest_canceled.service_end_date))


# === Endpoints ===

@router.get("", response_model=SubscriptionStatusResponse)
def get_subscription(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Subscription state of the logged-in user"""
    sub = get_active_subscription(db, user.id)
    return SubscriptionStatusResponse(
        subscription_status=user.subscription_status,
        is_active=_has_access(db, user, business_today()),
        subscription=SubscriptionResponse(
            id=sub.id,
            plan=sub.plan,
            status=sub.status,
            start_date=sub.start_date,
            current_period_end=sub.current_period_end,
            service_end_date=sub.service_end_date,
        ) if sub else None,
    )


@router.post("/cancel-request", response_model=CancelRequestResponse)
def create_cancel_request(
    body: CancelRequestBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """File a cancellation request for admin review"""
    try:
        request_id = CreateCancellationRequestUseCase(db).execute(user_id=user.id, reason=body.reason)
    except CancellationValidationError as e:
        status_code = 404 if e.code == "not_found" else 400
        raise HTTPException(status_code=status_code, detail=str(e))

    req = db.query(CancellationRequestModel).filter(CancellationRequestModel.id == request_id).first()
    return CancelRequestResponse(success=True, request=request_to_response(req))

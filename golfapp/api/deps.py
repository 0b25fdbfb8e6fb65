"""
FastAPI dependencies (DB session, authentication, payment gateway)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from golfapp.application.payments import get_payment_gateway as _get_payment_gateway
from golfapp.infrastructure.db.session import get_db as _get_db
from golfapp.infrastructure.db.models import User


# Re-exported so routes and test overrides share one object
get_db = _get_db
get_payment_gateway = _get_payment_gateway


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the session cookie (API endpoints)

    Raises:
        HTTPException(401): not logged in
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="認証が必要です"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ユーザーが見つかりません"
        )

    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Current user if admin, otherwise 403."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="管理者権限が必要です")
    return user

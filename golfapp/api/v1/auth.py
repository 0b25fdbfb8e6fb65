"""
Authentication routes (login, logout)
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from golfapp.api.deps import get_db
from golfapp.auth import verify_password, get_user_by_email


router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login")
def login(request: Request, req: LoginRequest, db: Session = Depends(get_db)):
    """Password login; stores user_id in the session cookie"""
    user = get_user_by_email(db, req.email)
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="メールアドレスまたはパスワードが正しくありません")

    request.session["user_id"] = user.id
    request.session["is_admin"] = user.is_admin
    return {"success": True, "user_id": user.id}


@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    return {"success": True}

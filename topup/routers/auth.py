from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from topup.core.settings import settings
from topup.db import get_db
from topup.deps import get_current_user
from topup.models.user import User
from topup.services.security import verify_password, issue_session_token

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class LoginIn(BaseModel):
    username: str
    password: str


@router.post("/login")
async def login(payload: LoginIn, response: Response, db: AsyncSession = Depends(get_db)):
    user = (await db.execute(select(User).where(User.username == payload.username.strip()))).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="invalid_credentials")
    if user.status == "BANNED":
        raise HTTPException(status_code=403, detail="banned")
    if user.status != "APPROVED":
        raise HTTPException(status_code=403, detail="account_not_approved")

    token = issue_session_token(user.id, user.role)
    response.set_cookie(settings.COOKIE_NAME, token, httponly=True, samesite="lax")
    return {"ok": True, "user": {"id": user.id, "username": user.username, "role": user.role}}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.COOKIE_NAME)
    return {"ok": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "nickname": user.nickname,
        "role": user.role,
        "points_balance": str(user.points_balance),
    }

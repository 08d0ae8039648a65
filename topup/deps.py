from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from topup.core.settings import settings
from topup.db import get_db
from topup.services.security import read_session_token
from topup.models.user import User


def _request_token(request: Request) -> str | None:
    # 浏览器走 cookie，脚本/测试走 Bearer
    token = request.cookies.get(settings.COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _request_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="not_logged_in")
    user_id = read_session_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="invalid_token")
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user or user.status == "BANNED":
        raise HTTPException(status_code=401, detail="user_not_found")
    if user.status != "APPROVED":
        raise HTTPException(status_code=403, detail="account_not_approved")
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="admin_required")
    return user

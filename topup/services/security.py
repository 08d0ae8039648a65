from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from passlib.context import CryptContext

from topup.core.settings import settings

_TOKEN_TYPE = "session"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    # 占位哈希（如 "!"）无法通过校验
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def issue_session_token(user_id: int, role: str, days: int | None = None) -> str:
    """登录态 token：sub 为用户 id，role 仅供前端展示，服务端以数据库为准。"""
    ttl = timedelta(days=settings.JWT_EXPIRE_DAYS if days is None else days)
    claims = {
        "sub": str(user_id),
        "role": role,
        "typ": _TOKEN_TYPE,
        "exp": datetime.now(timezone.utc) + ttl,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def read_session_token(token: str) -> int | None:
    """返回 token 中的用户 id；过期、签名错误或类型不对都返回 None。"""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
    if claims.get("typ") != _TOKEN_TYPE:
        return None
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None

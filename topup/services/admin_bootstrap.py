from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from topup.core.settings import settings
from topup.models.user import User
from topup.services.security import hash_password


async def ensure_default_admin(db: AsyncSession) -> None:
    admin = (await db.execute(select(User).where(User.username == settings.DEFAULT_ADMIN_USERNAME))).scalar_one_or_none()
    if admin:
        return
    db.add(User(
        username=settings.DEFAULT_ADMIN_USERNAME,
        password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
        role="admin",
        status="APPROVED",
    ))

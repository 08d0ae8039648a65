import os
import tempfile
from datetime import datetime
from decimal import Decimal

# 测试库必须在导入 topup 之前配置好
_DB_DIR = tempfile.mkdtemp(prefix="topup-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_TIMEZONE"] = "Asia/Colombo"

import httpx
import pytest

from topup.api import create_app
from topup.db import Base, engine, AsyncSessionLocal
from topup.models import all_models  # noqa: F401
from topup.models.order import OrderStatus
from topup.models.points import EntryReason
from topup.models.user import User
from topup.services import order_service, points_service
from topup.services.security import issue_session_token

# 2026-10-17 周六 11:30 (Colombo)，所在销售周从 2026-10-15 21:30 开始
NOW = datetime(2026, 10, 17, 6, 0)
IN_PERIOD = datetime(2026, 10, 16, 8, 0)
LAST_PERIOD = datetime(2026, 10, 12, 8, 0)


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def session():
    async with AsyncSessionLocal() as s:
        yield s


async def make_user(session, balance=0, role="user", username=None, status="APPROVED") -> User:
    user = User(
        username=username or f"{role}-{os.urandom(4).hex()}",
        password_hash="!",
        role=role,
        status=status,
    )
    session.add(user)
    await session.flush()
    if balance:
        await points_service.add_points(session, user.id, balance, reason=EntryReason.ADMIN_GRANT,
                                        description="opening balance")
    await session.commit()
    return user


async def completed_sale(session, user_id: int, diamond_amount: int, quantity: int = 1,
                         created_at: datetime = IN_PERIOD):
    order = await order_service.create_order(session, user_id, diamond_amount, quantity)
    await order_service.transition_order(session, order.id, OrderStatus.COMPLETED)
    order.created_at = created_at
    await session.commit()
    return order


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_session_token(user.id, user.role)}"}


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=create_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def dec(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))

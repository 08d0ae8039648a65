from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case

from topup.models.user import User
from topup.models.order import Order, OrderStatus
from topup.models.points import PointTransaction, EntryKind, EntryReason
from topup.services.errors import UserNotFound, InsufficientPoints, LedgerError
from topup.services.rewards import q2

log = logging.getLogger("topup.ledger")


async def lock_user(db: AsyncSession, user_id: int) -> User:
    # sqlite 忽略 FOR UPDATE，由 db.py 里的 BEGIN IMMEDIATE 保证整个事务串行
    # populate_existing: 会话里已加载的 User 也要用锁住后读到的余额覆盖
    user = (await db.execute(
        select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not user:
        raise UserNotFound(user_id=user_id)
    return user


async def get_balance(db: AsyncSession, user_id: int) -> Decimal:
    balance = (await db.execute(select(User.points_balance).where(User.id == user_id))).scalar_one_or_none()
    if balance is None:
        raise UserNotFound(user_id=user_id)
    return q2(balance)


async def apply_entry(
    db: AsyncSession,
    user_id: int,
    delta,
    kind: str,
    description: str | None,
    actor_id: int | None = None,
    reason: str = EntryReason.ADMIN_GRANT,
    ref_id: str | None = None,
) -> Decimal:
    """余额变动和流水写在同一个事务里，返回新余额。

    不做余额下限检查：扣款前由调用方确认余额足够。commit 由调用方负责。
    """
    delta = q2(delta)
    if kind not in EntryKind.ALL:
        raise LedgerError(f"unknown ledger kind {kind!r}")
    if delta == 0:
        raise LedgerError("zero ledger entry")
    if (kind == EntryKind.DEDUCTED) != (delta < 0):
        raise LedgerError(f"{kind} entry with delta {delta}")

    user = await lock_user(db, user_id)
    user.points_balance = q2(user.points_balance) + delta
    db.add(PointTransaction(
        user_id=user_id,
        amount=abs(delta),
        kind=kind,
        reason=reason,
        ref_id=ref_id,
        description=description,
        actor_id=actor_id,
    ))
    await db.flush()
    log.debug("ledger user=%s kind=%s delta=%s balance=%s", user_id, kind, delta, user.points_balance)
    return q2(user.points_balance)


async def add_points(
    db: AsyncSession,
    user_id: int,
    amount,
    reason: str,
    description: str | None = None,
    actor_id: int | None = None,
    ref_id: str | None = None,
) -> Decimal:
    if q2(amount) <= 0:
        return await get_balance(db, user_id)
    return await apply_entry(db, user_id, amount, EntryKind.ADDED, description,
                             actor_id=actor_id, reason=reason, ref_id=ref_id)


async def spend_points(
    db: AsyncSession,
    user_id: int,
    cost,
    reason: str,
    description: str | None = None,
    actor_id: int | None = None,
    ref_id: str | None = None,
) -> Decimal:
    cost = q2(cost)
    if cost <= 0:
        return await get_balance(db, user_id)
    user = await lock_user(db, user_id)
    if q2(user.points_balance) < cost:
        raise InsufficientPoints(required=cost, available=q2(user.points_balance))
    return await apply_entry(db, user_id, -cost, EntryKind.DEDUCTED, description,
                             actor_id=actor_id, reason=reason, ref_id=ref_id)


async def refund_points(
    db: AsyncSession,
    user_id: int,
    amount,
    reason: str,
    description: str | None = None,
    actor_id: int | None = None,
    ref_id: str | None = None,
) -> Decimal:
    return await apply_entry(db, user_id, amount, EntryKind.REFUNDED, description,
                             actor_id=actor_id, reason=reason, ref_id=ref_id)


# ---------------- 只读聚合 ----------------

async def ledger_balance(db: AsyncSession, user_id: int) -> Decimal:
    signed = case(
        (PointTransaction.kind == EntryKind.DEDUCTED, -PointTransaction.amount),
        else_=PointTransaction.amount,
    )
    total = (await db.execute(
        select(func.coalesce(func.sum(signed), 0)).where(PointTransaction.user_id == user_id)
    )).scalar_one()
    return q2(total)


async def sum_reward_entries_since(db: AsyncSession, user_id: int, period_start: datetime,
                                   period_end: datetime | None = None) -> Decimal:
    stmt = select(func.coalesce(func.sum(PointTransaction.amount), 0)).where(
        PointTransaction.user_id == user_id,
        PointTransaction.kind == EntryKind.ADDED,
        PointTransaction.reason == EntryReason.WEEKLY_REWARD,
        PointTransaction.created_at >= period_start,
    )
    if period_end is not None:
        stmt = stmt.where(PointTransaction.created_at < period_end)
    return q2((await db.execute(stmt)).scalar_one())


async def sum_completed_sales_in_period(db: AsyncSession, user_id: int,
                                        period_start: datetime, period_end: datetime) -> int:
    total = (await db.execute(
        select(func.coalesce(func.sum(Order.diamond_amount * Order.quantity), 0)).where(
            Order.user_id == user_id,
            Order.status == OrderStatus.COMPLETED,
            Order.created_at >= period_start,
            Order.created_at < period_end,
        )
    )).scalar_one()
    return int(total)


async def list_transactions(
    db: AsyncSession,
    user_id: int | None = None,
    kind: str | None = None,
    limit: int = 100,
) -> list[PointTransaction]:
    stmt = select(PointTransaction)
    if user_id is not None:
        stmt = stmt.where(PointTransaction.user_id == user_id)
    if kind is not None:
        stmt = stmt.where(PointTransaction.kind == kind)
    stmt = stmt.order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


def transaction_to_dict(t: PointTransaction) -> dict:
    return {
        "id": t.id,
        "user_id": t.user_id,
        "amount": str(q2(t.amount)),
        "kind": t.kind,
        "reason": t.reason,
        "ref_id": t.ref_id,
        "description": t.description,
        "actor_id": t.actor_id,
        "created_at": t.created_at.isoformat(),
    }

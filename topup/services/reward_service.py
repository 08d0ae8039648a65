"""
Weekly sale reward reconciliation.

The reward for a sales week is recomputed from the week's completed sales every
time this runs and only the shortfall against what was already paid is credited.
What was already paid lives in ``weekly_rewards`` (one row per user and week), so
the dashboard and the order approval flow can both call it as often as they like.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from topup.db import AsyncSessionLocal
from topup.models.points import PointTransaction, WeeklyReward, EntryKind, EntryReason
from topup.services import points_service
from topup.services.period import current_period, RewardPeriod
from topup.services.rewards import (
    REWARD_THRESHOLD,
    compute_reward,
    format_reward_marker,
    parse_reward_marker,
    q2,
)

log = logging.getLogger("topup.rewards")


@dataclass
class ReconcileResult:
    weekly_sales: int
    reward_added: bool
    reward_amount: Decimal = field(default_factory=lambda: Decimal("0.00"))
    total_reward: Decimal = field(default_factory=lambda: Decimal("0.00"))

    def to_dict(self) -> dict:
        return {
            "weekly_sales": self.weekly_sales,
            "reward_added": self.reward_added,
            "reward_amount": str(self.reward_amount),
            "total_reward": str(self.total_reward),
        }


async def _previous_reward(db: AsyncSession, user_id: int, period: RewardPeriod) -> tuple[WeeklyReward | None, Decimal]:
    row = (await db.execute(
        select(WeeklyReward)
        .where(WeeklyReward.user_id == user_id, WeeklyReward.period_start == period.start_utc)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if row is not None:
        return row, q2(row.total_reward)

    # 旧数据没有 weekly_rewards 行，只有带标记的流水
    legacy = (await db.execute(
        select(PointTransaction)
        .where(
            PointTransaction.user_id == user_id,
            PointTransaction.kind == EntryKind.ADDED,
            PointTransaction.reason == EntryReason.WEEKLY_REWARD,
            PointTransaction.created_at >= period.start_utc,
        )
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(1)
    )).scalar_one_or_none()
    if legacy is None:
        return None, Decimal("0.00")
    parsed = parse_reward_marker(legacy.description)
    if parsed is None:
        # 标记无法解析时按本周已入账合计算，宁可少发不重复发
        parsed = await points_service.sum_reward_entries_since(db, user_id, period.start_utc, period.end_utc)
    return None, parsed


async def reconcile_weekly_reward(db: AsyncSession, user_id: int, now: datetime | None = None) -> ReconcileResult:
    """补发 user 当前销售周的奖励差额，调用方负责 commit。"""
    period = current_period(now)
    weekly_sales = await points_service.sum_completed_sales_in_period(db, user_id, period.start_utc, period.end_utc)
    if weekly_sales < REWARD_THRESHOLD:
        return ReconcileResult(weekly_sales=weekly_sales, reward_added=False)

    # 锁住用户行，同一用户的 "读已发 -> 算差额 -> 写流水" 串行执行
    await points_service.lock_user(db, user_id)
    # 拿到锁之后重新统计，避免用到加锁前的销售额
    weekly_sales = await points_service.sum_completed_sales_in_period(db, user_id, period.start_utc, period.end_utc)

    row, previous = await _previous_reward(db, user_id, period)
    total = compute_reward(weekly_sales)
    delta = q2(max(total - previous, Decimal("0")))

    if delta <= 0:
        return ReconcileResult(weekly_sales=weekly_sales, reward_added=False, total_reward=max(total, previous))

    await points_service.apply_entry(
        db,
        user_id,
        delta,
        EntryKind.ADDED,
        format_reward_marker(total, weekly_sales),
        reason=EntryReason.WEEKLY_REWARD,
        ref_id=period.start_utc.isoformat(),
    )
    if row is None:
        db.add(WeeklyReward(user_id=user_id, period_start=period.start_utc,
                            weekly_sales=weekly_sales, total_reward=total))
    else:
        row.weekly_sales = weekly_sales
        row.total_reward = total
    await db.flush()

    log.info("weekly reward user=%s sales=%s added=%s total=%s", user_id, weekly_sales, delta, total)
    return ReconcileResult(weekly_sales=weekly_sales, reward_added=True, reward_amount=delta, total_reward=total)


async def reconcile_and_commit(user_id: int, now: datetime | None = None) -> ReconcileResult:
    """单独开一个会话和事务执行结算。"""
    async with AsyncSessionLocal() as session:
        try:
            result = await reconcile_weekly_reward(session, user_id, now=now)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return result


async def reward_for_period(db: AsyncSession, user_id: int, period: RewardPeriod) -> Decimal:
    total = (await db.execute(
        select(WeeklyReward.total_reward)
        .where(WeeklyReward.user_id == user_id, WeeklyReward.period_start == period.start_utc)
    )).scalar_one_or_none()
    if total is not None:
        return q2(total)
    return await points_service.sum_reward_entries_since(db, user_id, period.start_utc, period.end_utc)

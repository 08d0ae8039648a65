from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct

from topup.models.user import User
from topup.models.order import Order, OrderStatus
from topup.models.points import PointTransaction, EntryKind, EntryReason
from topup.services import points_service
from topup.services.order_service import list_orders, count_orders_by_status, order_to_dict
from topup.services.period import WEEK, current_period, period_starting, period_containing, business_tz, to_naive_utc
from topup.services.reward_service import reconcile_weekly_reward, reward_for_period
from topup.services.rewards import q2

_sales = func.coalesce(func.sum(Order.diamond_amount * Order.quantity), 0)


async def get_weekly_summary(
    db: AsyncSession,
    week_start: date | None = None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """周报：只读，不触发结算。"""
    period = period_starting(week_start) if week_start else current_period(now)
    start, end = period.start_utc, period.end_utc

    order_filter = [
        Order.status == OrderStatus.COMPLETED,
        Order.created_at >= start,
        Order.created_at < end,
    ]
    reward_filter = [
        PointTransaction.kind == EntryKind.ADDED,
        PointTransaction.reason == EntryReason.WEEKLY_REWARD,
        PointTransaction.created_at >= start,
        PointTransaction.created_at < end,
    ]
    if user_id is not None:
        order_filter.append(Order.user_id == user_id)
        reward_filter.append(PointTransaction.user_id == user_id)

    # 销售额和奖励分开聚合，避免 join 之后行数放大
    users_n, orders_n, sales = (await db.execute(
        select(func.count(distinct(Order.user_id)), func.count(Order.id), _sales).where(*order_filter)
    )).one()

    sales_by_user = (await db.execute(
        select(Order.user_id, func.count(Order.id), _sales).where(*order_filter).group_by(Order.user_id)
    )).all()
    rewards_by_user = dict((await db.execute(
        select(PointTransaction.user_id, func.sum(PointTransaction.amount))
        .where(*reward_filter)
        .group_by(PointTransaction.user_id)
    )).all())

    # 总奖励只统计本周有完成订单的用户，与明细保持一致
    total_rewards = sum((q2(rewards_by_user.get(uid, 0)) for uid, _, _ in sales_by_user), q2(0))

    users = {}
    if sales_by_user:
        ids = [uid for uid, _, _ in sales_by_user]
        users = {u.id: u for u in (await db.execute(select(User).where(User.id.in_(ids)))).scalars().all()}

    breakdown = []
    for uid, n, user_sales in sales_by_user:
        u = users.get(uid)
        breakdown.append({
            "user_id": uid,
            "username": u.username if u else None,
            "name": u.name if u else None,
            "nickname": u.nickname if u else None,
            "order_count": int(n),
            "user_sales": int(user_sales),
            "user_reward": str(q2(rewards_by_user.get(uid, 0))),
        })
    breakdown.sort(key=lambda r: r["user_sales"], reverse=True)

    return {
        **period.to_dict(),
        "summary": {
            "total_users": int(users_n),
            "total_orders": int(orders_n),
            "total_sales": int(sales),
            "total_rewards": str(total_rewards),
        },
        "user_breakdown": breakdown,
        "available_weeks": await available_weeks(db, now=now),
    }


async def available_weeks(db: AsyncSession, limit: int = 52, now: datetime | None = None) -> list[str]:
    """最近 limit 个销售周里有完成订单的周，按开始日期倒序。"""
    since = current_period(now).start_utc - WEEK * (limit - 1)
    created = (await db.execute(
        select(distinct(Order.created_at))
        .where(Order.status == OrderStatus.COMPLETED, Order.created_at >= since)
    )).scalars().all()
    starts = {period_containing(ts).week_start.date() for ts in created}
    return [d.isoformat() for d in sorted(starts, reverse=True)[:limit]]


async def get_dashboard(db: AsyncSession, user_id: int, now: datetime | None = None) -> dict:
    # 打开面板时顺便补算本周奖励
    reconcile = await reconcile_weekly_reward(db, user_id, now=now)
    period = current_period(now)

    local_now = (now or datetime.now(timezone.utc))
    if local_now.tzinfo is None:
        local_now = local_now.replace(tzinfo=timezone.utc)
    local_now = local_now.astimezone(business_tz())
    day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    sales_today = await points_service.sum_completed_sales_in_period(
        db, user_id, to_naive_utc(day_start), to_naive_utc(day_start + timedelta(days=1))
    )

    recent = await list_orders(db, user_id=user_id, limit=10)
    return {
        "balance": str(await points_service.get_balance(db, user_id)),
        "recent_orders": [order_to_dict(o) for o in recent],
        "order_counts": await count_orders_by_status(db, user_id),
        "sales_today": sales_today,
        "weekly_sales": reconcile.weekly_sales,
        "period": period.to_dict(),
        "weekly_reward": str(await reward_for_period(db, user_id, period)),
        "reward_added": reconcile.reward_added,
        "reward_amount": str(reconcile.reward_amount),
    }

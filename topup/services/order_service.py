from __future__ import annotations

import logging
import secrets
import string
import time

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from topup.core.settings import settings
from topup.models.order import Order, OrderStatus
from topup.models.points import EntryReason
from topup.services import points_service
from topup.services.errors import (
    InvalidPackage,
    InvalidQuantity,
    OrderTooLarge,
    InvalidStatus,
    OrderNotFound,
    InvalidTransition,
)
from topup.services.events import broker, ORDERS_TOPIC, user_topic
from topup.services.reward_service import reconcile_and_commit

log = logging.getLogger("topup.orders")

_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_number() -> str:
    # 时间戳 + 随机后缀，不保证全局递增
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def validate_order_input(diamond_amount, quantity) -> tuple[int, int, int]:
    """返回 (diamond_amount, quantity, points_used)。"""
    amount = _as_int(diamond_amount)
    if amount is None or amount not in settings.DIAMOND_PACKAGES:
        raise InvalidPackage(packages=settings.DIAMOND_PACKAGES)

    qty = _as_int(quantity)
    if qty is None or not 1 <= qty <= settings.ORDER_MAX_QUANTITY:
        raise InvalidQuantity()

    points_used = amount * qty
    if points_used > settings.ORDER_MAX_POINTS:
        raise OrderTooLarge()
    return amount, qty, points_used


async def create_order(
    db: AsyncSession,
    user_id: int,
    diamond_amount,
    quantity,
    client_ref: str | None = None,
) -> Order:
    amount, qty, points_used = validate_order_input(diamond_amount, quantity)
    if client_ref is not None:
        client_ref = client_ref.strip()[:100] or None

    order_number = generate_order_number()
    await points_service.spend_points(
        db,
        user_id,
        points_used,
        reason=EntryReason.ORDER,
        description=f"Diamond request: {qty}x {amount} diamonds (Order: {order_number})",
        ref_id=order_number,
    )
    order = Order(
        order_number=order_number,
        user_id=user_id,
        client_ref=client_ref,
        diamond_amount=amount,
        quantity=qty,
        points_used=points_used,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    await db.flush()
    log.info("order created %s user=%s diamonds=%s", order_number, user_id, points_used)
    return order


async def get_order(db: AsyncSession, order_id: int, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    order = (await db.execute(stmt)).scalar_one_or_none()
    if not order:
        raise OrderNotFound(order_id=order_id)
    return order


async def transition_order(
    db: AsyncSession,
    order_id: int,
    new_status: str,
    actor_id: int | None = None,
) -> Order:
    """PENDING -> COMPLETED / REJECTED，只允许一次。

    驳回在同一事务内退回 points_used；完成后的奖励结算由 complete_order_followup
    在事务提交之后单独执行。
    """
    status = (new_status or "").strip().upper()
    if status not in OrderStatus.TERMINAL:
        raise InvalidStatus()

    order = await get_order(db, order_id, lock=True)
    if order.status != OrderStatus.PENDING:
        raise InvalidTransition(order_id=order_id, status=order.status)

    order.status = status
    order.processed_by = actor_id

    if status == OrderStatus.REJECTED:
        # 退款金额永远是下单时扣的 points_used，不重新计算
        await points_service.refund_points(
            db,
            order.user_id,
            order.points_used,
            reason=EntryReason.ORDER_REFUND,
            description=f"Order rejected: {order.order_number}",
            actor_id=actor_id,
            ref_id=order.order_number,
        )
    await db.flush()
    log.info("order %s -> %s by %s", order.order_number, status, actor_id)
    return order


async def complete_order_followup(user_id: int):
    """订单完成提交后补算周奖励。失败只记日志，不影响订单状态，下次结算会补上。"""
    try:
        return await reconcile_and_commit(user_id)
    except Exception:
        log.warning("weekly reward reconcile failed after order completion, user=%s", user_id, exc_info=True)
        return None


def publish_order_created(order: Order) -> None:
    broker.publish(ORDERS_TOPIC, "new-order", {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    })


def publish_order_status(order: Order) -> None:
    broker.publish(user_topic(order.user_id), "order-status", {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
    })


async def list_orders(
    db: AsyncSession,
    user_id: int | None = None,
    status: str | None = None,
    client_ref: str | None = None,
    limit: int | None = None,
) -> list[Order]:
    stmt = select(Order)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if status:
        stmt = stmt.where(Order.status == status.strip().upper())
    if client_ref:
        stmt = stmt.where(Order.client_ref == client_ref.strip())
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def count_orders_by_status(db: AsyncSession, user_id: int) -> dict[str, int]:
    rows = (await db.execute(
        select(Order.status, func.count(Order.id)).where(Order.user_id == user_id).group_by(Order.status)
    )).all()
    counts = {OrderStatus.PENDING: 0, OrderStatus.COMPLETED: 0, OrderStatus.REJECTED: 0}
    for status, n in rows:
        counts[status] = int(n)
    return counts


def order_to_dict(o: Order) -> dict:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "user_id": o.user_id,
        "client_ref": o.client_ref,
        "diamond_amount": o.diamond_amount,
        "quantity": o.quantity,
        "points_used": o.points_used,
        "status": o.status,
        "processed_by": o.processed_by,
        "created_at": o.created_at.isoformat() if o.created_at else None,
        "updated_at": o.updated_at.isoformat() if o.updated_at else None,
    }

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from topup.core.settings import settings
from topup.db import get_db
from topup.deps import get_current_user, get_current_admin
from topup.models.order import OrderStatus
from topup.models.user import User
from topup.services import order_service
from topup.services.order_service import order_to_dict
from topup.services.points_service import get_balance

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


class CreateOrderIn(BaseModel):
    diamond_amount: int
    quantity: int = Field(default=1)
    client_ref: str | None = Field(default=None, max_length=100)


class UpdateStatusIn(BaseModel):
    status: str


@router.get("/packages")
async def list_packages(_: User = Depends(get_current_user)):
    return {"packages": settings.DIAMOND_PACKAGES}


@router.post("/request", status_code=201)
async def create_order(payload: CreateOrderIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order = await order_service.create_order(
        db, user.id, payload.diamond_amount, payload.quantity, client_ref=payload.client_ref
    )
    balance = await get_balance(db, user.id)
    await db.commit()
    order_service.publish_order_created(order)
    return {"ok": True, "order": order_to_dict(order), "balance": str(balance)}


@router.get("/my-orders")
async def my_orders(
    status: str | None = None,
    client_ref: str | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_orders(db, user_id=user.id, status=status, client_ref=client_ref)
    return {"orders": [order_to_dict(o) for o in orders]}


@router.get("/pending")
async def pending_orders(_: User = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    orders = await order_service.list_orders(db, status=OrderStatus.PENDING)
    return {"orders": [order_to_dict(o) for o in orders]}


@router.get("/rejected")
async def rejected_orders(_: User = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    orders = await order_service.list_orders(db, status=OrderStatus.REJECTED)
    return {"orders": [order_to_dict(o) for o in orders]}


@router.patch("/{order_id}/status")
async def update_status(
    order_id: int,
    payload: UpdateStatusIn,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.transition_order(db, order_id, payload.status, actor_id=admin.id)
    await db.commit()
    order_service.publish_order_status(order)

    reward = None
    if order.status == OrderStatus.COMPLETED:
        # 订单已提交，奖励结算失败不影响本次审核结果
        result = await order_service.complete_order_followup(order.user_id)
        reward = result.to_dict() if result else None
    return {"ok": True, "order": order_to_dict(order), "reward": reward}

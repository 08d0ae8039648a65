from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from topup.core.settings import settings
from topup.models.user import User
from topup.models.points import PointRequest, EntryReason
from topup.services import points_service
from topup.services.errors import (
    InvalidAmount,
    InvalidAction,
    DuplicatePendingRequest,
    RequestNotFound,
    UserNotFound,
    TargetIsAdmin,
)

log = logging.getLogger("topup.point_requests")


def _check_amount(amount, upper: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or not 1 <= amount <= upper:
        raise InvalidAmount(max=upper)
    return amount


async def request_points(db: AsyncSession, user_id: int, amount: int, reason: str | None = None) -> PointRequest:
    amount = _check_amount(amount, settings.POINT_REQUEST_MAX)
    pending = (await db.execute(
        select(PointRequest.id).where(PointRequest.user_id == user_id, PointRequest.status == "PENDING").limit(1)
    )).scalar_one_or_none()
    if pending is not None:
        raise DuplicatePendingRequest(request_id=pending)

    req = PointRequest(
        user_id=user_id,
        requested_amount=amount,
        reason=(reason.strip()[:500] or None) if reason else None,
        status="PENDING",
    )
    db.add(req)
    await db.flush()
    log.info("point request created id=%s user=%s amount=%s", req.id, user_id, amount)
    return req


async def process_point_request(
    db: AsyncSession,
    request_id: int,
    action: str,
    admin_id: int,
    notes: str | None = None,
) -> PointRequest:
    if action not in ("approve", "reject"):
        raise InvalidAction()
    req = (await db.execute(
        select(PointRequest)
        .where(PointRequest.id == request_id, PointRequest.status == "PENDING")
        .with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not req:
        raise RequestNotFound(request_id=request_id)

    if action == "approve":
        await points_service.add_points(
            db,
            req.user_id,
            req.requested_amount,
            reason=EntryReason.POINT_REQUEST,
            description=f"Point request approved (Request #{req.id})",
            actor_id=admin_id,
            ref_id=str(req.id),
        )
        req.status = "APPROVED"
    else:
        req.status = "REJECTED"
    req.admin_id = admin_id
    req.admin_notes = (notes.strip()[:500] or None) if notes else None
    await db.flush()
    log.info("point request %s %sd by admin %s", req.id, action, admin_id)
    return req


async def grant_points(
    db: AsyncSession,
    user_id: int,
    amount: int,
    admin_id: int,
    description: str | None = None,
) -> Decimal:
    amount = _check_amount(amount, settings.ADMIN_GRANT_MAX)
    target = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not target:
        raise UserNotFound(user_id=user_id)
    if target.is_admin:
        raise TargetIsAdmin(user_id=user_id)
    balance = await points_service.add_points(
        db,
        user_id,
        amount,
        reason=EntryReason.ADMIN_GRANT,
        description=(description.strip()[:500] or None) if description else "Points added by admin",
        actor_id=admin_id,
        ref_id="manual",
    )
    log.info("admin %s granted %s points to user %s", admin_id, amount, user_id)
    return balance


async def list_point_requests(db: AsyncSession, user_id: int | None = None, status: str | None = None) -> list[PointRequest]:
    stmt = select(PointRequest)
    if user_id is not None:
        stmt = stmt.where(PointRequest.user_id == user_id)
    if status:
        stmt = stmt.where(PointRequest.status == status)
        stmt = stmt.order_by(PointRequest.created_at.asc(), PointRequest.id.asc())
    else:
        stmt = stmt.order_by(PointRequest.created_at.desc(), PointRequest.id.desc())
    return list((await db.execute(stmt)).scalars().all())


def point_request_to_dict(r: PointRequest) -> dict:
    return {
        "id": r.id,
        "user_id": r.user_id,
        "requested_amount": r.requested_amount,
        "reason": r.reason,
        "status": r.status,
        "admin_id": r.admin_id,
        "admin_notes": r.admin_notes,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }

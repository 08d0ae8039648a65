from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from topup.db import get_db
from topup.deps import get_current_user, get_current_admin
from topup.models.points import EntryKind
from topup.models.user import User
from topup.services import points_service, point_requests, report_service
from topup.services.point_requests import point_request_to_dict
from topup.services.points_service import transaction_to_dict
from topup.services.reward_service import reconcile_weekly_reward

router = APIRouter(prefix="/api/v1/users", tags=["users"])


class RequestPointsIn(BaseModel):
    amount: int
    reason: str | None = Field(default=None, max_length=500)


class ProcessRequestIn(BaseModel):
    action: str  # approve / reject
    admin_notes: str | None = Field(default=None, max_length=500)


class GrantPointsIn(BaseModel):
    amount: int
    description: str | None = Field(default=None, max_length=500)


@router.get("/dashboard")
async def dashboard(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    data = await report_service.get_dashboard(db, user.id)
    await db.commit()
    data["user"] = {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "nickname": user.nickname,
        "status": user.status,
    }
    return data


@router.get("/transaction-history")
async def transaction_history(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    # 只显示入账记录（管理员充值 + 奖励）
    rows = await points_service.list_transactions(db, user_id=user.id, kind=EntryKind.ADDED, limit=500)
    return {"transactions": [transaction_to_dict(t) for t in rows], "total": len(rows)}


@router.post("/request-points", status_code=201)
async def request_points(payload: RequestPointsIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    req = await point_requests.request_points(db, user.id, payload.amount, payload.reason)
    await db.commit()
    return {"ok": True, "request_id": req.id}


@router.get("/my-point-requests")
async def my_point_requests(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    rows = await point_requests.list_point_requests(db, user_id=user.id)
    return {"requests": [point_request_to_dict(r) for r in rows]}


# ---------------- admin ----------------

@router.get("/point-requests/pending")
async def pending_point_requests(_: User = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    rows = await point_requests.list_point_requests(db, status="PENDING")
    return {"requests": [point_request_to_dict(r) for r in rows]}


@router.patch("/point-requests/{request_id}")
async def process_point_request(
    request_id: int,
    payload: ProcessRequestIn,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    req = await point_requests.process_point_request(db, request_id, payload.action, admin.id, payload.admin_notes)
    await db.commit()
    return {"ok": True, "request": point_request_to_dict(req)}


@router.get("/transactions/all")
async def all_transactions(
    user_id: int | None = None,
    limit: int = 100,
    _: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await points_service.list_transactions(db, user_id=user_id, limit=max(1, min(limit, 1000)))
    return {"transactions": [transaction_to_dict(t) for t in rows], "total": len(rows)}


@router.post("/{user_id}/points")
async def grant_points(
    user_id: int,
    payload: GrantPointsIn,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    balance = await point_requests.grant_points(db, user_id, payload.amount, admin.id, payload.description)
    await db.commit()
    return {"ok": True, "balance": str(balance)}


@router.post("/{user_id}/reconcile")
async def reconcile(user_id: int, _: User = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    result = await reconcile_weekly_reward(db, user_id)
    await db.commit()
    return result.to_dict()

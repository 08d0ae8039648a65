from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from topup.db import get_db
from topup.deps import get_current_admin
from topup.models.user import User
from topup.services.period import current_period
from topup.services.report_service import get_weekly_summary

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get("/period")
async def period(_: User = Depends(get_current_admin)):
    return current_period().to_dict()


@router.get("/weekly")
async def weekly(
    week_start: str | None = None,
    user_id: int | None = None,
    _: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    start = None
    if week_start:
        try:
            start = date.fromisoformat(week_start)
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid_week_start")
    return await get_weekly_summary(db, week_start=start, user_id=user_id)

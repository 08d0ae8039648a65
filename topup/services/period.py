"""
Sales week boundaries.

A sales week runs from Thursday 21:30 up to (but excluding) the following Thursday
21:30, in the business timezone (Asia/Colombo unless configured otherwise). The
weekday and the hour are both read in that timezone, so the result never depends on
the host's local time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from topup.core.settings import settings

WEEK = timedelta(days=7)


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.APP_TIMEZONE)


def _anchor_time() -> time:
    return time(settings.WEEK_ANCHOR_HOUR, settings.WEEK_ANCHOR_MINUTE)


def to_naive_utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RewardPeriod:
    week_start: datetime  # aware, business timezone
    week_end: datetime

    @property
    def start_utc(self) -> datetime:
        return to_naive_utc(self.week_start)

    @property
    def end_utc(self) -> datetime:
        return to_naive_utc(self.week_end)

    def contains(self, instant: datetime) -> bool:
        """instant 为 naive 时按 UTC 处理。"""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return self.week_start <= instant < self.week_end

    def to_dict(self) -> dict:
        return {
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
        }


def _period_from_anchor_day(day: date) -> RewardPeriod:
    tz = business_tz()
    start = datetime.combine(day, _anchor_time(), tzinfo=tz)
    end = datetime.combine(day + WEEK, _anchor_time(), tzinfo=tz)
    return RewardPeriod(week_start=start, week_end=end)


def current_period(now: datetime | None = None) -> RewardPeriod:
    """返回 now 所在的销售周。now 为空取当前时间；naive datetime 视为 UTC。"""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(business_tz())

    anchor = settings.WEEK_ANCHOR_WEEKDAY
    days_back = (local.weekday() - anchor) % 7
    if days_back == 0 and local.time() < _anchor_time():
        # 周四 21:30 之前仍属于上一周
        days_back = 7
    return _period_from_anchor_day(local.date() - timedelta(days=days_back))


def period_containing(instant: datetime) -> RewardPeriod:
    return current_period(instant)


def period_starting(day: date) -> RewardPeriod:
    """按指定日期取周期；不是周四时向后取最近的周四。"""
    days_forward = (settings.WEEK_ANCHOR_WEEKDAY - day.weekday()) % 7
    return _period_from_anchor_day(day + timedelta(days=days_forward))

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from topup.services.period import current_period, period_starting, RewardPeriod

COLOMBO = ZoneInfo("Asia/Colombo")


def colombo(*args) -> datetime:
    return datetime(*args, tzinfo=COLOMBO)


class TestCurrentPeriod:

    def test_thursday_before_anchor_belongs_to_previous_week(self):
        before = current_period(colombo(2026, 10, 15, 21, 29))
        at = current_period(colombo(2026, 10, 15, 21, 30))

        assert before.week_start == colombo(2026, 10, 8, 21, 30)
        assert at.week_start == colombo(2026, 10, 15, 21, 30)
        assert at.week_start - before.week_start == timedelta(days=7)

    def test_week_end_is_seven_days_after_start(self):
        p = current_period(colombo(2026, 10, 17, 12, 0))
        assert p.week_end - p.week_start == timedelta(days=7)
        assert p.week_end == colombo(2026, 10, 22, 21, 30)

    def test_days_after_anchor_back_up_within_week(self):
        for day in (16, 17, 18):  # Fri, Sat, Sun
            assert current_period(colombo(2026, 10, day, 3, 0)).week_start == colombo(2026, 10, 15, 21, 30)

    def test_days_before_anchor_back_up_to_prior_week(self):
        for day in (19, 20, 21):  # Mon, Tue, Wed
            assert current_period(colombo(2026, 10, day, 23, 59)).week_start == colombo(2026, 10, 15, 21, 30)

    def test_uses_business_timezone_not_input_timezone(self):
        # 纽约周四 12:00 = Colombo 周四 21:30
        ny = ZoneInfo("America/New_York")
        assert current_period(datetime(2026, 10, 15, 11, 59, tzinfo=ny)).week_start == colombo(2026, 10, 8, 21, 30)
        assert current_period(datetime(2026, 10, 15, 12, 0, tzinfo=ny)).week_start == colombo(2026, 10, 15, 21, 30)

    def test_weekday_is_read_in_business_timezone(self):
        # UTC 周三 23:00 已经是 Colombo 周四 04:30，仍在上一周
        p = current_period(datetime(2026, 10, 14, 23, 0, tzinfo=timezone.utc))
        assert p.week_start == colombo(2026, 10, 8, 21, 30)
        # UTC 周四 20:00 是 Colombo 周五 01:30
        p = current_period(datetime(2026, 10, 15, 20, 0, tzinfo=timezone.utc))
        assert p.week_start == colombo(2026, 10, 15, 21, 30)

    def test_naive_input_is_utc(self):
        assert current_period(datetime(2026, 10, 15, 16, 0)) == current_period(
            datetime(2026, 10, 15, 16, 0, tzinfo=timezone.utc)
        )

    def test_default_now(self):
        p = current_period()
        assert p.contains(datetime.now(timezone.utc))

    def test_utc_bounds(self):
        p = current_period(colombo(2026, 10, 17, 12, 0))
        assert p.start_utc == datetime(2026, 10, 15, 16, 0)
        assert p.end_utc == datetime(2026, 10, 22, 16, 0)
        assert p.start_utc.tzinfo is None


class TestPeriodStarting:

    def test_anchor_day(self):
        assert period_starting(date(2026, 10, 15)).week_start == colombo(2026, 10, 15, 21, 30)

    def test_snaps_forward(self):
        assert period_starting(date(2026, 10, 16)).week_start == colombo(2026, 10, 22, 21, 30)
        assert period_starting(date(2026, 10, 12)).week_start == colombo(2026, 10, 15, 21, 30)


class TestContains:

    def test_half_open_interval(self):
        p = RewardPeriod(colombo(2026, 10, 15, 21, 30), colombo(2026, 10, 22, 21, 30))
        assert p.contains(datetime(2026, 10, 15, 16, 0))
        assert not p.contains(datetime(2026, 10, 22, 16, 0))
        assert not p.contains(datetime(2026, 10, 15, 15, 59))

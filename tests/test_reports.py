from datetime import date, timedelta

import pytest

from topup.services import point_requests, points_service, report_service
from topup.services.errors import (
    DuplicatePendingRequest,
    InvalidAction,
    InvalidAmount,
    RequestNotFound,
    TargetIsAdmin,
)
from topup.services.reward_service import reconcile_weekly_reward
from topup.services import order_service

from conftest import NOW, IN_PERIOD, LAST_PERIOD, make_user, completed_sale, dec


class TestWeeklySummary:

    async def test_totals_and_breakdown(self, session):
        alice = await make_user(session, balance=50000, username="alice")
        bob = await make_user(session, balance=50000, username="bob")
        await completed_sale(session, alice.id, 10000, 2)
        await completed_sale(session, bob.id, 1000, 3)
        await completed_sale(session, bob.id, 1000, 1, created_at=LAST_PERIOD)
        await reconcile_weekly_reward(session, alice.id, now=NOW)
        await session.commit()
        for entry in await points_service.list_transactions(session, user_id=alice.id):
            if entry.reason == "weekly_reward":
                entry.created_at = IN_PERIOD
        await session.commit()

        report = await report_service.get_weekly_summary(session, now=NOW)

        assert report["summary"] == {
            "total_users": 2,
            "total_orders": 2,
            "total_sales": 23000,
            "total_rewards": "167.00",
        }
        assert [r["username"] for r in report["user_breakdown"]] == ["alice", "bob"]
        assert report["user_breakdown"][0]["user_reward"] == "167.00"
        assert report["user_breakdown"][1]["user_reward"] == "0.00"
        assert report["available_weeks"] == ["2026-10-15", "2026-10-08"]

    async def test_explicit_week_and_user_filter(self, session):
        alice = await make_user(session, balance=50000)
        bob = await make_user(session, balance=50000)
        await completed_sale(session, alice.id, 1000, 1, created_at=LAST_PERIOD)
        await completed_sale(session, bob.id, 500, 1, created_at=LAST_PERIOD)

        report = await report_service.get_weekly_summary(session, week_start=date(2026, 10, 8), user_id=bob.id)
        assert report["week_start"].startswith("2026-10-08T21:30")
        assert report["summary"]["total_sales"] == 500
        assert report["summary"]["total_users"] == 1

    async def test_non_anchor_date_snaps_forward(self, session):
        user = await make_user(session, balance=50000)
        await completed_sale(session, user.id, 1000, 1, created_at=LAST_PERIOD)

        # 周一 10-05 -> 周四 10-08
        report = await report_service.get_weekly_summary(session, week_start=date(2026, 10, 5))
        assert report["week_start"].startswith("2026-10-08T21:30")
        assert report["summary"]["total_sales"] == 1000

    async def test_report_is_read_only(self, session):
        user = await make_user(session, balance=50000)
        await completed_sale(session, user.id, 10000, 1)
        before = await points_service.get_balance(session, user.id)

        await report_service.get_weekly_summary(session, now=NOW)
        assert await points_service.get_balance(session, user.id) == before

    async def test_available_weeks_only_looks_back_a_year(self, session):
        user = await make_user(session, balance=50000)
        await completed_sale(session, user.id, 1000, 1)
        await completed_sale(session, user.id, 1000, 1, created_at=IN_PERIOD - timedelta(weeks=60))

        assert await report_service.available_weeks(session, now=NOW) == ["2026-10-15"]
        assert len(await report_service.available_weeks(session, limit=70, now=NOW)) == 2


async def test_dashboard_reconciles_first(session):
    user = await make_user(session, balance=20000)
    await completed_sale(session, user.id, 5000, 1)
    pending = await order_service.create_order(session, user.id, 10, 1)
    await session.commit()

    data = await report_service.get_dashboard(session, user.id, now=NOW)
    await session.commit()

    assert data["weekly_sales"] == 5000
    assert data["reward_added"] is True
    assert data["reward_amount"] == "5.00"
    assert data["weekly_reward"] == "5.00"
    assert data["balance"] == "14995.00"
    assert data["order_counts"] == {"PENDING": 1, "COMPLETED": 1, "REJECTED": 0}
    assert data["recent_orders"][0]["order_number"] == pending.order_number


class TestPointRequests:

    async def test_approve_credits_points(self, session):
        admin = await make_user(session, role="admin")
        user = await make_user(session)
        req = await point_requests.request_points(session, user.id, 700, "top up please")
        await session.commit()

        with pytest.raises(DuplicatePendingRequest):
            await point_requests.request_points(session, user.id, 100)

        req = await point_requests.process_point_request(session, req.id, "approve", admin.id, "ok")
        await session.commit()

        assert req.status == "APPROVED"
        assert await points_service.get_balance(session, user.id) == dec(700)
        with pytest.raises(RequestNotFound):
            await point_requests.process_point_request(session, req.id, "approve", admin.id)

    async def test_reject_credits_nothing(self, session):
        admin = await make_user(session, role="admin")
        user = await make_user(session)
        req = await point_requests.request_points(session, user.id, 700)
        req = await point_requests.process_point_request(session, req.id, "reject", admin.id)
        await session.commit()

        assert req.status == "REJECTED"
        assert await points_service.get_balance(session, user.id) == dec(0)

    @pytest.mark.parametrize("amount", [0, -5, 100001])
    async def test_amount_bounds(self, session, amount):
        user = await make_user(session)
        with pytest.raises(InvalidAmount):
            await point_requests.request_points(session, user.id, amount)

    async def test_unknown_action(self, session):
        with pytest.raises(InvalidAction):
            await point_requests.process_point_request(session, 1, "maybe", 1)


class TestGrantPoints:

    async def test_grant(self, session):
        admin = await make_user(session, role="admin")
        user = await make_user(session, balance=10)
        assert await point_requests.grant_points(session, user.id, 90, admin.id, "bonus") == dec(100)
        rows = await points_service.list_transactions(session, user_id=user.id)
        assert rows[0].actor_id == admin.id

    async def test_cannot_grant_to_admin(self, session):
        admin = await make_user(session, role="admin")
        with pytest.raises(TargetIsAdmin):
            await point_requests.grant_points(session, admin.id, 90, admin.id)

from decimal import Decimal

import pytest

from topup.services.rewards import compute_reward, format_reward_marker, parse_reward_marker


@pytest.mark.parametrize("sales,expected", [
    (0, "0.00"),
    (4499, "0.00"),
    (4500, "0.00"),
    (4600, "1.00"),
    (10000, "55.00"),
    (18000, "135.00"),
    (20000, "167.00"),
    (45000, "567.00"),
    (90000, "1512.00"),
    (100000, "1772.00"),
])
def test_tier_schedule(sales, expected):
    assert compute_reward(sales) == Decimal(expected)


def test_rounds_half_up():
    # 4500.5 -> 0.005 -> 0.01
    assert compute_reward(Decimal("4500.5")) == Decimal("0.01")


def test_monotonic_across_band_edges():
    previous = Decimal("0")
    for sales in range(0, 120001, 250):
        reward = compute_reward(sales)
        assert reward >= previous
        previous = reward


def test_marker_round_trip_keeps_total():
    text = format_reward_marker(Decimal("1772"), 100000)
    assert text == "Weekly Sale Reward: 1772.00 (Sales: 100,000)"
    assert parse_reward_marker(text) == Decimal("1772.00")


@pytest.mark.parametrize("text", [None, "", "Order rejected: ORD-1", "Weekly Sale Reward: 1.2.3"])
def test_unparseable_marker(text):
    assert parse_reward_marker(text) is None

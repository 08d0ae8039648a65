from __future__ import annotations

import re
from decimal import Decimal, ROUND_HALF_UP

D = Decimal
CENT = D("0.01")

REWARD_THRESHOLD = 4500

# (下限, 上限, 费率)，每一档只对落在本档区间内的销售额计提
REWARD_TIERS: tuple[tuple[int, int | None, Decimal], ...] = (
    (4500, 18000, D("0.010")),
    (18000, 45000, D("0.016")),
    (45000, 90000, D("0.021")),
    (90000, None, D("0.026")),
)

REWARD_MARKER_PREFIX = "Weekly Sale Reward"
_MARKER_RE = re.compile(r"Weekly Sale Reward: ([\d.]+)")


def q2(value) -> Decimal:
    return D(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_reward(weekly_sales) -> Decimal:
    sales = D(str(weekly_sales))
    if sales < REWARD_THRESHOLD:
        return D("0.00")
    total = D("0")
    for low, high, rate in REWARD_TIERS:
        if sales <= low:
            break
        top = sales if high is None else min(sales, D(high))
        total += (top - low) * rate
    return q2(total)


def format_reward_marker(total_reward, weekly_sales) -> str:
    return f"{REWARD_MARKER_PREFIX}: {q2(total_reward)} (Sales: {int(weekly_sales):,})"


def parse_reward_marker(description: str | None) -> Decimal | None:
    """从旧格式的流水描述里取出累计奖励，格式不符返回 None。"""
    match = _MARKER_RE.search(description or "")
    if not match:
        return None
    try:
        return q2(match.group(1))
    except ArithmeticError:
        return None

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Integer, ForeignKey, DateTime, String, Numeric, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from topup.db import Base, utcnow


class EntryKind:
    ADDED = "ADDED"
    DEDUCTED = "DEDUCTED"
    REFUNDED = "REFUNDED"

    ALL = (ADDED, DEDUCTED, REFUNDED)


class EntryReason:
    ORDER = "order"
    ORDER_REFUND = "order_refund"
    WEEKLY_REWARD = "weekly_reward"
    ADMIN_GRANT = "admin_grant"
    POINT_REQUEST = "point_request"


class PointTransaction(Base):
    """积分流水，只追加，不更新不删除。amount 恒为正数，方向由 kind 决定。"""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    kind: Mapped[str] = mapped_column(String(16))  # ADDED/DEDUCTED/REFUNDED
    reason: Mapped[str] = mapped_column(String(32))  # order/order_refund/weekly_reward/admin_grant/point_request
    ref_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.kind == EntryKind.DEDUCTED else self.amount


class WeeklyReward(Base):
    """每个用户每个销售周累计已发放的奖励，(user_id, period_start) 唯一。"""

    __tablename__ = "weekly_rewards"
    __table_args__ = (UniqueConstraint("user_id", "period_start", name="uq_weekly_rewards_user_period"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    period_start: Mapped[datetime] = mapped_column(DateTime)  # naive UTC
    weekly_sales: Mapped[int] = mapped_column(Integer, default=0)
    total_reward: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class PointRequest(Base):
    __tablename__ = "point_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    requested_amount: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="PENDING")  # PENDING/APPROVED/REJECTED
    admin_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

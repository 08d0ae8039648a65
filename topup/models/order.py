from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from topup.db import Base, utcnow


class OrderStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"

    TERMINAL = (COMPLETED, REJECTED)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_user_status_created", "user_id", "status", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    client_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)  # 充值对象 ID

    diamond_amount: Mapped[int] = mapped_column(Integer)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    points_used: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(16), default=OrderStatus.PENDING)
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def total_diamonds(self) -> int:
        return self.diamond_amount * self.quantity

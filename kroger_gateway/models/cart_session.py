"""Cart session model tracking one order-placement attempt."""

import enum

from sqlalchemy import Enum, Integer, String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class CartSessionStatus(str, enum.Enum):
    """Lifecycle of a cart session: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CartSession(Base, TimestampMixin):
    """Model for storing an order's grocery items and per-item outcome.

    items_added entries are product summaries plus the original line under
    "name"; items_failed entries look like {"item": ..., "error": ...}.
    """

    __tablename__ = "cart_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    meal_plan_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    grocery_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    cart_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[CartSessionStatus] = mapped_column(
        Enum(CartSessionStatus, values_callable=lambda x: [e.value for e in x]),
        default=CartSessionStatus.PENDING,
        nullable=False,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    items_added: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    items_failed: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    cart_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CartSession(id={self.id}, status={self.status.value}, "
            f"progress={self.progress})>"
        )

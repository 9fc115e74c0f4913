"""Per-user Kroger OAuth token storage model."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class UserToken(Base, TimestampMixin):
    """One row per user holding their Kroger authorization-code tokens."""

    __tablename__ = "user_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(String(4000), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    scope: Mapped[str | None] = mapped_column(String(500), nullable=True)
    token_type: Mapped[str] = mapped_column(String(50), default="Bearer", nullable=False)

    def __repr__(self) -> str:
        return f"<UserToken(user_id={self.user_id}, expires_at={self.expires_at})>"

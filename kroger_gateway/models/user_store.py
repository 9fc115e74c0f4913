"""The Kroger location a user picked for pickup or delivery."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class UserStore(Base, TimestampMixin):
    __tablename__ = "user_stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    store_id: Mapped[str] = mapped_column(String(50), nullable=False)
    store_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    store_address: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    def __repr__(self) -> str:
        return f"<UserStore(user_id={self.user_id}, store_id={self.store_id})>"

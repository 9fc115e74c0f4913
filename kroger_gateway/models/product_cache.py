"""Read-through cache of Kroger product search results."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProductCacheEntry(Base):
    """Raw search results keyed by (lower-cased term, store).

    Rows are only served while expires_at is in the future.
    """

    __tablename__ = "product_cache"
    __table_args__ = (
        UniqueConstraint("search_term", "store_id", name="uq_product_cache_term_store"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    search_term: Mapped[str] = mapped_column(String(255), nullable=False)
    store_id: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    product_data: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProductCacheEntry(term='{self.search_term}', store={self.store_id})>"

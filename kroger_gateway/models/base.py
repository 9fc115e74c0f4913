"""SQLAlchemy base and helper utilities."""

import re
from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


def normalize_search_term(term: str) -> str:
    """Normalize a product search term into its cache key.

    Lower-cases and collapses whitespace, so "Baby  Spinach" and
    "baby spinach" share a cache row.
    """
    return re.sub(r"\s+", " ", term.lower()).strip()

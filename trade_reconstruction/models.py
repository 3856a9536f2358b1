"""
Trade Reconstruction - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM model for the open-position fill cache.

TABLES:
- cached_fills: Fills of positions still open at the end of a run

Rows are grouped by cache_key (one key per account/variant)
and replaced wholesale on every save.

============================================================
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


# ============================================================
# CACHED FILL MODEL
# ============================================================

class CachedFillModel(Base):
    """
    Persisted fill of an open position.

    The full RawFill is stored as JSON in `payload`; the indexed
    columns exist for ordering and inspection only.
    """

    __tablename__ = "cached_fills"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Grouping
    cache_key: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Fill identity
    trade_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    inst_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    ts: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Serialized RawFill
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_cached_fills_key_ts", "cache_key", "ts"),
    )

"""
Summarium - SQLAlchemy ORM Models
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import JSON, Date, DateTime, Enum as SQLEnum, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from domain.entities import SummaryStatus, SummaryType


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class SummaryRecord(Base):
    """Persisted summary, one row per (type, period)."""
    __tablename__ = "summaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    type: Mapped[SummaryType] = mapped_column(SQLEnum(SummaryType, native_enum=False, length=10))
    period_key: Mapped[str] = mapped_column(String(32))  # 2024-01-05 | 2024-01-01_2024-01-07 | 2024-01
    period_start: Mapped[date] = mapped_column(Date, index=True)

    # Period identity, exactly one populated per type
    day: Mapped[Optional[date]] = mapped_column("date", Date, nullable=True)
    week_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    week_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    month: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)

    status: Mapped[SummaryStatus] = mapped_column(
        SQLEnum(SummaryStatus, native_enum=False, length=12), index=True
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=0)
    related_summary_ids: Mapped[List[str]] = mapped_column(JSON, default=list)

    full_summary: Mapped[str] = mapped_column(Text, default="")
    short_summary: Mapped[str] = mapped_column(Text, default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("type", "period_key", name="uq_summaries_type_period"),
        Index("ix_summaries_status_created", "status", "created_at"),
        Index("ix_summaries_type_period_start", "type", "period_start"),
    )

    def __repr__(self) -> str:
        return f"<SummaryRecord {self.type.value} {self.period_key} {self.status.value}>"

"""
Summarium - SQLAlchemy Summary Repository

Async repository over SQLAlchemy 2.0. Any async driver URL works; the
default deployment uses SQLite through aiosqlite.

Database errors never escape: every method converts ``SQLAlchemyError``
into a ``PERSISTENCE_ERROR`` failure result.
"""
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.errors import ConcurrentModificationError, PersistenceError
from core.types import Result
from db.interfaces import (
    ISummaryRepository,
    Page,
    SortField,
    SummaryQuery,
    SummaryStatistics,
)
from db.models import Base, SummaryRecord
from domain.entities import Summary, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth, iter_days, months_overlapping, weeks_overlapping
from observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def to_domain(record: SummaryRecord) -> Summary:
    week = WeekRange(record.week_start) if record.week_start else None
    month = YearMonth.parse(record.month) if record.month else None
    return Summary(
        id=record.id,
        type=record.type,
        date=record.day,
        week=week,
        month=month,
        status=record.status,
        retry_count=record.retry_count,
        related_summary_ids=record.related_summary_ids or [],
        full_summary=record.full_summary or "",
        short_summary=record.short_summary or "",
        error_message=record.error_message,
        created_at=_utc(record.created_at),
        updated_at=_utc(record.updated_at),
        version=record.version or 0,
    )


def record_values(summary: Summary) -> Dict[str, Any]:
    """Column values of a summary, keyed by ``SummaryRecord`` attribute."""
    return {
        "id": summary.id,
        "type": summary.type,
        "period_key": summary.period_key,
        "period_start": summary.period_start,
        "day": summary.date,
        "week_start": summary.week_start,
        "week_end": summary.week_end,
        "month": summary.month.key if summary.month else None,
        "status": summary.status,
        "retry_count": summary.retry_count,
        "version": summary.version,
        "related_summary_ids": list(summary.related_summary_ids),
        "full_summary": summary.full_summary,
        "short_summary": summary.short_summary,
        "error_message": summary.error_message,
        "created_at": summary.created_at,
        "updated_at": summary.updated_at,
    }


def apply_to_record(summary: Summary, record: SummaryRecord) -> SummaryRecord:
    for attribute, value in record_values(summary).items():
        setattr(record, attribute, value)
    return record


_SORT_COLUMNS = {
    SortField.CREATED_AT: SummaryRecord.created_at,
    SortField.UPDATED_AT: SummaryRecord.updated_at,
    SortField.PERIOD_START: SummaryRecord.period_start,
}


class SqlSummaryRepository(ISummaryRepository):
    """
    Summary repository backed by a relational database.

    Usage:
        repository = SqlSummaryRepository.from_url("sqlite+aiosqlite:///./summarium.db")
        await repository.create_schema()
        ...
        await repository.close()
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False, **engine_kwargs: Any) -> "SqlSummaryRepository":
        engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
        logger.info("sql_repository_created", url=database_url.split("@")[-1])
        return cls(engine)

    async def create_schema(self) -> None:
        """Create all database tables."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("sql_schema_created")

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional session: commit on success, rollback on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _run(self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> Result[T]:
        try:
            async with self.session() as session:
                return Result.success(await fn(session))
        except SQLAlchemyError as e:
            logger.error("repository_operation_failed", operation=operation, error=str(e))
            return Result.from_exception(
                PersistenceError(f"{operation} failed: {e}", operation=operation, cause=e)
            )

    async def _one(self, session: AsyncSession, *criteria: Any) -> Optional[Summary]:
        record = (
            await session.execute(select(SummaryRecord).where(*criteria))
        ).scalar_one_or_none()
        return to_domain(record) if record else None

    async def _many(self, session: AsyncSession, stmt: Any) -> List[Summary]:
        records = (await session.execute(stmt)).scalars().all()
        return [to_domain(r) for r in records]

    async def _existing_keys(self, session: AsyncSession, summary_type: SummaryType, *criteria: Any) -> set:
        stmt = select(SummaryRecord.period_key).where(SummaryRecord.type == summary_type, *criteria)
        return set((await session.execute(stmt)).scalars().all())

    # -- identity -------------------------------------------------------------

    async def find_by_id(self, summary_id: str) -> Result[Optional[Summary]]:
        async def query(session: AsyncSession) -> Optional[Summary]:
            record = await session.get(SummaryRecord, summary_id)
            return to_domain(record) if record else None

        return await self._run("find_by_id", query)

    async def save(self, summary: Summary, expected_version: Optional[int] = None) -> Result[None]:
        async def upsert(session: AsyncSession) -> None:
            record = await session.get(SummaryRecord, summary.id)
            if record is None:
                session.add(apply_to_record(summary, SummaryRecord()))
            else:
                apply_to_record(summary, record)
            await session.flush()

        async def compare_and_set(session: AsyncSession) -> None:
            values = record_values(summary)
            del values["id"]
            updated = await session.execute(
                update(SummaryRecord)
                .where(SummaryRecord.id == summary.id, SummaryRecord.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                actual = await session.scalar(
                    select(SummaryRecord.version).where(SummaryRecord.id == summary.id)
                )
                raise ConcurrentModificationError(summary.id, expected_version, actual)

        if expected_version is None:
            return await self._run("save", upsert)
        try:
            return await self._run("save", compare_and_set)
        except ConcurrentModificationError as e:
            logger.warning("repository_operation_failed", operation="save", error=str(e))
            return Result.from_exception(e)

    async def delete(self, summary_id: str) -> Result[bool]:
        async def remove(session: AsyncSession) -> bool:
            record = await session.get(SummaryRecord, summary_id)
            if record is None:
                return False
            await session.delete(record)
            return True

        return await self._run("delete", remove)

    # -- period lookups -------------------------------------------------------

    async def find_daily_summary_by_date(self, day: date) -> Result[Optional[Summary]]:
        return await self._run(
            "find_daily_summary_by_date",
            lambda s: self._one(
                s, SummaryRecord.type == SummaryType.DAILY, SummaryRecord.period_key == day.isoformat()
            ),
        )

    async def find_weekly_summary_by_range(self, week: WeekRange) -> Result[Optional[Summary]]:
        return await self._run(
            "find_weekly_summary_by_range",
            lambda s: self._one(
                s, SummaryRecord.type == SummaryType.WEEKLY, SummaryRecord.period_key == week.key
            ),
        )

    async def find_monthly_summary_by_month(self, month: YearMonth) -> Result[Optional[Summary]]:
        return await self._run(
            "find_monthly_summary_by_month",
            lambda s: self._one(
                s, SummaryRecord.type == SummaryType.MONTHLY, SummaryRecord.period_key == month.key
            ),
        )

    # -- status and range queries ---------------------------------------------

    async def find_by_status(self, status: SummaryStatus) -> Result[List[Summary]]:
        stmt = (
            select(SummaryRecord)
            .where(SummaryRecord.status == status)
            .order_by(SummaryRecord.created_at)
        )
        return await self._run("find_by_status", lambda s: self._many(s, stmt))

    async def find_by_type_and_date_range(
        self,
        summary_type: SummaryType,
        start: date,
        end: date,
    ) -> Result[List[Summary]]:
        stmt = (
            select(SummaryRecord)
            .where(
                SummaryRecord.type == summary_type,
                SummaryRecord.period_start >= start,
                SummaryRecord.period_start <= end,
            )
            .order_by(SummaryRecord.period_start)
        )
        return await self._run("find_by_type_and_date_range", lambda s: self._many(s, stmt))

    async def find_pending_summaries(self) -> Result[List[Summary]]:
        stmt = (
            select(SummaryRecord)
            .where(SummaryRecord.status.in_([SummaryStatus.NEW, SummaryStatus.FAILED]))
            .order_by(SummaryRecord.created_at)
        )
        return await self._run("find_pending_summaries", lambda s: self._many(s, stmt))

    # -- gap queries ----------------------------------------------------------

    async def find_missing_daily_summaries(self, start: date, end: date) -> Result[List[date]]:
        async def query(session: AsyncSession) -> List[date]:
            existing = await self._existing_keys(
                session,
                SummaryType.DAILY,
                SummaryRecord.period_start >= start,
                SummaryRecord.period_start <= end,
            )
            return [d for d in iter_days(start, end) if d.isoformat() not in existing]

        return await self._run("find_missing_daily_summaries", query)

    async def find_missing_weekly_summaries(self, start: date, end: date) -> Result[List[WeekRange]]:
        weeks = weeks_overlapping(start, end)

        async def query(session: AsyncSession) -> List[WeekRange]:
            existing = await self._existing_keys(
                session, SummaryType.WEEKLY, SummaryRecord.period_key.in_([w.key for w in weeks])
            )
            return [w for w in weeks if w.key not in existing]

        return await self._run("find_missing_weekly_summaries", query)

    async def find_missing_monthly_summaries(self, start: date, end: date) -> Result[List[YearMonth]]:
        months = months_overlapping(start, end)

        async def query(session: AsyncSession) -> List[YearMonth]:
            existing = await self._existing_keys(
                session, SummaryType.MONTHLY, SummaryRecord.period_key.in_([m.key for m in months])
            )
            return [m for m in months if m.key not in existing]

        return await self._run("find_missing_monthly_summaries", query)

    # -- child lookups --------------------------------------------------------

    async def find_daily_summaries_for_week(self, week: WeekRange) -> Result[List[Summary]]:
        stmt = (
            select(SummaryRecord)
            .where(
                SummaryRecord.type == SummaryType.DAILY,
                SummaryRecord.period_start >= week.start,
                SummaryRecord.period_start <= week.end,
            )
            .order_by(SummaryRecord.period_start)
        )
        return await self._run("find_daily_summaries_for_week", lambda s: self._many(s, stmt))

    async def find_weekly_summaries_for_month(self, month: YearMonth) -> Result[List[Summary]]:
        stmt = (
            select(SummaryRecord)
            .where(
                SummaryRecord.type == SummaryType.WEEKLY,
                SummaryRecord.period_key.in_([w.key for w in month.weeks()]),
            )
            .order_by(SummaryRecord.period_start)
        )
        return await self._run("find_weekly_summaries_for_month", lambda s: self._many(s, stmt))

    # -- listing --------------------------------------------------------------

    async def find_all(self, query: Optional[SummaryQuery] = None) -> Result[Page[Summary]]:
        query = query or SummaryQuery()
        criteria = []
        if query.type is not None:
            criteria.append(SummaryRecord.type == query.type)
        if query.status is not None:
            criteria.append(SummaryRecord.status == query.status)

        column = _SORT_COLUMNS[query.sort_by]
        stmt = (
            select(SummaryRecord)
            .where(*criteria)
            .order_by(column.desc() if query.descending else column.asc())
            .offset(query.offset)
        )
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        async def run(session: AsyncSession) -> Page[Summary]:
            total = (
                await session.execute(select(func.count()).select_from(SummaryRecord).where(*criteria))
            ).scalar_one()
            items = await self._many(session, stmt)
            return Page(items=tuple(items), total=total, offset=query.offset, limit=query.limit)

        return await self._run("find_all", run)

    async def get_statistics(self) -> Result[SummaryStatistics]:
        async def run(session: AsyncSession) -> SummaryStatistics:
            by_type = dict(
                (await session.execute(
                    select(SummaryRecord.type, func.count()).group_by(SummaryRecord.type)
                )).all()
            )
            by_status = dict(
                (await session.execute(
                    select(SummaryRecord.status, func.count()).group_by(SummaryRecord.status)
                )).all()
            )
            return SummaryStatistics(
                total=sum(by_type.values()),
                daily=by_type.get(SummaryType.DAILY, 0),
                weekly=by_type.get(SummaryType.WEEKLY, 0),
                monthly=by_type.get(SummaryType.MONTHLY, 0),
                completed=by_status.get(SummaryStatus.DONE, 0),
                pending=by_status.get(SummaryStatus.NEW, 0),
                processing=by_status.get(SummaryStatus.PROCESSING, 0),
                failed=by_status.get(SummaryStatus.FAILED, 0),
            )

        return await self._run("get_statistics", run)

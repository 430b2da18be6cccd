"""
Summarium - Persistence Layer

Usage:
    from db import InMemorySummaryRepository, SqlSummaryRepository

    repository = SqlSummaryRepository.from_url("sqlite+aiosqlite:///./summarium.db")
    await repository.create_schema()
"""

from db.interfaces import ISummaryRepository, Page, SortField, SummaryQuery, SummaryStatistics
from db.memory import InMemorySummaryRepository
from db.sql import SqlSummaryRepository

__all__ = [
    "ISummaryRepository",
    "Page",
    "SortField",
    "SummaryQuery",
    "SummaryStatistics",
    "InMemorySummaryRepository",
    "SqlSummaryRepository",
]

"""
Summarium - Composition Root

Wires the summary engine from configuration:

    Config → repository (SQL or memory) → event bus (Redis or memory)
           → operations → SummaryService

Usage:
    from di.bootstrap import bootstrap

    async with bootstrap(start=True) as service:
        await service.trigger_queue_processing()

Test code passes its own clock, timer, generator or repository instead of
the production ones.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.pool import StaticPool

from config import Config, EventBusBackend, get_config
from core.clock import AsyncioTimer, Clock, SystemClock, Timer
from db.interfaces import ISummaryRepository
from db.memory import InMemorySummaryRepository
from db.sql import SqlSummaryRepository
from di.container import Container
from observability.logging import get_logger
from pipeline.content import IContentGenerator, TemplateContentGenerator
from pipeline.create_summary import CreateSummary
from pipeline.dependencies import SummaryDependencies
from pipeline.event_bus import EventBusConfig, IEventPublisher, InMemoryEventBus, RedisStreamEventBus
from pipeline.force_summarization import ForceSummarization
from pipeline.process_summary import ProcessSummary
from pipeline.schedule_summaries import ScheduleSummaries
from pipeline.summary_service import SummaryService, SummaryServiceConfig

logger = get_logger(__name__)

MEMORY_DATABASE_URL = "memory://"


async def open_repository(config: Config) -> ISummaryRepository:
    """Repository selected by ``DATABASE_URL``; ``memory://`` keeps everything in-process."""
    url = config.database.url
    if url == MEMORY_DATABASE_URL:
        return InMemorySummaryRepository()

    engine_kwargs = {}
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, or every session sees an empty database.
        engine_kwargs["poolclass"] = StaticPool
    repository = SqlSummaryRepository.from_url(url, echo=config.database.echo, **engine_kwargs)
    await repository.create_schema()
    return repository


async def open_event_bus(config: Config) -> IEventPublisher:
    if config.event_bus.backend == EventBusBackend.REDIS:
        bus = RedisStreamEventBus(EventBusConfig(redis_url=config.event_bus.redis_url))
        await bus.initialize()
        return bus
    # Undrained in a long-running process: bounded, no history.
    return InMemoryEventBus(max_pending=config.event_bus.memory_max_pending, record_published=False)


async def build_container(
    config: Optional[Config] = None,
    clock: Optional[Clock] = None,
    timer: Optional[Timer] = None,
    generator: Optional[IContentGenerator] = None,
    repository: Optional[ISummaryRepository] = None,
    publisher: Optional[IEventPublisher] = None,
) -> Container:
    """Register every engine component. Nothing is opened until resolved."""
    config = config or get_config()
    container = Container()

    container.register_instance(Config, config)
    container.register_instance(Clock, clock or SystemClock())
    container.register_instance(Timer, timer or AsyncioTimer())

    if generator is not None:
        container.register_instance(IContentGenerator, generator)
    else:
        container.register_singleton(IContentGenerator, TemplateContentGenerator)

    if repository is not None:
        container.register_instance(ISummaryRepository, repository)
    else:
        async def repository_factory() -> ISummaryRepository:
            return await open_repository(config)
        container.register_factory(ISummaryRepository, repository_factory)

    if publisher is not None:
        container.register_instance(IEventPublisher, publisher)
    else:
        async def publisher_factory() -> IEventPublisher:
            return await open_event_bus(config)
        container.register_factory(IEventPublisher, publisher_factory)

    container.register_singleton(CreateSummary)
    container.register_singleton(SummaryDependencies)
    container.register_singleton(ProcessSummary)
    container.register_singleton(ForceSummarization)

    async def schedule_factory() -> ScheduleSummaries:
        return ScheduleSummaries(
            await container.resolve_async(ISummaryRepository),
            await container.resolve_async(CreateSummary),
            await container.resolve_async(IEventPublisher),
            clock=container.resolve(Clock),
            lookback_days=config.summary.lookback_days,
        )
    container.register_factory(ScheduleSummaries, schedule_factory)

    async def service_factory() -> SummaryService:
        return SummaryService(
            await container.resolve_async(ISummaryRepository),
            await container.resolve_async(CreateSummary),
            await container.resolve_async(ProcessSummary),
            await container.resolve_async(ScheduleSummaries),
            await container.resolve_async(ForceSummarization),
            await container.resolve_async(IEventPublisher),
            config=SummaryServiceConfig.from_settings(config.summary),
            clock=container.resolve(Clock),
            timer=container.resolve(Timer),
        )
    container.register_factory(SummaryService, service_factory)

    return container


@asynccontextmanager
async def bootstrap(
    config: Optional[Config] = None,
    start: bool = False,
    **overrides,
) -> AsyncIterator[SummaryService]:
    """
    Build the engine, yield its service and dispose everything on exit.

    With ``start=True`` the service is initialized, which runs the first
    schedule pass and starts the enabled loops.
    """
    container = await build_container(config, **overrides)
    try:
        service = await container.resolve_async(SummaryService)
        if start:
            await service.initialize()
        yield service
    finally:
        await container.dispose_async()
        logger.debug("container_disposed")

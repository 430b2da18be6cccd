"""
Summarium - Pipeline Module

Operations of the summary engine, bottom-up:
- CreateSummary: idempotent create-or-get for one period
- ProcessSummary: content generation with status bookkeeping
- ScheduleSummaries: dependency-ordered gap filling over the lookback window
- ForceSummarization: create and process one period on demand
- SummaryService: scheduling and processing loops with retry budgets

Event publication:
- InMemoryEventBus: in-process outbox for tests and single-node runs
- RedisStreamEventBus: Redis Streams publisher, one stream per topic
"""

from pipeline.event_bus import (
    EVENT_TOPICS,
    EventBusConfig,
    EventMessage,
    IEventPublisher,
    InMemoryEventBus,
    NullEventPublisher,
    RedisStreamEventBus,
    StreamTopic,
    topic_for,
)
from pipeline.content import (
    IContentGenerator,
    SummarizationRequest,
    TemplateContentGenerator,
)
from pipeline.create_summary import (
    CreateSummary,
    CreateSummaryRequest,
    CreateSummaryResponse,
)
from pipeline.dependencies import SummaryDependencies
from pipeline.process_summary import ProcessSummary, ProcessSummaryResponse
from pipeline.schedule_summaries import (
    DEFAULT_LOOKBACK_DAYS,
    ScheduleSummaries,
    ScheduleSummariesResponse,
)
from pipeline.force_summarization import ForceSummarization, ForceSummarizationResponse
from pipeline.summary_service import (
    ProcessingStatus,
    QueuePassReport,
    SummaryOverview,
    SummaryService,
    SummaryServiceConfig,
)

__all__ = [
    # Events
    "EVENT_TOPICS",
    "EventBusConfig",
    "EventMessage",
    "IEventPublisher",
    "InMemoryEventBus",
    "NullEventPublisher",
    "RedisStreamEventBus",
    "StreamTopic",
    "topic_for",
    # Content
    "IContentGenerator",
    "SummarizationRequest",
    "TemplateContentGenerator",
    # Operations
    "CreateSummary",
    "CreateSummaryRequest",
    "CreateSummaryResponse",
    "SummaryDependencies",
    "ProcessSummary",
    "ProcessSummaryResponse",
    "DEFAULT_LOOKBACK_DAYS",
    "ScheduleSummaries",
    "ScheduleSummariesResponse",
    "ForceSummarization",
    "ForceSummarizationResponse",
    # Service
    "ProcessingStatus",
    "QueuePassReport",
    "SummaryOverview",
    "SummaryService",
    "SummaryServiceConfig",
]

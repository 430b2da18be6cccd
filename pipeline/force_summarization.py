"""
Summarium - Force Summarization Operation

Create (or reuse) the summary of one period and process it immediately,
without waiting for the scheduler and the queue. Weekly and monthly periods
still require their children to be DONE before a new summary is created.
A processing failure is reported inside a successful response.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.errors import InvalidPeriodError
from core.types import Result
from domain.entities import SummaryStatus, SummaryType
from observability.logging import get_logger
from pipeline.create_summary import CreateSummary, CreateSummaryRequest
from pipeline.dependencies import SummaryDependencies
from pipeline.process_summary import ProcessSummary

logger = get_logger(__name__)


@dataclass(frozen=True)
class ForceSummarizationResponse:
    summary_id: str
    created: bool
    processed: bool
    status: Optional[SummaryStatus] = None
    full_summary: str = ""
    short_summary: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None


class ForceSummarization:
    def __init__(
        self,
        create_summary: CreateSummary,
        process_summary: ProcessSummary,
        dependencies: SummaryDependencies,
    ):
        self._create = create_summary
        self._process = process_summary
        self._dependencies = dependencies

    async def execute(
        self,
        request: CreateSummaryRequest,
        context: Optional[str] = None,
    ) -> Result[ForceSummarizationResponse]:
        try:
            self._create.validate(request)
        except InvalidPeriodError as e:
            return Result.from_exception(e)

        existing = await self._create.find_existing(request)
        if existing.is_failure:
            return existing.cast()

        if existing.value is None and request.type != SummaryType.DAILY:
            if request.type == SummaryType.WEEKLY:
                children = await self._dependencies.week_children(request.week)
            else:
                children = await self._dependencies.month_children(request.month)
            if children.is_failure:
                return children.cast()
            request = request.with_related(children.value)

        created = await self._create.execute(request)
        if created.is_failure:
            return created.cast()

        summary_id = created.value.summary_id
        processed = await self._process.execute(summary_id, context=context)
        if processed.is_failure:
            logger.warning("forced_summarization_failed", summary_id=summary_id, error=processed.error)
            return Result.success(ForceSummarizationResponse(
                summary_id=summary_id,
                created=created.value.created,
                processed=False,
                error=processed.error,
                error_code=processed.error_code,
            ))

        logger.info(
            "forced_summarization_completed",
            summary_id=summary_id,
            period=request.period_key,
            created=created.value.created,
        )
        return Result.success(ForceSummarizationResponse(
            summary_id=summary_id,
            created=created.value.created,
            processed=True,
            status=processed.value.status,
            full_summary=processed.value.full_summary,
            short_summary=processed.value.short_summary,
        ))

"""
Summarium - Process Summary Operation

Runs content generation for one summary and records the outcome:

    NEW/FAILED -> PROCESSING -> DONE      (content generated)
                             -> FAILED    (generation failed)

A DONE summary is returned as-is; a summary already PROCESSING is refused.
Every write is conditional on the version last read or written, so two
callers can never both claim a summary, and an attempt whose summary was
changed underneath (for instance charged by the queue) ends with
``CONCURRENT_MODIFICATION`` instead of overwriting the newer state.

Charging a failure against the retry budget is left to the caller (the
processing queue), which re-reads the summary and applies
``register_failed_attempt``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from core.errors import (
    ConcurrentModificationError,
    InvalidSummaryOperationError,
    ProcessingFailureError,
    SummariumError,
    SummaryNotFoundError,
)
from core.types import Result
from db.interfaces import ISummaryRepository
from domain.entities import Summary, SummaryStatus, SummaryType
from observability.logging import get_logger
from observability.metrics import record_processed
from observability.tracing import create_span
from pipeline.content import IContentGenerator, SummarizationRequest
from pipeline.event_bus import IEventPublisher

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessSummaryResponse:
    summary_id: str
    status: SummaryStatus
    full_summary: str
    short_summary: str
    already_done: bool = False


class ProcessSummary:
    """Generate content for a single summary."""

    def __init__(
        self,
        summaries: ISummaryRepository,
        generator: IContentGenerator,
        publisher: IEventPublisher,
    ):
        self._summaries = summaries
        self._generator = generator
        self._publisher = publisher

    async def execute(self, summary_id: str, context: Optional[str] = None) -> Result[ProcessSummaryResponse]:
        with create_span("summary.process", attributes={"summary.id": summary_id}) as span:
            found = await self._summaries.find_by_id(summary_id)
            if found.is_failure:
                return found.cast()
            summary = found.value
            if summary is None:
                return Result.from_exception(SummaryNotFoundError(summary_id))

            span.set_attribute("summary.type", summary.type.value)
            span.set_attribute("summary.period", summary.period_key)

            if summary.status == SummaryStatus.PROCESSING:
                return Result.from_exception(InvalidSummaryOperationError(
                    f"Summary {summary_id} is already being processed"
                ))
            if summary.status == SummaryStatus.DONE:
                return Result.success(self._response(summary, already_done=True))

            read_version = summary.version
            summary.start_processing()
            started = await self._persist(summary, read_version)
            if started.is_failure:
                return started.cast()
            claimed_version = summary.version

            request = await self._build_request(summary, context)
            if request.is_failure:
                return await self._fail(
                    summary, claimed_version, _reason(request, "could not gather child summaries")
                )

            try:
                generated = await self._generator.generate(request.value)
            except Exception as e:
                logger.exception("content_generator_raised", summary_id=summary_id)
                generated = Result.from_exception(
                    ProcessingFailureError(str(e) or type(e).__name__, summary_id=summary_id, cause=e)
                )

            if generated.is_failure:
                return await self._fail(
                    summary, claimed_version, _reason(generated, "content generation failed")
                )

            try:
                summary.complete(generated.value)
            except InvalidSummaryOperationError as e:
                return await self._fail(summary, claimed_version, e.message)

            completed = await self._persist(summary, claimed_version)
            if completed.is_failure:
                if completed.error_code == ConcurrentModificationError.error_code:
                    logger.warning("stale_attempt_discarded", summary_id=summary_id, error=completed.error)
                return completed.cast()

            record_processed(summary.type.value, "done")
            logger.info(
                "summary_processed",
                summary_id=summary.id,
                type=summary.type.value,
                period=summary.period_key,
            )
            return Result.success(self._response(summary))

    async def _build_request(
        self,
        summary: Summary,
        context: Optional[str],
    ) -> Result[SummarizationRequest]:
        children: Tuple[str, ...] = ()
        if summary.type == SummaryType.WEEKLY:
            found = await self._summaries.find_daily_summaries_for_week(summary.week)
            if found.is_failure:
                return found.cast()
            children = tuple(s.short_summary for s in found.value if s.is_done)
        elif summary.type == SummaryType.MONTHLY:
            found = await self._summaries.find_weekly_summaries_for_month(summary.month)
            if found.is_failure:
                return found.cast()
            children = tuple(s.short_summary for s in found.value if s.is_done)

        return Result.success(SummarizationRequest(
            summary_id=summary.id,
            summary_type=summary.type,
            period_key=summary.period_key,
            child_summaries=children,
            context=context,
        ))

    async def _fail(
        self,
        summary: Summary,
        claimed_version: int,
        message: str,
    ) -> Result[ProcessSummaryResponse]:
        summary.mark_as_failed(message)
        saved = await self._persist(summary, claimed_version)
        if saved.is_failure:
            if saved.error_code == ConcurrentModificationError.error_code:
                logger.warning("stale_attempt_discarded", summary_id=summary.id, error=saved.error)
                return saved.cast()
            # Still PROCESSING in the store; only a charged attempt moves it on.
            logger.error("failed_status_not_saved", summary_id=summary.id, error=saved.error)

        record_processed(summary.type.value, "failed")
        logger.warning(
            "summary_processing_failed",
            summary_id=summary.id,
            type=summary.type.value,
            period=summary.period_key,
            error=message,
        )
        return Result.from_exception(ProcessingFailureError(message, summary_id=summary.id))

    async def _persist(self, summary: Summary, expected_version: int) -> Result[None]:
        saved = await self._summaries.save(summary, expected_version=expected_version)
        if saved.is_success:
            await self._publisher.publish_all(summary.clear_domain_events())
        return saved

    @staticmethod
    def _response(summary: Summary, already_done: bool = False) -> ProcessSummaryResponse:
        return ProcessSummaryResponse(
            summary_id=summary.id,
            status=summary.status,
            full_summary=summary.full_summary,
            short_summary=summary.short_summary,
            already_done=already_done,
        )


def _reason(result: Result, default: str) -> str:
    if isinstance(result.exception, SummariumError):
        return result.exception.message
    return result.error or default

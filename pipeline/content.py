"""
Summarium - Content Generation Collaborator

The engine does not know how a summary body is produced. It hands a
``SummarizationRequest`` to an ``IContentGenerator`` and receives either
``SummaryContent`` or a failure. Real implementations pull task and log
data or call a language model; ``TemplateContentGenerator`` is a
deterministic stand-in for the CLI demo and tests.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from core.errors import ProcessingFailureError
from core.types import Result
from domain.entities import SummaryContent, SummaryType


@dataclass(frozen=True)
class SummarizationRequest:
    """
    Input to content generation.

    ``child_summaries`` holds the short summaries of the DONE child-tier
    summaries (daily ones for a week, weekly ones for a month) in period
    order; it is empty for DAILY summaries.
    """
    summary_id: str
    summary_type: SummaryType
    period_key: str
    child_summaries: Tuple[str, ...] = ()
    context: Optional[str] = None


class IContentGenerator(ABC):
    """Produces summary content for one period."""

    @abstractmethod
    async def generate(self, request: SummarizationRequest) -> Result[SummaryContent]:
        """Return content, or a failure describing why none could be produced."""
        pass


class TemplateContentGenerator(IContentGenerator):
    """Builds content from the period key and child digests."""

    async def generate(self, request: SummarizationRequest) -> Result[SummaryContent]:
        tier = request.summary_type.value.lower()
        if request.summary_type == SummaryType.DAILY:
            full = f"Daily activity for {request.period_key}."
            short = f"{request.period_key}: activity recorded."
        else:
            if not request.child_summaries:
                return Result.from_exception(ProcessingFailureError(
                    f"No child summaries available for {tier} {request.period_key}",
                    summary_id=request.summary_id,
                ))
            lines = "\n".join(f"- {child}" for child in request.child_summaries)
            full = f"{tier.capitalize()} summary for {request.period_key}:\n{lines}"
            short = f"{request.period_key}: {len(request.child_summaries)} periods summarized."
        if request.context:
            full = f"{full}\n\n{request.context}"
        return Result.success(SummaryContent(full_summary=full, short_summary=short))

"""
Property-Based Tests for the Summary Retry Budget

Drives a summary through arbitrary sequences of failed attempts, manual
retries and exhaustion checks, and checks the budget invariants after
every step.
"""
from datetime import date

import pytest
from hypothesis import given, settings, strategies as st
from hypothesis.stateful import RuleBasedStateMachine, initialize, invariant, precondition, rule

from core.errors import RetryBudgetExceededError
from domain.entities import Summary, SummaryStatus
from tests.property.strategies import max_retries_strategy


def _fail_once(summary: Summary, max_retries: int) -> None:
    summary.start_processing()
    summary.mark_as_failed("generation failed")
    summary.register_failed_attempt(max_retries, "generation failed")


class TestRetryBudget:

    @given(max_retries_strategy(), st.integers(min_value=0, max_value=10))
    @settings(max_examples=100)
    def test_status_follows_failure_count(self, max_retries, failures):
        summary = Summary.create_daily(date(2024, 1, 5))

        for _ in range(failures):
            if not summary.has_budget(max_retries):
                break
            _fail_once(summary, max_retries)

        assert summary.retry_count == min(failures, max_retries)
        if summary.retry_count < max_retries:
            assert summary.status == SummaryStatus.NEW
        else:
            assert summary.status == SummaryStatus.FAILED

    @given(max_retries_strategy())
    def test_exhausted_summary_cannot_be_retried(self, max_retries):
        summary = Summary.create_daily(date(2024, 1, 5))
        while summary.has_budget(max_retries):
            _fail_once(summary, max_retries)

        with pytest.raises(RetryBudgetExceededError):
            summary.retry(max_retries)
        assert summary.status == SummaryStatus.FAILED


class SummaryLifecycleMachine(RuleBasedStateMachine):
    """Stateful exploration of failures, retries and exhaustion."""

    @initialize(max_retries=max_retries_strategy())
    def setup(self, max_retries):
        self.max_retries = max_retries
        self.summary = Summary.create_daily(date(2024, 1, 5))
        self.last_count = 0

    @precondition(lambda self: self.summary.status in (SummaryStatus.NEW, SummaryStatus.FAILED)
                  and self.summary.has_budget(self.max_retries))
    @rule()
    def failed_attempt(self):
        _fail_once(self.summary, self.max_retries)

    @precondition(lambda self: self.summary.status == SummaryStatus.FAILED)
    @rule()
    def manual_retry(self):
        try:
            self.summary.retry(self.max_retries)
        except RetryBudgetExceededError:
            assert not self.summary.has_budget(self.max_retries)

    @precondition(lambda self: not self.summary.has_budget(self.max_retries))
    @rule()
    def exhaust(self):
        self.summary.mark_exhausted()
        assert self.summary.status == SummaryStatus.FAILED

    @invariant()
    def budget_never_exceeded(self):
        assert self.summary.retry_count <= self.max_retries

    @invariant()
    def new_implies_budget_left(self):
        if self.summary.status == SummaryStatus.NEW:
            assert self.summary.retry_count < self.max_retries

    @invariant()
    def retry_count_monotonic(self):
        assert self.summary.retry_count >= self.last_count
        self.last_count = self.summary.retry_count


TestSummaryLifecycle = SummaryLifecycleMachine.TestCase
TestSummaryLifecycle.settings = settings(max_examples=50, stateful_step_count=20)

"""Discovery pipeline orchestrator.

A run moves through an explicit state machine::

    idle -> planning -> discovering -> profiling -> deduping -> completed

``error`` is only reachable from ``planning`` (no strategies) and ``discovering``
(the search call could not be made). A lead that fails to profile never moves
the run to ``error``; it is reported as ``investor_skipped`` and the loop goes
on. ``cancelled`` is entered from any non-terminal state once the optional
cancellation event is set; it is checked before every external call.

Leads are profiled one at a time so the emitted event order always follows
discovery order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from enum import Enum

from app.models.discovery import (
    DiscoveredInvestor,
    DiscoveryConfig,
    DiscoveryEvent,
    DiscoveryStats,
    EventType,
    Progress,
)
from app.observability.metrics import metrics
from app.services.discovery.discoverer import LeadDiscoverer, dedupe_leads
from app.services.discovery.errors import (
    DiscoveryConfigurationError,
    DiscoveryTransportError,
    InvestorStoreError,
    PipelineStateError,
)
from app.services.discovery.investor_store import InvestorStore, flag_existing_investors
from app.services.discovery.profiler import LeadProfiler
from app.services.discovery.query_planner import plan_queries
from app.services.discovery.score_gate import apply_score_gate

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    DISCOVERING = "discovering"
    PROFILING = "profiling"
    DEDUPING = "deduping"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


_ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.PLANNING}),
    PipelineState.PLANNING: frozenset(
        {PipelineState.DISCOVERING, PipelineState.ERROR, PipelineState.CANCELLED}
    ),
    PipelineState.DISCOVERING: frozenset(
        {
            PipelineState.PROFILING,
            PipelineState.COMPLETED,
            PipelineState.ERROR,
            PipelineState.CANCELLED,
        }
    ),
    PipelineState.PROFILING: frozenset({PipelineState.DEDUPING, PipelineState.CANCELLED}),
    PipelineState.DEDUPING: frozenset({PipelineState.COMPLETED, PipelineState.CANCELLED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.ERROR: frozenset(),
    PipelineState.CANCELLED: frozenset(),
}


class DiscoveryPipeline:
    """Runs one discovery invocation and yields its ordered event stream."""

    def __init__(
        self,
        config: DiscoveryConfig,
        *,
        discoverer: LeadDiscoverer,
        profiler: LeadProfiler,
        store: InvestorStore,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._config = config
        self._discoverer = discoverer
        self._profiler = profiler
        self._store = store
        self._cancel_event = cancel_event
        self._state = PipelineState.IDLE
        self._progress: Progress | None = None
        self._stats: DiscoveryStats | None = None
        self._investors: list[DiscoveredInvestor] = []
        self.skipped_for_score = 0
        self.skipped_for_failure = 0

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def progress(self) -> Progress | None:
        """Position within the profiling phase, ``None`` before it starts."""
        return self._progress

    @property
    def stats(self) -> DiscoveryStats | None:
        return self._stats

    @property
    def investors(self) -> list[DiscoveredInvestor]:
        return list(self._investors)

    async def run(self) -> AsyncIterator[DiscoveryEvent]:
        if self._state is not PipelineState.IDLE:
            raise PipelineStateError(f"Pipeline already ran (state={self._state.value}).")
        started = time.perf_counter()
        try:
            async for event in self._run():
                yield event
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            metrics.timing("discovery.run.latency_ms", elapsed_ms, tags={"state": self._state.value})
            logger.info(
                "discovery.run.finished",
                extra={
                    "state": self._state.value,
                    "skipped_for_score": self.skipped_for_score,
                    "skipped_for_failure": self.skipped_for_failure,
                },
            )

    async def _run(self) -> AsyncIterator[DiscoveryEvent]:
        config = self._config
        self._transition(PipelineState.PLANNING)
        groups = plan_queries(config)
        if not groups:
            self._transition(PipelineState.ERROR)
            yield _event(EventType.ERROR, str(DiscoveryConfigurationError()))
            return

        self._transition(PipelineState.DISCOVERING)
        labels = ", ".join(group.label for group in groups)
        yield _event(EventType.STATUS, f"Searching across {len(groups)} strategies: {labels}...")
        if self._cancel_requested():
            return
        try:
            leads = await self._discoverer.discover(config, groups)
        except DiscoveryTransportError as exc:
            self._transition(PipelineState.ERROR)
            logger.error("discovery.search.failed", extra={"code": exc.code, "error": str(exc)})
            yield _event(EventType.ERROR, f"Discovery search failed: {exc}")
            return
        except Exception as exc:
            self._transition(PipelineState.ERROR)
            logger.exception("discovery.search.unexpected_error")
            yield _event(EventType.ERROR, f"Discovery search failed: {exc}")
            return

        if not leads:
            self._stats = DiscoveryStats()
            self._transition(PipelineState.COMPLETED)
            yield _event(EventType.STATUS, "No investors found. Try broadening your search criteria.")
            yield _event(EventType.COMPLETE, "Discovery complete", stats=self._stats)
            return

        unique_leads = dedupe_leads(leads, config.max_results)
        metrics.gauge("discovery.leads.unique", len(unique_leads))
        self._transition(PipelineState.PROFILING)
        yield _event(
            EventType.STATUS,
            f"Found {len(unique_leads)} unique investor leads. Starting deep profiling...",
        )

        profiled: list[DiscoveredInvestor] = []
        total = len(unique_leads)
        for index, lead in enumerate(unique_leads, start=1):
            progress = Progress(current=index, total=total)
            self._progress = progress
            firm_suffix = f" at {lead.firm}" if lead.firm else ""
            yield _event(EventType.STATUS, f"Profiling: {lead.name}{firm_suffix}...", progress=progress)
            if self._cancel_requested():
                return

            investor = await self._profiler.profile(lead)
            if investor is None:
                self.skipped_for_failure += 1
                metrics.increment("discovery.leads.skipped", tags={"reason": "failure"})
                yield _event(
                    EventType.INVESTOR_SKIPPED,
                    f"Could not profile {lead.name} - skipping",
                    progress=progress,
                )
                continue

            decision = apply_score_gate(investor, config.min_fit_score)
            if not decision.passed:
                self.skipped_for_score += 1
                metrics.increment("discovery.leads.skipped", tags={"reason": "below_threshold"})
                yield _event(EventType.INVESTOR_SKIPPED, decision.skip_message, progress=progress)
                continue

            profiled.append(investor)
            yield _event(
                EventType.INVESTOR_PROFILED,
                f"{investor.name} - Score: {investor.fit_score}/100",
                data=investor,
                progress=progress,
            )

        self._transition(PipelineState.DEDUPING)
        yield _event(EventType.STATUS, "Checking for duplicates in existing pipeline...")
        if self._cancel_requested():
            return
        try:
            checked = await flag_existing_investors(profiled, self._store)
        except InvestorStoreError as exc:
            logger.warning("discovery.dedup.unavailable", extra={"code": exc.code})
            metrics.increment("discovery.dedup.unavailable")
            checked = profiled
            yield _event(
                EventType.STATUS,
                "Could not check the existing pipeline for duplicates - results are unflagged",
            )

        duplicates = sum(1 for investor in checked if investor.already_in_pipeline)
        self._investors = checked
        self._stats = DiscoveryStats(
            total=len(checked),
            added=len(checked) - duplicates,
            skipped=self.skipped_for_score,
            duplicates=duplicates,
        )
        self._transition(PipelineState.COMPLETED)
        yield _event(
            EventType.COMPLETE,
            f"Discovery complete: {len(checked)} investors profiled, {duplicates} already in pipeline, "
            f"{self.skipped_for_score} below score threshold",
            stats=self._stats,
        )
        for investor in checked:
            message = (
                f"{investor.name} - already in pipeline"
                if investor.already_in_pipeline
                else f"{investor.name} - Score: {investor.fit_score}/100"
            )
            yield _event(EventType.INVESTOR_FOUND, message, data=investor)

    def _transition(self, target: PipelineState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            raise PipelineStateError(
                f"Illegal pipeline transition {self._state.value} -> {target.value}."
            )
        logger.debug(
            "discovery.pipeline.transition",
            extra={"from": self._state.value, "to": target.value},
        )
        self._state = target

    def _cancel_requested(self) -> bool:
        if self._cancel_event is None or not self._cancel_event.is_set():
            return False
        logger.info(
            "discovery.pipeline.cancelled",
            extra={
                "state": self._state.value,
                "progress": self._progress.model_dump() if self._progress else None,
            },
        )
        metrics.increment("discovery.run.cancelled", tags={"state": self._state.value})
        self._transition(PipelineState.CANCELLED)
        return True


def _event(
    event_type: EventType,
    message: str,
    *,
    data: DiscoveredInvestor | None = None,
    progress: Progress | None = None,
    stats: DiscoveryStats | None = None,
) -> DiscoveryEvent:
    return DiscoveryEvent(type=event_type, message=message, data=data, progress=progress, stats=stats)

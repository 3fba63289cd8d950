"""
Signal pipeline runner.

    STATIC_FILTER -> DATA_FETCH -> LLM_ANALYSIS -> COOLDOWN -> FORMAT_SIGNAL -> END

The confluence filter and cooldown are built in. Data fetch, analysis and
formatting are external collaborators; this package only routes on their
results.
"""

import dataclasses
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from quantgate.core.enums import PipelineStage, SearchStrategy
from quantgate.core.models import IndicatorSnapshot
from quantgate.data.base import LastSignalTimeLookup
from quantgate.execution.signal_cooldown import (
    SmartCooldownCalculator,
    get_cooldown_calculator,
    should_skip_due_to_cooldown,
)
from quantgate.intelligence.confluence import ConfluenceFilter
from quantgate.pipeline.models import Evidence, SignalContext, SignalDecision
from quantgate.pipeline.routing import next_stage

logger = logging.getLogger(__name__)


class EvidenceFetcher(ABC):
    """Gathers outside evidence (news, fundamentals) for a filtered candidate."""

    @abstractmethod
    async def fetch(self, ctx: SignalContext) -> Evidence:
        pass


class SignalAnalyzer(ABC):
    """Turns a candidate plus evidence into a directional decision."""

    @abstractmethod
    async def analyze(self, ctx: SignalContext) -> SignalDecision:
        pass


class SignalFormatter(ABC):
    """Renders the final alert for delivery."""

    @abstractmethod
    async def format(self, ctx: SignalContext) -> Any:
        pass


class SignalPipeline:
    """
    Runs one asset through the signal stages.

    Usage:
        pipeline = SignalPipeline(fetcher, analyzer, formatter, signal_repo)
        ctx = await pipeline.run("SOL", IndicatorSnapshot.from_raw(row))
        if ctx.produced_signal:
            deliver(ctx.final_signal)
    """

    def __init__(
        self,
        fetcher: EvidenceFetcher,
        analyzer: SignalAnalyzer,
        formatter: SignalFormatter,
        last_signal_lookup: LastSignalTimeLookup,
        confluence_filter: Optional[ConfluenceFilter] = None,
        cooldown: Optional[SmartCooldownCalculator] = None,
    ):
        self.fetcher = fetcher
        self.analyzer = analyzer
        self.formatter = formatter
        self.last_signal_lookup = last_signal_lookup
        self.confluence_filter = confluence_filter or ConfluenceFilter.from_settings()
        self.cooldown = cooldown or get_cooldown_calculator()

        self._handlers: Dict[PipelineStage, Callable[..., Awaitable[SignalContext]]] = {
            PipelineStage.STATIC_FILTER: self._static_filter,
            PipelineStage.DATA_FETCH: self._data_fetch,
            PipelineStage.LLM_ANALYSIS: self._llm_analysis,
            PipelineStage.COOLDOWN: self._cooldown,
            PipelineStage.FORMAT_SIGNAL: self._format_signal,
        }

    async def run(
        self,
        asset: str,
        snapshot: IndicatorSnapshot,
        now: Optional[datetime] = None,
    ) -> SignalContext:
        logger.info("Starting signal generation for %s", asset)
        ctx = SignalContext(asset=asset, snapshot=snapshot)
        stage = PipelineStage.STATIC_FILTER

        while stage != PipelineStage.END:
            ctx = await self._handlers[stage](ctx, now)
            following = next_stage(stage, ctx)
            if following == PipelineStage.END and stage != PipelineStage.FORMAT_SIGNAL:
                ctx = dataclasses.replace(ctx, halted_at=stage)
                logger.info("Signal generation for %s stopped after %s", asset, stage.value)
            stage = following

        if ctx.produced_signal:
            logger.info("Signal generation for %s completed with a signal", asset)
        return ctx

    async def _static_filter(self, ctx: SignalContext, now: Optional[datetime]) -> SignalContext:
        result = self.confluence_filter.apply(ctx.snapshot)
        return dataclasses.replace(ctx, filter_result=result)

    async def _data_fetch(self, ctx: SignalContext, now: Optional[datetime]) -> SignalContext:
        try:
            evidence = await self.fetcher.fetch(ctx)
        except Exception as e:
            logger.error("Data fetch failed for %s: %s", ctx.asset, e)
            evidence = Evidence(search_strategy=SearchStrategy.FAILED, payload={"error": str(e)})
        return dataclasses.replace(ctx, evidence=evidence)

    async def _llm_analysis(self, ctx: SignalContext, now: Optional[datetime]) -> SignalContext:
        try:
            decision = await self.analyzer.analyze(ctx)
        except Exception as e:
            logger.error("Signal analysis failed for %s: %s", ctx.asset, e)
            raise
        return dataclasses.replace(ctx, decision=decision)

    async def _cooldown(self, ctx: SignalContext, now: Optional[datetime]) -> SignalContext:
        skip = await should_skip_due_to_cooldown(
            ctx.asset,
            ctx.snapshot,
            ctx.decision.confidence,
            self.last_signal_lookup,
            calculator=self.cooldown,
            now=now,
        )
        return dataclasses.replace(ctx, skipped_by_cooldown=skip)

    async def _format_signal(self, ctx: SignalContext, now: Optional[datetime]) -> SignalContext:
        final_signal = await self.formatter.format(ctx)
        return dataclasses.replace(ctx, final_signal=final_signal)

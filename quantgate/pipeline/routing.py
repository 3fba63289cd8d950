"""
Stage routing for the signal pipeline.

Each router looks only at the output of the stage that just ran and
returns the next stage. A missing output means the stage never ran, which
is a programming error, not a data condition.
"""

from typing import Callable, Dict

from quantgate.core.enums import PipelineStage, SearchStrategy
from quantgate.core.exceptions import QuantGateError
from quantgate.pipeline.models import SignalContext

ANALYZABLE_STRATEGIES = frozenset({SearchStrategy.FUNDAMENTAL_SEARCH, SearchStrategy.FAILED})


def route_after_static_filter(ctx: SignalContext) -> PipelineStage:
    if ctx.filter_result is None:
        raise QuantGateError("Static filter result not found")
    if ctx.filter_result.should_proceed:
        return PipelineStage.DATA_FETCH
    return PipelineStage.END


def route_after_data_fetch(ctx: SignalContext) -> PipelineStage:
    # A failed search still goes to analysis on indicators alone
    if ctx.evidence is None:
        raise QuantGateError("Evidence results not found")
    if ctx.evidence.search_strategy in ANALYZABLE_STRATEGIES:
        return PipelineStage.LLM_ANALYSIS
    return PipelineStage.END


def route_after_llm_analysis(ctx: SignalContext) -> PipelineStage:
    if ctx.decision is None:
        raise QuantGateError("Signal decision not found")
    if ctx.decision.should_generate_signal:
        return PipelineStage.COOLDOWN
    return PipelineStage.END


def route_after_cooldown(ctx: SignalContext) -> PipelineStage:
    if ctx.skipped_by_cooldown is None:
        raise QuantGateError("Cooldown result not found")
    if ctx.skipped_by_cooldown:
        return PipelineStage.END
    return PipelineStage.FORMAT_SIGNAL


def route_after_format_signal(ctx: SignalContext) -> PipelineStage:
    return PipelineStage.END


ROUTERS: Dict[PipelineStage, Callable[[SignalContext], PipelineStage]] = {
    PipelineStage.STATIC_FILTER: route_after_static_filter,
    PipelineStage.DATA_FETCH: route_after_data_fetch,
    PipelineStage.LLM_ANALYSIS: route_after_llm_analysis,
    PipelineStage.COOLDOWN: route_after_cooldown,
    PipelineStage.FORMAT_SIGNAL: route_after_format_signal,
}


def next_stage(stage: PipelineStage, ctx: SignalContext) -> PipelineStage:
    """Next stage after `stage` has run on ctx."""
    if stage == PipelineStage.END:
        raise QuantGateError("Pipeline already finished")
    return ROUTERS[stage](ctx)

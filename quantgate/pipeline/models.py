"""Signal pipeline state and collaborator results."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from quantgate.core.enums import Direction, PipelineStage, SearchStrategy
from quantgate.core.models import FilterResult, IndicatorSnapshot


@dataclass(frozen=True)
class Evidence:
    """Result of the external data fetch step."""

    search_strategy: SearchStrategy
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignalDecision:
    """Result of the external analysis step."""

    should_generate_signal: bool
    direction: Direction = Direction.NEUTRAL
    confidence: float = 0.0
    rationale: str = ""


@dataclass(frozen=True)
class SignalContext:
    """
    Everything known about one asset's pass through the pipeline.

    Each stage returns a new context with its own output filled in.
    halted_at is the stage after which routing went to END early; None
    when the pipeline ran through formatting (or has not finished).
    """

    asset: str
    snapshot: IndicatorSnapshot
    filter_result: Optional[FilterResult] = None
    evidence: Optional[Evidence] = None
    decision: Optional[SignalDecision] = None
    skipped_by_cooldown: Optional[bool] = None
    final_signal: Optional[Any] = None
    halted_at: Optional[PipelineStage] = None

    @property
    def produced_signal(self) -> bool:
        return self.final_signal is not None

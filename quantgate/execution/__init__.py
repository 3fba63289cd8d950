"""
QuantGate Execution Layer

Decides whether a confirmed signal may go out now or is still cooling down.
"""

from quantgate.execution.signal_cooldown import (
    SmartCooldownCalculator,
    classify_market_condition,
    get_cooldown_calculator,
    recommended_cooldown_range,
    should_skip_due_to_cooldown,
)

__all__ = [
    "SmartCooldownCalculator",
    "classify_market_condition",
    "get_cooldown_calculator",
    "recommended_cooldown_range",
    "should_skip_due_to_cooldown",
]

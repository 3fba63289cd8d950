"""QuantGate signal pipeline (explicit stage machine)."""

from .models import Evidence, SignalContext, SignalDecision
from .routing import next_stage
from .runner import EvidenceFetcher, SignalAnalyzer, SignalFormatter, SignalPipeline

__all__ = [
    "Evidence",
    "SignalContext",
    "SignalDecision",
    "next_stage",
    "EvidenceFetcher",
    "SignalAnalyzer",
    "SignalFormatter",
    "SignalPipeline",
]

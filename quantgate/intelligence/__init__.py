from .confluence import ConfluenceFilter, apply_confluence_filter, classify_risk_level

__all__ = [
    "ConfluenceFilter",
    "apply_confluence_filter",
    "classify_risk_level",
]

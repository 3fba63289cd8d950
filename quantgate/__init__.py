"""QuantGate - quantitative gate, cooldown and backtesting for crypto signal alerts."""

__version__ = "0.1.0"

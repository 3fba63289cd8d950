"""
QuantGate custom exceptions.
"""


class QuantGateError(Exception):
    """Base exception for QuantGate."""

    pass


class QuantGateConfigError(QuantGateError):
    """Configuration error (bad bucket ranges, unsupported timeframe)."""

    pass


class QuantGateDataError(QuantGateError):
    """Signal store or price source error."""

    pass


class NoSignalDataError(QuantGateDataError):
    """No signals at all in the backtest lookback window."""

    pass

"""
QuantGate Database Models

Tables read by the backtest collector and the cooldown lookup:
emitted signals and per-asset price bars.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# =============================================================================
# SIGNAL RECORD
# =============================================================================

class SignalRecord(Base):
    """
    Every signal the pipeline emitted.

    direction and confidence are nullable: older rows predate the analysis
    step and are skipped by the backtest.
    """
    __tablename__ = "signals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    asset = Column(String(64), nullable=False, index=True)
    direction = Column(String(10))
    confidence = Column(Float)
    signal_type = Column(String(50), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        Index("ix_signals_asset_timestamp", "asset", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<SignalRecord {self.id} {self.asset} {self.direction} {self.signal_type}>"


# =============================================================================
# PRICE BAR RECORD
# =============================================================================

class PriceBarRecord(Base):
    """OHLCV close per asset; timestamp in epoch seconds, close kept as text."""
    __tablename__ = "price_bars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset = Column(String(64), nullable=False)
    timestamp = Column(Integer, nullable=False)
    close = Column(String(40), nullable=False)

    __table_args__ = (
        Index("ix_price_bars_asset_timestamp", "asset", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<PriceBarRecord {self.asset} {self.timestamp} {self.close}>"

"""QuantGate core types."""

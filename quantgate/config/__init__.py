"""QuantGate configuration."""

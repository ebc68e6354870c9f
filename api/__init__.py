"""HTTP API for Spendlog."""

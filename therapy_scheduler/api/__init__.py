"""HTTP API for the scheduling engine."""

"""Therapy clinic scheduling and resource-assignment engine."""

__version__ = "0.1.0"

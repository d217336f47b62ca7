"""Scheduling engine services."""

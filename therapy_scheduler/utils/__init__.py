"""Utility helpers for the scheduling service."""

"""Conviction Engine - wallet trade ingestion, patience tax and conviction scoring."""

__version__ = "1.0.0"

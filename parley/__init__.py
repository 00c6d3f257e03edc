"""Parley: streaming chat orchestration with document grounding."""

__version__ = "0.1.0"

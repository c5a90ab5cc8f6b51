"""Ranking and discovery engine for short audio clip feeds."""

__version__ = "0.1.0"

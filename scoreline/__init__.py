"""Scoring, standings and bot prediction core for a football prediction game."""

__version__ = "0.1.0"

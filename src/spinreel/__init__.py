"""Roulette spin animation rendering pipeline."""

__version__ = "0.1.0"

"""Spot-price aggregation and caching for the Coffer backend."""

__version__ = "1.0.0"

"""Deliberation API: staged citizen-deliberation voting with knowledge-weighted tallies."""

__version__ = "0.1.0"

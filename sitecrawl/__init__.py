"""Polite, resumable site crawler that turns web pages into clean markdown."""

__version__ = "0.1.0"

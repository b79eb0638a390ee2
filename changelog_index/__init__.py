"""Semantic index over changelog entries."""

__version__ = "0.1.0"

"""Plasa view-assembly and snapshot-consistency engine."""

__version__ = "0.1.0"

"""Tithe-book digitization and reconciliation core."""

__version__ = "0.1.0"

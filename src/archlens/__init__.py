"""Archlens - bounded architecture graphs and violation reports."""

__version__ = "0.4.0"

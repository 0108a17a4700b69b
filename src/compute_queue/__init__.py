"""Durable multi-worker compute task queue."""

__version__ = "0.1.0"

"""Persistence layer for the compute queue."""

"""Recurring job entrypoints for the points ledger."""

from .points_sweep import run_points_sweep  # noqa: F401

__all__ = ["run_points_sweep"]

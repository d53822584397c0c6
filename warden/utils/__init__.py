"""Shared helpers: injectable clock and periodic background tasks."""

from .clock import Clock, utc_now
from .periodic import PeriodicTask

__all__ = ["Clock", "utc_now", "PeriodicTask"]

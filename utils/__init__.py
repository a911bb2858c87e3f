"""Shared utilities: clock, locking, caching, HTTP and formatting."""
from utils.clock import SystemClock, ManualClock
from utils.formatters import format_duration, format_timestamp

"""
Utility functions and helpers
"""

from .logging_setup import setup_logging
from .formatters import format_duration, format_timestamp

__all__ = ['setup_logging', 'format_duration', 'format_timestamp']

"""
Formatting utilities for GPU Usage Report
"""

from datetime import datetime
from typing import Optional, Union


def format_duration(seconds: Union[int, float, str, None]) -> str:
   """
   Format duration in seconds to human-readable string

   Args:
      seconds: Duration in seconds

   Returns:
      Formatted duration string (e.g., "1h 30m", "45m 30s", "2d 3h")
   """
   if seconds is None:
      return "N/A"

   try:
      seconds = int(float(seconds))

      if seconds < 0:
         return "N/A"

      # Calculate time units
      days = seconds // 86400
      hours = (seconds % 86400) // 3600
      minutes = (seconds % 3600) // 60
      secs = seconds % 60

      # Format based on magnitude
      if days > 0:
         if hours > 0:
            return f"{days}d {hours}h"
         else:
            return f"{days}d"
      elif hours > 0:
         if minutes > 0:
            return f"{hours}h {minutes}m"
         else:
            return f"{hours}h"
      elif minutes > 0:
         if secs > 0:
            return f"{minutes}m {secs}s"
         else:
            return f"{minutes}m"
      else:
         return f"{secs}s"

   except (ValueError, TypeError, OverflowError):
      return "N/A"


def format_timestamp(
   timestamp: Union[datetime, int, float, None],
   format_str: str = "%d-%m %H:%M"
) -> str:
   """
   Format timestamp to string

   Args:
      timestamp: Datetime object or Unix seconds
      format_str: Format string (default: DD-MM HH:MM)

   Returns:
      Formatted timestamp string
   """
   if timestamp is None:
      return "N/A"

   try:
      if isinstance(timestamp, (int, float)):
         timestamp = datetime.fromtimestamp(timestamp)
      return timestamp.strftime(format_str)
   except (ValueError, TypeError, OverflowError, OSError):
      return "N/A"


def format_currency(value: Optional[float], symbol: str = "$") -> str:
   """
   Format a USD amount with thousands separators, e.g. "$1,234.50"
   """
   if value is None:
      return "N/A"

   try:
      if value < 0:
         return f"-{symbol}{abs(value):,.2f}"
      return f"{symbol}{value:,.2f}"
   except (ValueError, TypeError):
      return "N/A"


def format_percentage(value: Optional[float], decimal_places: int = 1) -> str:
   """
   Format percentage value

   Args:
      value: Percentage value
      decimal_places: Number of decimal places

   Returns:
      Formatted percentage string
   """
   if value is None:
      return "N/A"

   try:
      return f"{value:.{decimal_places}f}%"
   except (ValueError, TypeError):
      return "N/A"


def format_number(value: Optional[Union[int, float]],
                 decimal_places: int = 0) -> str:
   """
   Format numeric value

   Args:
      value: Numeric value
      decimal_places: Number of decimal places

   Returns:
      Formatted number string
   """
   if value is None:
      return "N/A"

   try:
      if decimal_places == 0:
         return f"{int(value)}"
      else:
         return f"{value:.{decimal_places}f}"
   except (ValueError, TypeError):
      return "N/A"


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
   """
   Truncate string to maximum length

   Args:
      text: String to truncate
      max_length: Maximum length
      suffix: Suffix to add if truncated

   Returns:
      Truncated string
   """
   if len(text) <= max_length:
      return text

   return text[:max_length - len(suffix)] + suffix

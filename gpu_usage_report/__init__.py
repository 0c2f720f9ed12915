"""
GPU Usage Report - monthly GPU usage, cost and user archetype analysis
"""

__version__ = "0.1.0"
__author__ = "GPU Usage Report Team"
__description__ = "Monthly GPU usage reports for GPU cluster platforms"

from .config import Config
from .data_loader import InventoryLoader, InventoryError, ReportError
from .analytics.monthly_report import MonthlyReportBuilder, generate_monthly_report_data

__all__ = [
   'Config', 'InventoryLoader', 'InventoryError', 'ReportError',
   'MonthlyReportBuilder', 'generate_monthly_report_data'
]

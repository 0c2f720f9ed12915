"""
Data models for cluster inventory and monthly report records
"""

from .cluster import ClusterRecord, ManagedJobRecord
from .report import MonthlyReportRecord

__all__ = ['ClusterRecord', 'ManagedJobRecord', 'MonthlyReportRecord']

"""
Analytics module for GPU Usage Report

Provides the month-scoped report builder, platform-wide aggregation, user
archetype classification and the guidance derived from it.
"""

from .monthly_report import MonthlyReportBuilder, generate_monthly_report_data
from .aggregator import ReportSummary, aggregate_monthly_report
from .archetypes import Archetype, ClassificationResult, UserAggregate, analyze_user_archetypes
from .guidance import generate_user_guidelines, generate_platform_improvements

__all__ = [
   'MonthlyReportBuilder',
   'generate_monthly_report_data',
   'ReportSummary',
   'aggregate_monthly_report',
   'Archetype',
   'ClassificationResult',
   'UserAggregate',
   'analyze_user_archetypes',
   'generate_user_guidelines',
   'generate_platform_improvements'
]

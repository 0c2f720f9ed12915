"""
Command line interface for GPU Usage Report
"""

from .main import main
from .commands import ReportCommand, ArchetypesCommand

__all__ = ['main', 'ReportCommand', 'ArchetypesCommand']

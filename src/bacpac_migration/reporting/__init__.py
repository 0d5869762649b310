"""Reporting and progress tracking for bacpac imports."""

from bacpac_migration.reporting.elapsed import ElapsedTimer, format_duration
from bacpac_migration.reporting.progress import ProgressReporter
from bacpac_migration.reporting.report import BatchReport

__all__ = [
    "BatchReport",
    "ElapsedTimer",
    "ProgressReporter",
    "format_duration",
]

"""
Migration module for BACPAC Bridge.

This module provides the in-memory batch model and the engine that uploads,
dispatches, polls and reconciles a batch of bacpac imports.
"""

from bacpac_migration.migration.models import (
    Archive,
    BatchResult,
    ImportJob,
    ImportStatus,
    JobSnapshot,
    PollOutcome,
    ProgressSnapshot,
    SubmissionOutcome,
)

__all__ = [
    "Archive",
    "BatchResult",
    "ImportJob",
    "ImportStatus",
    "JobSnapshot",
    "PollOutcome",
    "ProgressSnapshot",
    "SubmissionOutcome",
]

"""Color definitions for console output.

This module provides centralized color palette using Rich color names
for consistent visual styling across the tool's console output.
"""

from bacpac_migration.migration.models import ImportStatus


class MigrationColors:
    """Centralized color palette for BACPAC Bridge console output.

    Uses Rich library color names. All colors are terminal-safe and work in
    both light and dark terminals.

    Reference: https://rich.readthedocs.io/en/stable/appendix/colors.html
    """

    # Semantic colors for messages
    INFO = "cyan"
    SUCCESS = "green"
    WARNING = "yellow"
    ERROR = "red"

    # Status colors
    RUNNING = "yellow"
    COMPLETE = "green"
    FAILED = "red"
    PENDING = "dim"
    UNKNOWN = "dark_orange"

    # UI elements
    BORDER = "blue"
    HEADER = "bold bright_white"
    LABEL = "bold"

    STATUS = {
        ImportStatus.QUEUED: PENDING,
        ImportStatus.IN_PROGRESS: RUNNING,
        ImportStatus.SUCCEEDED: COMPLETE,
        ImportStatus.FAILED: FAILED,
        ImportStatus.STATUS_UNAVAILABLE: UNKNOWN,
    }

    @classmethod
    def for_status(cls, status: ImportStatus) -> str:
        """Color used to render an import status."""
        return cls.STATUS.get(status, cls.INFO)

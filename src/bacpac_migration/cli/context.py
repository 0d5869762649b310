"""
CLI context for BACPAC Bridge.

This module provides the context object that is passed to all CLI commands,
holding the configuration source and the console shared by the commands.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.console import Console

from bacpac_migration.client.exceptions import ConfigurationError
from bacpac_migration.config import MigrationConfig, load_config_from_yaml, merge_overrides
from bacpac_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file (optional; options and
            BACPAC_BRIDGE_* environment variables can supply everything)
        log_level: Console logging level given on the command line; when
            unset, the configuration file's logging.level applies
        log_file: Log file given on the command line; when unset, the
            configuration file's logging.file applies
        console: Console commands print to
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None
    console: Console = field(default_factory=Console)

    _overrides: dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)

    def apply_overrides(self, overrides: dict[str, Any]) -> None:
        """Layer command-line values over the configuration file.

        ``None`` values are ignored, so unset options keep the file's values.
        """
        self._overrides = merge_overrides(self._overrides, overrides)
        self._config = None

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration.

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        if self._config is None:
            try:
                if self.config_path is not None:
                    logger.debug("loading_configuration", config_path=str(self.config_path))
                    self._config = load_config_from_yaml(self.config_path, self._overrides)
                else:
                    logger.debug("loading_configuration_from_options_and_environment")
                    self._config = MigrationConfig(**self._overrides)
            except (ValidationError, ValueError, FileNotFoundError) as e:
                raise ConfigurationError(str(e)) from e
            self._apply_logging(self._config)
            logger.debug("configuration_loaded")

        return self._config

    def _apply_logging(self, config: MigrationConfig) -> None:
        """Reconfigure logging from the loaded configuration.

        Explicit --log-level and --log-file win over the file's values.
        """
        settings = config.logging
        configure_logging(
            level=self.log_level or settings.level,
            log_format=settings.format,
            log_file=self.log_file or settings.file,
            file_level=settings.file_level,
        )

"""SQL administrator credential capture."""

import os

import click
from pydantic import SecretStr

from bacpac_migration.client.exceptions import ConfigurationError
from bacpac_migration.client.interfaces import SqlCredentials
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)

PASSWORD_ENV_VAR = "BACPAC_BRIDGE_ADMIN_PASSWORD"


class ClickCredentialPrompt:
    """Asks for the administrator password once per run.

    The password is taken from ``BACPAC_BRIDGE_ADMIN_PASSWORD`` when set so
    unattended runs do not block on a prompt.
    """

    def __init__(self, env_var: str = PASSWORD_ENV_VAR, interactive: bool = True):
        self.env_var = env_var
        self.interactive = interactive

    def prompt(self, username: str) -> SqlCredentials:
        password = os.environ.get(self.env_var)
        if password:
            logger.debug("admin_password_from_environment", env_var=self.env_var)
        elif not self.interactive:
            raise ConfigurationError(
                f"No administrator password available: set {self.env_var} for non-interactive runs"
            )
        else:
            password = click.prompt(f"Password for SQL administrator '{username}'", hide_input=True)

        if not password:
            raise ConfigurationError("Administrator password cannot be empty")

        return SqlCredentials(username=username, password=SecretStr(password))

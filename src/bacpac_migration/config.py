"""Configuration management for BACPAC Bridge using Pydantic.

This module provides type-safe configuration models for the Azure
subscription, the storage account holding the archives, the target SQL
server, the upload step, polling behaviour and logging.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Editions accepted by the Azure SQL import API
SQL_EDITIONS = (
    "Basic",
    "Standard",
    "Premium",
    "GeneralPurpose",
    "BusinessCritical",
    "Hyperscale",
    "DataWarehouse",
)

_STORAGE_ACCOUNT_PATTERN = re.compile(r"^[a-z0-9]{3,24}$")
_CONTAINER_PATTERN = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,61}[a-z0-9]$")


class AzureConfig(BaseModel):
    """Subscription and resource group the batch runs against."""

    subscription_id: str = Field(..., description="Azure subscription ID")
    resource_group: str = Field(..., description="Resource group holding server and storage")
    tenant_id: str | None = Field(default=None, description="Tenant to sign in to (optional)")
    interactive_login: bool = Field(
        default=False,
        description="Sign in through the browser instead of the default credential chain",
    )
    management_url: str = Field(
        default="https://management.azure.com",
        description="Azure Resource Manager endpoint",
    )

    @field_validator("subscription_id", "resource_group")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate identifiers are not blank."""
        if not v or v.strip() == "":
            raise ValueError("Value cannot be empty")
        return v.strip()

    @field_validator("management_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize the ARM URL."""
        if not v.startswith("https://"):
            raise ValueError("Management URL must start with https://")
        return v.rstrip("/")


class StorageConfig(BaseModel):
    """Blob storage location the archives are uploaded to and imported from."""

    account_name: str = Field(..., description="Storage account name")
    container: str = Field(default="bacpacs", description="Blob container for the archives")
    archive_extension: str = Field(
        default=".bacpac", description="Extension that identifies archives (case-insensitive)"
    )

    @field_validator("account_name")
    @classmethod
    def validate_account_name(cls, v: str) -> str:
        """Validate storage account naming rules."""
        v = v.strip().lower()
        if not _STORAGE_ACCOUNT_PATTERN.match(v):
            raise ValueError("Storage account name must be 3-24 lowercase letters or digits")
        return v

    @field_validator("container")
    @classmethod
    def validate_container(cls, v: str) -> str:
        """Validate blob container naming rules."""
        v = v.strip().lower()
        if not _CONTAINER_PATTERN.match(v):
            raise ValueError(
                "Container name must be 3-63 characters of lowercase letters, digits and "
                "single hyphens"
            )
        return v

    @field_validator("archive_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Normalize the extension to a leading dot."""
        v = v.strip()
        if not v:
            raise ValueError("Archive extension cannot be empty")
        return v if v.startswith(".") else f".{v}"

    @property
    def blob_endpoint(self) -> str:
        """Primary blob endpoint of the storage account."""
        return f"https://{self.account_name}.blob.core.windows.net"

    @property
    def container_url(self) -> str:
        """URL of the archive container."""
        return f"{self.blob_endpoint}/{self.container}"


class ServerConfig(BaseModel):
    """Target Azure SQL logical server and the settings of created databases."""

    name: str = Field(..., description="Logical server name (without .database.windows.net)")
    admin_login: str = Field(..., description="Server administrator login")
    edition: str = Field(default="Standard", description="Edition of the imported databases")
    service_objective: str = Field(default="S0", description="Service objective, e.g. S0, P1")
    max_size_bytes: int = Field(
        default=268435456000,
        ge=1,
        description="Maximum database size in bytes",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip a fully qualified host name down to the server name."""
        v = v.strip().lower()
        suffix = ".database.windows.net"
        if v.endswith(suffix):
            v = v[: -len(suffix)]
        if not v:
            raise ValueError("Server name cannot be empty")
        return v

    @field_validator("admin_login")
    @classmethod
    def validate_admin_login(cls, v: str) -> str:
        """Validate admin login is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Admin login cannot be empty")
        return v.strip()

    @field_validator("edition")
    @classmethod
    def validate_edition(cls, v: str) -> str:
        """Validate edition against the editions the import API accepts."""
        for edition in SQL_EDITIONS:
            if edition.lower() == v.strip().lower():
                return edition
        raise ValueError(f"Edition must be one of: {', '.join(SQL_EDITIONS)}")


class UploadConfig(BaseModel):
    """Bulk transfer of local archives to blob storage."""

    source_dir: str = Field(default=".", description="Local directory holding the archives")
    skip_upload: bool = Field(default=False, description="Archives are already in the container")
    azcopy_path: str | None = Field(
        default=None, description="Path to the azcopy executable (defaults to PATH lookup)"
    )
    overwrite: bool = Field(default=True, description="Overwrite blobs that already exist")
    sas_ttl_hours: int = Field(
        default=8, ge=1, le=168, description="Lifetime of the SAS token handed to azcopy"
    )


class PollingConfig(BaseModel):
    """Import dispatch and status polling behaviour."""

    interval_seconds: float = Field(
        default=15.0, gt=0, le=3600, description="Seconds between status polling iterations"
    )
    max_wait_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Stop polling after this many seconds (default: wait for completion)",
    )
    max_concurrent_status_queries: int = Field(
        default=10, ge=1, le=100, description="Concurrent status queries per iteration"
    )
    max_concurrent_submissions: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Concurrent import submissions (1 submits one after another)",
    )


class ClientConfig(BaseModel):
    """HTTP client settings for Azure Resource Manager."""

    timeout: int = Field(default=60, ge=1, le=600, description="Request timeout in seconds")
    api_version_sql: str = Field(default="2021-11-01", description="Microsoft.Sql API version")
    api_version_storage: str = Field(
        default="2023-01-01", description="Microsoft.Storage API version"
    )
    rate_limit: int = Field(default=20, ge=1, le=100, description="Requests per second limit")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default="logs/bacpac-bridge.log", description="Log file path")
    disable_progress: bool = Field(
        default=False, description="Disable the live progress table (useful for CI/logging)"
    )
    log_payloads: bool = Field(
        default=False,
        description="Log ARM request/response bodies at DEBUG level (secrets are redacted)",
    )
    max_payload_size: int = Field(default=10000, ge=100, le=1000000)

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class ReportConfig(BaseModel):
    """Final batch report output."""

    json_path: str | None = Field(
        default=None, description="Write the batch result as JSON to this path"
    )


class MigrationConfig(BaseSettings):
    """Main migration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BACPAC_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    azure: AzureConfig = Field(..., description="Subscription configuration")
    storage: StorageConfig = Field(..., description="Storage configuration")
    server: ServerConfig = Field(..., description="Target SQL server configuration")
    upload: UploadConfig = Field(default_factory=UploadConfig, description="Upload configuration")
    polling: PollingConfig = Field(
        default_factory=PollingConfig, description="Polling configuration"
    )
    client: ClientConfig = Field(default_factory=ClientConfig, description="ARM client settings")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    report: ReportConfig = Field(default_factory=ReportConfig, description="Report configuration")

    dry_run: bool = Field(default=False, description="List planned imports without submitting")

    @model_validator(mode="after")
    def validate_upload_source(self) -> "MigrationConfig":
        """Require an existing source directory unless the upload is skipped."""
        if not self.upload.skip_upload and not Path(self.upload.source_dir).is_dir():
            raise ValueError(
                f"Source directory does not exist: {self.upload.source_dir} "
                "(set upload.skip_upload if the archives are already uploaded)"
            )
        return self


def load_config_from_yaml(
    config_path: str | Path, overrides: dict[str, Any] | None = None
) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file
        overrides: Nested values (e.g. from CLI options) applied on top of the file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    if overrides:
        config_data = merge_overrides(config_data, overrides)

    return MigrationConfig(**config_data)


def merge_overrides(data: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values into configuration data.

    ``None`` values in overrides are ignored so unset CLI options keep the
    file's values.
    """
    merged = dict(data)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            merged[key] = merge_overrides(merged.get(key) or {}, value)
        else:
            merged[key] = value
    return merged


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in config data.

    Supports ${VAR_NAME} syntax for environment variable substitution.
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data

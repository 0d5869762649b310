"""Interfaces of the collaborators the import engine depends on.

The dispatcher, poller and reconciler only talk to these protocols. The Azure
implementations live in the sibling client modules; tests supply fakes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from azure.core.credentials import TokenCredential
from pydantic import SecretStr

from bacpac_migration.migration.models import (
    BlobInfo,
    OperationHandle,
    ProgressSnapshot,
    RemoteStatus,
)

if TYPE_CHECKING:
    from bacpac_migration.client.session import AzureSession


@dataclass(frozen=True)
class SqlCredentials:
    """Administrator credentials used for every import in the batch."""

    username: str
    password: SecretStr


@dataclass(frozen=True)
class ServerParams:
    """Target server and the service level of the databases it creates."""

    name: str
    edition: str
    service_objective: str
    max_size_bytes: int


@dataclass(frozen=True)
class StorageParams:
    """Where an archive is read from during import."""

    blob_url: str
    storage_key: SecretStr
    key_type: str = "StorageAccessKey"


class BulkTransfer(Protocol):
    """Copies local files into a blob container."""

    async def upload(
        self,
        source_dir: Path,
        destination_url: str,
        credential: SecretStr,
        file_pattern: str,
        overwrite: bool = True,
    ) -> None: ...


class CredentialPrompt(Protocol):
    """Captures the SQL administrator secret for a login."""

    def prompt(self, username: str) -> SqlCredentials: ...


class StorageKeyProvider(Protocol):
    """Retrieves the primary access key of a storage account."""

    async def get_primary_key(self, resource_group: str, account_name: str) -> SecretStr: ...


class BlobLister(Protocol):
    """Lists blobs in a container."""

    async def list_blobs(self, container: str, pattern: str | None = None) -> list[BlobInfo]: ...


class ImportService(Protocol):
    """Starts import operations and reports their status."""

    async def submit_import(
        self,
        server: ServerParams,
        database_name: str,
        credentials: SqlCredentials,
        storage: StorageParams,
    ) -> OperationHandle: ...

    async def get_status(self, handle: OperationHandle) -> RemoteStatus: ...


class DatabaseLookup(Protocol):
    """Checks whether a database exists on a server."""

    async def database_exists(self, server: str, database_name: str) -> bool: ...


class SnapshotSink(Protocol):
    """Receives each polling iteration's progress snapshot."""

    def __call__(self, snapshot: ProgressSnapshot) -> None: ...


class SessionProvider(Protocol):
    """Signs in to Azure and binds the session to a subscription."""

    def login(self) -> TokenCredential: ...

    async def select_context(self, subscription_id: str) -> "AzureSession": ...


class ArchiveStorage(BlobLister, Protocol):
    """Blob container the archives are uploaded to and listed from."""

    def container_url(self, container: str) -> str: ...

    async def ensure_container(self, container: str) -> None: ...

    def upload_token(self, container: str, hours: int = 8) -> SecretStr: ...

    def close(self) -> None: ...


class ArmServices(ImportService, DatabaseLookup, StorageKeyProvider, Protocol):
    """Everything the batch needs from Azure Resource Manager."""

    async def close(self) -> None: ...

"""Azure Resource Manager client for SQL imports and storage keys.

Implements the import service, database lookup and storage key provider used
by the migration engine on top of :class:`BaseAPIClient`.
"""

from datetime import datetime
from typing import Any

import httpx
from pydantic import SecretStr

from bacpac_migration.client.base_client import BaseAPIClient
from bacpac_migration.client.exceptions import (
    APIError,
    NetworkError,
    NotFoundError,
    UpstreamError,
)
from bacpac_migration.client.interfaces import ServerParams, SqlCredentials, StorageParams
from bacpac_migration.client.session import AzureSession
from bacpac_migration.migration.models import OperationHandle, RemoteStatus
from bacpac_migration.utils.logging import get_logger
from bacpac_migration.utils.retry import retry_arm_read, retry_arm_read_short

logger = get_logger(__name__)


def _parse_time(value: Any) -> datetime | None:
    """Parse an ARM timestamp, tolerating the trailing Z and missing values."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("unparseable_timestamp", value=value)
        return None


def parse_operation_status(body: dict[str, Any]) -> RemoteStatus:
    """Build a :class:`RemoteStatus` from an operation status body.

    The async-operation endpoint answers ``{"status": ..., "error": {...}}``
    while the import/export result resource nests its fields under
    ``properties``. Both shapes are accepted; an empty body means the
    operation has not reported yet.
    """
    properties = body.get("properties") if isinstance(body.get("properties"), dict) else {}
    status = body.get("status") or properties.get("status") or "InProgress"

    error = body.get("error")
    error_message = None
    if isinstance(error, dict):
        error_message = error.get("message") or error.get("code")
    error_message = error_message or properties.get("errorMessage") or body.get("errorMessage")

    return RemoteStatus(
        status=str(status),
        status_message=properties.get("statusMessage") or body.get("statusMessage"),
        error_message=error_message or None,
        queued_time=_parse_time(
            properties.get("queuedTime") or body.get("queuedTime") or body.get("startTime")
        ),
        modified_time=_parse_time(
            properties.get("lastModifiedTime") or body.get("lastModifiedTime") or body.get("endTime")
        ),
    )


def handle_from_response(response: httpx.Response) -> OperationHandle:
    """Extract the operation handle from an accepted import response.

    Raises:
        APIError: If the response carries no operation URL
    """
    status_url = response.headers.get("Azure-AsyncOperation") or response.headers.get("Location")
    if not status_url:
        raise APIError(
            message="Import accepted without an operation URL",
            status_code=response.status_code,
        )
    operation_id = httpx.URL(status_url).path.rstrip("/").rsplit("/", 1)[-1]
    return OperationHandle(operation_id=operation_id, status_url=status_url)


class ArmClient(BaseAPIClient):
    """ARM client scoped to one subscription and resource group."""

    def __init__(
        self,
        session: AzureSession,
        resource_group: str,
        api_version_sql: str = "2021-11-01",
        api_version_storage: str = "2023-01-01",
        **kwargs: Any,
    ):
        """Initialize the ARM client.

        Args:
            session: Signed-in Azure session (carries the subscription)
            resource_group: Resource group holding the server and storage account
            api_version_sql: Microsoft.Sql API version
            api_version_storage: Microsoft.Storage API version
            **kwargs: Passed to :class:`BaseAPIClient`
        """
        super().__init__(session, **kwargs)
        self.resource_group = resource_group
        self.api_version_sql = api_version_sql
        self.api_version_storage = api_version_storage

    def _resource_group_path(self, resource_group: str | None = None) -> str:
        return (
            f"/subscriptions/{self.session.subscription_id}"
            f"/resourceGroups/{resource_group or self.resource_group}"
        )

    def _server_path(self, server: str) -> str:
        return f"{self._resource_group_path()}/providers/Microsoft.Sql/servers/{server}"

    async def get_primary_key(self, resource_group: str, account_name: str) -> SecretStr:
        """Retrieve the first access key of a storage account.

        Raises:
            UpstreamError: If the keys cannot be listed
        """
        path = (
            f"{self._resource_group_path(resource_group)}"
            f"/providers/Microsoft.Storage/storageAccounts/{account_name}/listKeys"
        )
        try:
            body = await self._list_keys(path)
        except (APIError, NetworkError) as e:
            raise UpstreamError(f"Could not retrieve keys of storage account '{account_name}': {e}") from e

        keys = body.get("keys") or []
        if not keys or not keys[0].get("value"):
            raise UpstreamError(f"Storage account '{account_name}' returned no access keys")

        logger.info("storage_key_retrieved", account=account_name, key_name=keys[0].get("keyName"))
        return SecretStr(keys[0]["value"])

    @retry_arm_read
    async def _list_keys(self, path: str) -> dict[str, Any]:
        # listKeys is a POST but reads state only
        return await self.post(path, params={"api-version": self.api_version_storage})

    async def submit_import(
        self,
        server: ServerParams,
        database_name: str,
        credentials: SqlCredentials,
        storage: StorageParams,
    ) -> OperationHandle:
        """Start importing an archive into a new database.

        Not retried: repeating the POST could start a second import.

        Raises:
            APIError: If the request is rejected
            NetworkError: If the request could not be sent
        """
        body = {
            "databaseName": database_name,
            "edition": server.edition,
            "serviceObjectiveName": server.service_objective,
            "maxSizeBytes": str(server.max_size_bytes),
            "storageKeyType": storage.key_type,
            "storageKey": storage.storage_key.get_secret_value(),
            "storageUri": storage.blob_url,
            "administratorLogin": credentials.username,
            "administratorLoginPassword": credentials.password.get_secret_value(),
            "authenticationType": "Sql",
        }
        response = await self.request_raw(
            "POST",
            f"{self._server_path(server.name)}/import",
            params={"api-version": self.api_version_sql},
            json_data=body,
        )
        handle = handle_from_response(response)
        logger.debug(
            "import_accepted",
            database=database_name,
            operation_id=handle.operation_id,
            status_code=response.status_code,
        )
        return handle

    @retry_arm_read_short
    async def get_status(self, handle: OperationHandle) -> RemoteStatus:
        """Read the current status of an import operation."""
        response = await self.request_raw("GET", handle.status_url)
        if response.status_code == 202 and not response.text:
            return RemoteStatus(status="InProgress")
        body = response.json() if response.text else {}
        return parse_operation_status(body if isinstance(body, dict) else {})

    @retry_arm_read
    async def database_exists(self, server: str, database_name: str) -> bool:
        """Check whether a database exists on the server."""
        try:
            await self.get(
                f"{self._server_path(server)}/databases/{database_name}",
                params={"api-version": self.api_version_sql},
            )
        except NotFoundError:
            return False
        return True

    async def verify_access(self, server: str) -> None:
        """Confirm the server is reachable with the current identity.

        Raises:
            UpstreamError: If the server cannot be read
        """
        try:
            await self.get(self._server_path(server), params={"api-version": self.api_version_sql})
        except (APIError, NetworkError) as e:
            raise UpstreamError(f"Cannot access SQL server '{server}': {e}") from e
        logger.info("server_access_verified", server=server)

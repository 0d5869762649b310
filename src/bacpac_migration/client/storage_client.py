"""Blob storage access for the archive container.

Wraps the synchronous azure-storage-blob SDK; calls run in a worker thread so
they do not block the event loop.
"""

import asyncio
import fnmatch
from datetime import UTC, datetime, timedelta

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContainerSasPermissions, generate_container_sas
from pydantic import SecretStr

from bacpac_migration.client.exceptions import UpstreamError
from bacpac_migration.migration.models import BlobInfo
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


class BlobStorageClient:
    """Lists archives and issues upload tokens for one storage account.

    Authenticates with the account key retrieved through ARM.
    """

    def __init__(self, account_name: str, account_key: SecretStr, endpoint: str | None = None):
        """Initialize the storage client.

        Args:
            account_name: Storage account name
            account_key: Access key of the account
            endpoint: Blob endpoint (defaults to the public cloud endpoint)
        """
        self.account_name = account_name
        self._account_key = account_key
        self.endpoint = (endpoint or f"https://{account_name}.blob.core.windows.net").rstrip("/")
        self.blob_service = BlobServiceClient(
            account_url=self.endpoint, credential=account_key.get_secret_value()
        )

    def container_url(self, container: str) -> str:
        return f"{self.endpoint}/{container}"

    async def list_blobs(self, container: str, pattern: str | None = None) -> list[BlobInfo]:
        """List blobs in a container.

        Args:
            container: Container name
            pattern: Optional glob matched case-insensitively against blob names

        Raises:
            UpstreamError: If the container cannot be listed
        """

        def _list() -> list[BlobInfo]:
            container_client = self.blob_service.get_container_client(container)
            return [
                BlobInfo(name=blob.name, size=blob.size)
                for blob in container_client.list_blobs()
                if pattern is None or fnmatch.fnmatch(blob.name.lower(), pattern.lower())
            ]

        try:
            blobs = await asyncio.to_thread(_list)
        except AzureError as e:
            raise UpstreamError(f"Could not list container '{container}': {e}") from e

        logger.debug("blobs_listed", container=container, pattern=pattern, count=len(blobs))
        return blobs

    async def ensure_container(self, container: str) -> None:
        """Create the container if it does not exist yet.

        Raises:
            UpstreamError: If the container cannot be created
        """

        def _create() -> None:
            try:
                self.blob_service.create_container(container)
                logger.info("container_created", container=container)
            except ResourceExistsError:
                logger.debug("container_exists", container=container)

        try:
            await asyncio.to_thread(_create)
        except AzureError as e:
            raise UpstreamError(f"Could not create container '{container}': {e}") from e

    def upload_token(self, container: str, hours: int = 8) -> SecretStr:
        """Generate a container SAS allowing the bulk transfer to write blobs.

        Args:
            container: Container name
            hours: Token lifetime
        """
        start_time = datetime.now(UTC) - timedelta(minutes=5)
        expiry_time = datetime.now(UTC) + timedelta(hours=hours)

        sas_token = generate_container_sas(
            account_name=self.account_name,
            container_name=container,
            account_key=self._account_key.get_secret_value(),
            permission=ContainerSasPermissions(read=True, add=True, create=True, write=True, list=True),
            expiry=expiry_time,
            start=start_time,
        )
        logger.debug("upload_token_generated", container=container, expires=expiry_time.isoformat())
        return SecretStr(sas_token)

    def close(self) -> None:
        self.blob_service.close()

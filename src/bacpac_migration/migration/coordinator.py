"""Batch coordinator for a full bacpac import run.

This module orchestrates the complete batch:
Upload → Enumerate → Dispatch → Poll → Reconcile → Report, with the elapsed
time reported on every exit path.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import SecretStr

from bacpac_migration.client.arm_client import ArmClient
from bacpac_migration.client.bulk_transfer import AzCopyTransfer
from bacpac_migration.client.exceptions import BatchFailedError
from bacpac_migration.client.interfaces import (
    ArchiveStorage,
    ArmServices,
    BulkTransfer,
    CredentialPrompt,
    ServerParams,
    SessionProvider,
    SnapshotSink,
)
from bacpac_migration.client.session import AzureSession
from bacpac_migration.client.storage_client import BlobStorageClient
from bacpac_migration.config import MigrationConfig
from bacpac_migration.migration.dispatcher import ImportDispatcher
from bacpac_migration.migration.enumerator import enumerate_archives, list_local_archives
from bacpac_migration.migration.models import Archive, BatchResult
from bacpac_migration.migration.poller import StatusPoller
from bacpac_migration.migration.reconciler import Reconciler
from bacpac_migration.reporting.elapsed import ElapsedTimer
from bacpac_migration.reporting.report import BatchReport
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)

ArmFactory = Callable[[AzureSession], ArmServices]
StorageFactory = Callable[[str, SecretStr], ArchiveStorage]


def default_arm_factory(config: MigrationConfig) -> ArmFactory:
    """Build ARM clients from configuration."""

    def create(session: AzureSession) -> ArmServices:
        return ArmClient(
            session,
            resource_group=config.azure.resource_group,
            api_version_sql=config.client.api_version_sql,
            api_version_storage=config.client.api_version_storage,
            timeout=config.client.timeout,
            rate_limit=config.client.rate_limit,
            log_payloads=config.logging.log_payloads,
            max_payload_size=config.logging.max_payload_size,
        )

    return create


def default_storage_factory(account_name: str, account_key: SecretStr) -> ArchiveStorage:
    return BlobStorageClient(account_name, account_key)


class BatchCoordinator:
    """Runs one batch of imports from local archives to databases.

    Collaborators are injected so each step can be replaced in tests; the
    defaults talk to Azure.
    """

    def __init__(
        self,
        config: MigrationConfig,
        session_provider: SessionProvider,
        credential_prompt: CredentialPrompt,
        arm_factory: ArmFactory | None = None,
        storage_factory: StorageFactory | None = None,
        transfer: BulkTransfer | None = None,
        on_snapshot: SnapshotSink | None = None,
        on_elapsed: Callable[[float, BaseException | None], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the coordinator.

        Args:
            config: Migration configuration
            session_provider: Signs in and selects the subscription
            credential_prompt: Supplies the SQL administrator password
            arm_factory: Builds the ARM client for a session
            storage_factory: Builds the blob storage client from account name and key
            transfer: Bulk upload tool (defaults to AzCopy)
            on_snapshot: Receives every polling iteration's snapshot
            on_elapsed: Receives the elapsed time when the run ends, however it ends
            sleep: Coroutine used by the poller to wait between iterations
            clock: Monotonic clock for elapsed time and the polling deadline
        """
        self.config = config
        self.session_provider = session_provider
        self.credential_prompt = credential_prompt
        self.arm_factory = arm_factory or default_arm_factory(config)
        self.storage_factory = storage_factory or default_storage_factory
        self.transfer = transfer
        self.on_snapshot = on_snapshot
        self.on_elapsed = on_elapsed
        self._sleep = sleep
        self._clock = clock

        self.run_id = uuid.uuid4().hex[:12]
        self.planned: list[Archive] = []
        self.result: BatchResult | None = None

    @property
    def server_params(self) -> ServerParams:
        server = self.config.server
        return ServerParams(
            name=server.name,
            edition=server.edition,
            service_objective=server.service_objective,
            max_size_bytes=server.max_size_bytes,
        )

    async def run(self) -> BatchResult | None:
        """Run the batch.

        Returns:
            The batch result, or None for a dry run

        Raises:
            UpstreamError: If sign-in, key retrieval, upload or enumeration fails
            BatchFailedError: If any import failed, any database is missing or
                polling stopped at its deadline
        """
        logger.info(
            "batch_started",
            run_id=self.run_id,
            server=self.config.server.name,
            container=self.config.storage.container,
            dry_run=self.config.dry_run,
        )

        with ElapsedTimer(on_report=self.on_elapsed, clock=self._clock) as timer:
            session = await self.session_provider.select_context(self.config.azure.subscription_id)
            arm = self.arm_factory(session)
            try:
                return await self._run(arm, timer)
            finally:
                await arm.close()

    async def _run(self, arm: ArmServices, timer: ElapsedTimer) -> BatchResult | None:
        config = self.config
        account_key = await arm.get_primary_key(
            config.azure.resource_group, config.storage.account_name
        )
        storage = self.storage_factory(config.storage.account_name, account_key)

        try:
            # Ask before the upload so a long transfer is not followed by a prompt
            credentials = None
            if not config.dry_run:
                credentials = self.credential_prompt.prompt(config.server.admin_login)

            await self._upload(storage)

            container_url = storage.container_url(config.storage.container)
            if config.dry_run and not config.upload.skip_upload:
                # Nothing was uploaded, so the plan is what the upload would copy
                archives = list_local_archives(
                    config.upload.source_dir,
                    extension=config.storage.archive_extension,
                    container_url=container_url,
                )
            else:
                archives = await enumerate_archives(
                    storage,
                    config.storage.container,
                    extension=config.storage.archive_extension,
                    container_url=container_url,
                )
            self.planned = archives

            if config.dry_run:
                logger.info(
                    "dry_run_planned",
                    archives=len(archives),
                    databases=[archive.base_name for archive in archives],
                )
                return None

            if not archives:
                logger.warning("no_archives_found", container=config.storage.container)

            dispatcher = ImportDispatcher(
                arm,
                self.server_params,
                credentials,
                account_key,
                max_concurrent=config.polling.max_concurrent_submissions,
            )
            jobs = await dispatcher.dispatch(archives)

            poller = StatusPoller(
                arm,
                interval=config.polling.interval_seconds,
                max_wait=config.polling.max_wait_seconds,
                max_concurrent=config.polling.max_concurrent_status_queries,
                on_snapshot=self.on_snapshot,
                sleep=self._sleep,
                clock=self._clock,
            )
            outcome = await poller.poll(jobs)

            reconciler = Reconciler(
                arm,
                config.server.name,
                max_concurrent=config.polling.max_concurrent_status_queries,
            )
            result = await reconciler.reconcile(outcome, elapsed_seconds=timer.elapsed_seconds)
            self.result = result

            if config.report.json_path:
                BatchReport(result, config.server.name, run_id=self.run_id).generate_json(
                    config.report.json_path
                )

            if not result.succeeded:
                raise BatchFailedError(result)

            return result
        finally:
            storage.close()

    async def _upload(self, storage: ArchiveStorage) -> None:
        upload = self.config.upload
        storage_config = self.config.storage

        if upload.skip_upload or self.config.dry_run:
            logger.info(
                "upload_skipped",
                reason="skip_upload" if upload.skip_upload else "dry_run",
            )
            return

        if self.transfer is None:
            self.transfer = AzCopyTransfer(upload.azcopy_path)

        await storage.ensure_container(storage_config.container)
        token = storage.upload_token(storage_config.container, hours=upload.sas_ttl_hours)
        await self.transfer.upload(
            Path(upload.source_dir),
            storage.container_url(storage_config.container),
            token,
            f"*{storage_config.archive_extension}",
            overwrite=upload.overwrite,
        )

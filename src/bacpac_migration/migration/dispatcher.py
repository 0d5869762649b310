"""Submission of one asynchronous import per archive."""

import asyncio
from collections.abc import Sequence

from pydantic import SecretStr

from bacpac_migration.client.exceptions import SubmissionError
from bacpac_migration.client.interfaces import (
    ImportService,
    ServerParams,
    SqlCredentials,
    StorageParams,
)
from bacpac_migration.migration.models import Archive, ImportJob
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


class ImportDispatcher:
    """Starts an import for every archive without waiting for any to finish.

    A submission that fails is logged and recorded as a failed-to-start job,
    so the returned list always holds exactly one job per archive.
    """

    def __init__(
        self,
        service: ImportService,
        server: ServerParams,
        credentials: SqlCredentials,
        storage_key: SecretStr,
        max_concurrent: int = 1,
    ):
        """Initialize the dispatcher.

        Args:
            service: Import service the requests are sent to
            server: Target server and service level of created databases
            credentials: Server administrator credentials
            storage_key: Access key of the storage account holding the archives
            max_concurrent: Submissions in flight at once (1 submits sequentially)
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.service = service
        self.server = server
        self.credentials = credentials
        self.storage_key = storage_key
        self.max_concurrent = max_concurrent

    async def dispatch(self, archives: Sequence[Archive]) -> list[ImportJob]:
        """Submit one import request per archive.

        Args:
            archives: Archives to import, each at most once

        Returns:
            One job per archive, in archive order

        Raises:
            ValueError: If the same archive appears twice
        """
        names = [archive.name for archive in archives]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Archives listed more than once: {', '.join(duplicates)}")

        logger.info(
            "dispatch_started",
            archives=len(archives),
            server=self.server.name,
            max_concurrent=self.max_concurrent,
        )

        # Two archives in different virtual directories can map to one database
        claimed: dict[str, str] = {}
        conflicts: dict[str, str] = {}
        for archive in archives:
            key = archive.base_name.lower()
            if key in claimed:
                conflicts[archive.name] = claimed[key]
            else:
                claimed[key] = archive.name

        if self.max_concurrent == 1:
            jobs = [await self._submit(archive, conflicts.get(archive.name)) for archive in archives]
        else:
            semaphore = asyncio.Semaphore(self.max_concurrent)

            async def submit_with_semaphore(archive: Archive) -> ImportJob:
                async with semaphore:
                    return await self._submit(archive, conflicts.get(archive.name))

            jobs = list(await asyncio.gather(*(submit_with_semaphore(a) for a in archives)))

        started = sum(1 for job in jobs if job.handle is not None)
        logger.info(
            "dispatch_completed",
            archives=len(archives),
            started=started,
            failed_to_start=len(jobs) - started,
        )
        return jobs

    async def _submit(self, archive: Archive, conflicting_archive: str | None) -> ImportJob:
        """Submit a single import and wrap the outcome in a job."""
        database_name = archive.base_name

        if conflicting_archive is not None:
            error = SubmissionError(
                database_name, f"database name already targeted by '{conflicting_archive}'"
            )
            logger.error("import_submission_failed", archive=archive.name, error=str(error))
            return ImportJob.failed_to_start(archive, error.reason)

        if not archive.url:
            error = SubmissionError(database_name, "archive has no blob URL")
            logger.error("import_submission_failed", archive=archive.name, error=str(error))
            return ImportJob.failed_to_start(archive, error.reason)

        storage = StorageParams(blob_url=archive.url, storage_key=self.storage_key)

        try:
            handle = await self.service.submit_import(
                self.server, database_name, self.credentials, storage
            )
        except Exception as e:
            error = SubmissionError(database_name, str(e))
            logger.error(
                "import_submission_failed",
                archive=archive.name,
                database=database_name,
                error_type=type(e).__name__,
                error=str(error),
            )
            return ImportJob.failed_to_start(archive, error.reason)

        logger.info(
            "import_submitted",
            archive=archive.name,
            database=database_name,
            operation_id=handle.operation_id,
        )
        return ImportJob.submitted(archive, handle)

"""Shared fixtures and fake collaborators for the test suite."""

from pathlib import Path

import pytest
from pydantic import SecretStr

from bacpac_migration.client.exceptions import APIError
from bacpac_migration.client.interfaces import ServerParams, SqlCredentials, StorageParams
from bacpac_migration.config import MigrationConfig
from bacpac_migration.migration.models import (
    Archive,
    BlobInfo,
    ImportJob,
    OperationHandle,
    ProgressSnapshot,
    RemoteStatus,
)

CONTAINER_URL = "https://acct.blob.core.windows.net/bacpacs"


def make_archive(name: str) -> Archive:
    return Archive(name=name, url=f"{CONTAINER_URL}/{name}", size=1024)


def make_handle(database_name: str) -> OperationHandle:
    return OperationHandle(
        operation_id=f"op-{database_name}",
        status_url=f"https://management.azure.com/operations/op-{database_name}",
    )


def submitted_job(database_name: str) -> ImportJob:
    return ImportJob.submitted(make_archive(f"{database_name}.bacpac"), make_handle(database_name))


class FakeImportService:
    """Import service whose status answers are scripted per database.

    ``statuses`` maps a database name to the sequence of answers returned by
    successive status queries; an answer is either a raw status string or an
    exception to raise. The last answer repeats once the sequence runs out.
    """

    def __init__(
        self,
        statuses: dict[str, list[str | Exception]] | None = None,
        reject: dict[str, Exception] | None = None,
    ):
        self.statuses = statuses or {}
        self.reject = reject or {}
        self.submissions: list[tuple[ServerParams, str, SqlCredentials, StorageParams]] = []
        self.status_calls: dict[str, int] = {}

    async def submit_import(self, server, database_name, credentials, storage) -> OperationHandle:
        self.submissions.append((server, database_name, credentials, storage))
        if database_name in self.reject:
            raise self.reject[database_name]
        return make_handle(database_name)

    async def get_status(self, handle: OperationHandle) -> RemoteStatus:
        database_name = handle.operation_id.removeprefix("op-")
        call = self.status_calls.get(database_name, 0)
        self.status_calls[database_name] = call + 1

        script = self.statuses.get(database_name, ["Succeeded"])
        answer = script[min(call, len(script) - 1)]
        if isinstance(answer, Exception):
            raise answer
        return RemoteStatus(status=answer, status_message=f"{answer} ({call + 1})")

    @property
    def submitted_names(self) -> list[str]:
        return [name for _, name, _, _ in self.submissions]


class FakeDatabaseLookup:
    """Database lookup answering from a fixed set of existing databases."""

    def __init__(self, existing: set[str] | None = None, errors: set[str] | None = None):
        self.existing = existing or set()
        self.errors = errors or set()
        self.calls: list[tuple[str, str]] = []

    async def database_exists(self, server: str, database_name: str) -> bool:
        self.calls.append((server, database_name))
        if database_name in self.errors:
            raise APIError("lookup failed", status_code=500)
        return database_name in self.existing


class FakeBlobLister:
    """Blob lister returning a fixed listing, or raising."""

    def __init__(self, names: list[str] | None = None, error: Exception | None = None):
        self.blobs = [BlobInfo(name=name, size=2048) for name in names or []]
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    async def list_blobs(self, container: str, pattern: str | None = None) -> list[BlobInfo]:
        self.calls.append((container, pattern))
        if self.error is not None:
            raise self.error
        return list(self.blobs)


class FakeArchiveStorage(FakeBlobLister):
    """Blob container fake used by the coordinator."""

    def __init__(self, names: list[str] | None = None, error: Exception | None = None):
        super().__init__(names, error)
        self.ensured: list[str] = []
        self.closed = False

    def container_url(self, container: str) -> str:
        return f"https://acct.blob.core.windows.net/{container}"

    async def ensure_container(self, container: str) -> None:
        self.ensured.append(container)

    def upload_token(self, container: str, hours: int = 8) -> SecretStr:
        return SecretStr("sv=2023&sig=abc")

    def close(self) -> None:
        self.closed = True


class FakeArm(FakeImportService):
    """ARM fake combining import service, database lookup and key provider."""

    def __init__(
        self,
        statuses: dict[str, list[str | Exception]] | None = None,
        reject: dict[str, Exception] | None = None,
        existing: set[str] | None = None,
        key_error: Exception | None = None,
    ):
        super().__init__(statuses, reject)
        self.lookup = FakeDatabaseLookup(existing)
        self.key_error = key_error
        self.closed = False

    async def get_primary_key(self, resource_group: str, account_name: str) -> SecretStr:
        if self.key_error is not None:
            raise self.key_error
        return SecretStr("account-key")

    async def database_exists(self, server: str, database_name: str) -> bool:
        return await self.lookup.database_exists(server, database_name)

    async def close(self) -> None:
        self.closed = True


class FakeTransfer:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.uploads: list[dict] = []

    async def upload(self, source_dir, destination_url, credential, file_pattern, overwrite=True):
        self.uploads.append(
            {
                "source_dir": source_dir,
                "destination_url": destination_url,
                "credential": credential,
                "file_pattern": file_pattern,
                "overwrite": overwrite,
            }
        )
        if self.error is not None:
            raise self.error


class FakeCredentialPrompt:
    def __init__(self):
        self.prompted: list[str] = []

    def prompt(self, username: str) -> SqlCredentials:
        self.prompted.append(username)
        return SqlCredentials(username=username, password=SecretStr("P@ssw0rd!"))


class FakeSessionProvider:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.contexts: list[str] = []

    def login(self):
        return object()

    async def select_context(self, subscription_id: str):
        if self.error is not None:
            raise self.error
        self.contexts.append(subscription_id)
        return object()


class FakeClock:
    """Monotonic clock advanced only by :class:`FakeSleep`."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested sleeps and advances the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.now += seconds


class SnapshotRecorder:
    def __init__(self):
        self.snapshots: list[ProgressSnapshot] = []

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        self.snapshots.append(snapshot)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def recorder() -> SnapshotRecorder:
    return SnapshotRecorder()


@pytest.fixture
def server_params() -> ServerParams:
    return ServerParams(
        name="sqlsrv", edition="Standard", service_objective="S0", max_size_bytes=268435456000
    )


@pytest.fixture
def credentials() -> SqlCredentials:
    return SqlCredentials(username="sqladmin", password=SecretStr("P@ssw0rd!"))


@pytest.fixture
def config_data(tmp_path: Path) -> dict:
    source_dir = tmp_path / "exports"
    source_dir.mkdir()
    return {
        "azure": {
            "subscription_id": "00000000-0000-0000-0000-000000000001",
            "resource_group": "rg-data",
        },
        "storage": {"account_name": "acct", "container": "bacpacs"},
        "server": {"name": "sqlsrv", "admin_login": "sqladmin"},
        "upload": {"source_dir": str(source_dir)},
        "polling": {"interval_seconds": 15},
        "logging": {"file": None},
    }


@pytest.fixture
def config(config_data: dict) -> MigrationConfig:
    return MigrationConfig(**config_data)


"""Enumeration of the archives available for import."""

from pathlib import Path

from bacpac_migration.client.exceptions import BacpacMigrationError, UploadError, UpstreamError
from bacpac_migration.client.interfaces import BlobLister
from bacpac_migration.migration.models import Archive
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _suffix(extension: str) -> str:
    return (extension if extension.startswith(".") else f".{extension}").lower()


async def enumerate_archives(
    lister: BlobLister,
    container: str,
    extension: str = ".bacpac",
    container_url: str | None = None,
) -> list[Archive]:
    """List the archives currently present in a blob container.

    Blobs are matched on a case-insensitive suffix of ``extension`` and
    returned in the order the listing produced them.

    Args:
        lister: Blob listing collaborator
        container: Container to list
        extension: Archive extension, with or without the leading dot
        container_url: Base URL used to build each archive's blob URL

    Returns:
        Archives found in the container at the time of the call

    Raises:
        UpstreamError: If the listing fails
    """
    suffix = _suffix(extension)

    try:
        blobs = await lister.list_blobs(container, pattern=f"*{suffix}")
    except UpstreamError:
        raise
    except (BacpacMigrationError, OSError) as e:
        raise UpstreamError(f"Failed to list archives in container '{container}': {e}") from e

    archives: list[Archive] = []
    seen: set[str] = set()
    for blob in blobs:
        if not blob.name.lower().endswith(suffix) or blob.name in seen:
            continue
        seen.add(blob.name)
        url = f"{container_url.rstrip('/')}/{blob.name}" if container_url else None
        archives.append(Archive(name=blob.name, url=url, size=blob.size))

    logger.info(
        "archives_enumerated",
        container=container,
        extension=suffix,
        listed=len(blobs),
        archives=len(archives),
    )
    return archives


def list_local_archives(
    source_dir: str | Path,
    extension: str = ".bacpac",
    container_url: str | None = None,
) -> list[Archive]:
    """List the archives the upload step would copy from ``source_dir``.

    Only files directly inside the directory are considered, matched on a
    case-insensitive suffix and sorted by name. Each archive's URL is where
    the upload places it in the container.

    Raises:
        UploadError: If the source directory does not exist
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise UploadError(f"Source directory does not exist: {source}")

    suffix = _suffix(extension)
    archives = [
        Archive(
            name=path.name,
            url=f"{container_url.rstrip('/')}/{path.name}" if container_url else None,
            size=path.stat().st_size,
        )
        for path in sorted(source.iterdir())
        if path.is_file() and path.name.lower().endswith(suffix)
    ]

    logger.info("local_archives_listed", source_dir=str(source), archives=len(archives))
    return archives

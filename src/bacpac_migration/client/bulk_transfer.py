"""Bulk upload of local archives with AzCopy.

AzCopy v10 is run as a subprocess; its output is forwarded to the log with the
SAS token removed from any URL it echoes.
"""

import asyncio
import re
import shutil
from pathlib import Path

from pydantic import SecretStr

from bacpac_migration.client.exceptions import UploadError
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)

_SAS_QUERY = re.compile(r"\?[^\s\"']*sig=[^\s\"']*")


def redact_sas(text: str) -> str:
    """Replace the query string of SAS URLs with a placeholder."""
    return _SAS_QUERY.sub("?[SAS_REDACTED]", text)


class AzCopyTransfer:
    """Uploads a directory into a blob container with ``azcopy copy``."""

    def __init__(self, executable: str | None = None):
        """Initialize the transfer.

        Args:
            executable: Path to azcopy; looked up on PATH when omitted
        """
        self.executable = executable

    def _resolve_executable(self) -> str:
        if self.executable:
            if not Path(self.executable).is_file():
                raise UploadError(f"AzCopy not found at {self.executable}")
            return self.executable

        found = shutil.which("azcopy")
        if found is None:
            raise UploadError("AzCopy not found on PATH (set upload.azcopy_path)")
        return found

    def build_command(
        self,
        executable: str,
        source_dir: Path,
        destination_url: str,
        credential: SecretStr,
        file_pattern: str,
        overwrite: bool = True,
    ) -> list[str]:
        """Build the azcopy argument list."""
        return [
            executable,
            "copy",
            f"{source_dir.as_posix().rstrip('/')}/*",
            f"{destination_url}?{credential.get_secret_value().lstrip('?')}",
            f"--include-pattern={file_pattern}",
            f"--overwrite={'true' if overwrite else 'false'}",
            "--output-level=essential",
        ]

    async def upload(
        self,
        source_dir: Path,
        destination_url: str,
        credential: SecretStr,
        file_pattern: str,
        overwrite: bool = True,
    ) -> None:
        """Upload every file in ``source_dir`` matching ``file_pattern``.

        Raises:
            UploadError: If azcopy is missing, cannot start, or exits non-zero
        """
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise UploadError(f"Source directory does not exist: {source_dir}")

        command = self.build_command(
            self._resolve_executable(), source_dir, destination_url, credential, file_pattern, overwrite
        )
        logger.info(
            "upload_started",
            source_dir=str(source_dir),
            destination=destination_url,
            pattern=file_pattern,
            overwrite=overwrite,
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise UploadError(f"Could not start AzCopy: {e}") from e

        assert process.stdout is not None
        tail: list[str] = []
        async for raw_line in process.stdout:
            line = redact_sas(raw_line.decode(errors="replace").rstrip())
            if not line:
                continue
            logger.debug("azcopy_output", line=line)
            tail = (tail + [line])[-5:]

        exit_code = await process.wait()
        if exit_code != 0:
            detail = " | ".join(tail) or "no output"
            raise UploadError(f"AzCopy exited with code {exit_code}: {detail}", exit_code=exit_code)

        logger.info("upload_completed", destination=destination_url)

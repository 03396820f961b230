"""Streaming uploads: a local tar producer piped into a remote tar consumer."""

import asyncio
import logging
from pathlib import Path

from sup.config import Upload
from sup.errors import UploadError
from sup.hosts import HostIdentity
from sup.remote import build_extract_cmd, build_mkdir_cmd
from sup.ssh import run_captured

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def build_archive_cmd(src: Path) -> list[str]:
    """Build the tar argv that streams ``src`` as a gzipped archive.

    The archive is rooted at the source's base name, so a file and a
    directory are handled the same way. ``src`` is resolved first so that
    ``.`` and ``./dist/`` still have a usable base name.
    """
    path = src.resolve()
    return ["tar", "-czf", "-", "-C", str(path.parent), path.name]


async def ensure_remote_dir(host: HostIdentity, directory: str) -> None:
    """Create ``directory`` on ``host`` with ``mkdir -p``.

    Raises:
        UploadError: If the remote command fails.
    """
    logger.debug("Ensuring remote directory exists: %s", directory)
    result = await run_captured(host, build_mkdir_cmd(host.target, directory))
    if result.returncode != 0:
        raise UploadError(
            f"Failed to create remote directory {directory} on {host}: {result.stderr.strip()}"
        )


async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> int:
    """Copy ``reader`` into ``writer`` until EOF, then close the writer."""
    copied = 0
    try:
        while True:
            chunk = await reader.read(CHUNK_SIZE)
            if not chunk:
                break
            writer.write(chunk)
            await writer.drain()
            copied += len(chunk)
    finally:
        writer.close()
        await writer.wait_closed()
    return copied


async def upload_to_host(host: HostIdentity, upload: Upload) -> None:
    """Stream one local path into a directory on one host.

    Args:
        host: Destination host.
        upload: Source path and destination directory.

    Raises:
        UploadError: If the source is missing, the destination cannot be
            created, or either side of the pipe fails.
    """
    src = Path(upload.src)
    if not src.exists():
        raise UploadError(f"Source path does not exist: {upload.src} (uploading to {host})")

    logger.info("Uploading %s to %s:%s", upload.src, host, upload.dst)
    await ensure_remote_dir(host, upload.dst)

    archive_argv = build_archive_cmd(src)
    extract_argv = build_extract_cmd(host.target, upload.dst)
    logger.debug("Running tar command: %s", archive_argv)
    logger.debug("Running SSH command: %s", extract_argv)

    try:
        archiver = await asyncio.create_subprocess_exec(
            *archive_argv, stdout=asyncio.subprocess.PIPE
        )
    except OSError as exc:
        raise UploadError(f"Failed to start tar for {upload.src}: {exc}") from exc

    try:
        extractor = await asyncio.create_subprocess_exec(
            *extract_argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        archiver.kill()
        await archiver.wait()
        raise UploadError(f"Failed to start ssh for {host}: {exc}") from exc

    stderr_task = asyncio.create_task(extractor.stderr.read())

    try:
        copied = await _pipe(archiver.stdout, extractor.stdin)
    except (BrokenPipeError, ConnectionResetError) as exc:
        # The extractor went away mid-stream; its status and stderr say why.
        archiver.kill()
        await archiver.wait()
        ssh_status = await extractor.wait()
        stderr = (await stderr_task).decode(errors="replace").strip()
        raise UploadError(
            f"Extracting {upload.src} into {host}:{upload.dst} failed "
            f"with status {ssh_status}: {stderr}"
        ) from exc
    logger.debug("Transferred %d bytes", copied)

    tar_status = await archiver.wait()
    if tar_status != 0:
        await extractor.wait()
        await stderr_task
        raise UploadError(f"Tar command failed with status {tar_status} for {upload.src}")

    ssh_status = await extractor.wait()
    stderr = (await stderr_task).decode(errors="replace").strip()
    if ssh_status != 0:
        raise UploadError(
            f"Extracting {upload.src} into {host}:{upload.dst} failed "
            f"with status {ssh_status}: {stderr}"
        )

    logger.info("Successfully uploaded %s to %s:%s", upload.src, host, upload.dst)


async def upload_all(hosts: list[str], uploads: list[Upload]) -> None:
    """Upload every entry to every host, one pair at a time.

    Host literals are parsed as they are reached; any failure aborts the
    remaining pairs.

    Raises:
        HostParseError: If a host literal is malformed.
        UploadError: If any upload step fails.
    """
    logger.debug("Starting upload process for %d files", len(uploads))
    for literal in hosts:
        host = HostIdentity.parse(literal)
        for upload in uploads:
            await upload_to_host(host, upload)

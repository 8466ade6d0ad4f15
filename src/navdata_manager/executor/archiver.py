"""On-the-fly zip archiving of directories through a child process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from pathlib import Path
from typing import AsyncIterator, Optional

from ..storage.errors import ArchiveError

logger = logging.getLogger(__name__)

# zip exits with 12 ("nothing to do") for an empty directory
ZIP_NOTHING_TO_DO = 12
# End-of-central-directory record of an archive without entries
EMPTY_ZIP = b"PK\x05\x06" + b"\x00" * 18


class ArchiveJob:
    """Handle on a running archiver whose stdout is the zip stream.

    The job owns the child process: ``aclose`` terminates and reaps it and is
    safe to call any number of times, so the consumer can tie it to its own
    lifetime (a disconnecting client cancels iteration, which closes the job).
    """

    def __init__(self, process: asyncio.subprocess.Process, command: list[str], chunk_size: int) -> None:
        self.process = process
        self.command = command
        self._chunk_size = chunk_size
        self._first_chunk = b""
        self._stderr: list[str] = []
        self._stderr_task: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------ public
    async def prime(self) -> None:
        """Read the first chunk so failures before any output surface as errors."""
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        try:
            self._first_chunk = await self.process.stdout.read(self._chunk_size)
            if self._first_chunk:
                return
            return_code = await self._finish()
        except BaseException:
            await self.aclose()
            raise
        if return_code == ZIP_NOTHING_TO_DO:
            self._first_chunk = EMPTY_ZIP
            return
        if return_code != 0:
            raise ArchiveError(self._failure_message(return_code))

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            if self._first_chunk:
                yield self._first_chunk
            # Drain to EOF; zip may exit while the central directory is still buffered
            while True:
                chunk = await self.process.stdout.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
            return_code = await self._finish()
            if return_code not in (0, ZIP_NOTHING_TO_DO):
                # Bytes already went out; raising here drops the connection
                raise ArchiveError(self._failure_message(return_code))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.process.returncode is None:
            logger.info("Terminating archiver pid %s", self.process.pid)
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            await self.process.wait()
        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task

    # ----------------------------------------------------------------- private
    async def _finish(self) -> int:
        return_code = await self.process.wait()
        if self._stderr_task is not None:
            await self._stderr_task
        return return_code

    async def _drain_stderr(self) -> None:
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            self._stderr.append(line.decode("utf-8", errors="replace").strip())

    def _failure_message(self, return_code: int) -> str:
        detail = self._stderr[-1] if self._stderr else f"exit code {return_code}"
        command_display = " ".join(shlex.quote(part) for part in self.command)
        logger.warning("Archiver failed (%s): %s", command_display, detail)
        return f"Archive failed: {detail}"


class ZipArchiver:
    """Spawn ``zip`` to stream a directory as an archive."""

    def __init__(self, zip_binary: str = "zip", chunk_size: int = 64 * 1024) -> None:
        self.zip_binary = zip_binary
        self.chunk_size = chunk_size

    async def start(self, directory: Path) -> ArchiveJob:
        command = [self.zip_binary, "-q", "-r", "-", "."]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(directory),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ArchiveError(f"Archive failed: cannot run {self.zip_binary}: {exc.strerror or exc}") from exc

        logger.info("Archiving %s (pid %s)", directory, process.pid)
        job = ArchiveJob(process, command, self.chunk_size)
        await job.prime()
        return job

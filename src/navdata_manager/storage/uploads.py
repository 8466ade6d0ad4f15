"""Streaming multipart uploads into a root."""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiofiles
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from .directories import DirectoryService
from .errors import FileServiceError, InvalidContentError, UploadPartError, translate_os_error
from .paths import resolve_path
from .roots import RootRegistry

logger = logging.getLogger(__name__)

DIRECTORY_FIELDS = ("dir", "directory")
ROOT_FIELD = "root"
MAX_FIELD_BYTES = 64 * 1024


def basename_of(filename: str) -> str:
    """Keep only the final component of a client-declared filename."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name in ("", ".", ".."):
        return ""
    return name


@dataclass
class UploadResult:
    saved: list[str] = field(default_factory=list)
    failed: list[UploadPartError] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "ok": True,
            "saved": [{"path": path} for path in self.saved],
            "failed": [{"filename": err.filename, "error": err.message} for err in self.failed],
        }


@dataclass
class _Part:
    headers: dict[bytes, bytes] = field(default_factory=dict)
    header_name: bytes = b""
    header_value: bytes = b""
    name: str = ""
    filename: Optional[str] = None
    value: bytearray = field(default_factory=bytearray)
    handle: Any = None
    target: Optional[Path] = None
    relative_path: str = ""
    written: int = 0
    error: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


class _UploadSession:
    """State of a single upload request.

    The parser callbacks only record events; they are replayed asynchronously
    after every chunk so file writes never block the event loop.
    """

    def __init__(
        self,
        registry: RootRegistry,
        directories: DirectoryService,
        max_part_bytes: int,
        directory: str,
        root_id: Optional[str],
    ) -> None:
        self.registry = registry
        self.directories = directories
        self.max_part_bytes = max_part_bytes
        self.directory = directory
        self.root_id = root_id
        self.result = UploadResult()
        self.events: list[tuple[str, bytes]] = []
        self.part: Optional[_Part] = None

    # ------------------------------------------------------- parser callbacks
    def callbacks(self) -> dict[str, Any]:
        return {
            "on_part_begin": lambda: self.events.append(("part_begin", b"")),
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": lambda: self.events.append(("header_end", b"")),
            "on_headers_finished": lambda: self.events.append(("headers_finished", b"")),
            "on_part_data": self._on_part_data,
            "on_part_end": lambda: self.events.append(("part_end", b"")),
        }

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("header_field", data[start:end]))

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("header_value", data[start:end]))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("part_data", data[start:end]))

    # ------------------------------------------------------------ processing
    async def replay(self) -> None:
        events, self.events = self.events, []
        for kind, data in events:
            if kind == "part_begin":
                self.part = _Part()
            elif kind == "header_field":
                self.part.header_name += data
            elif kind == "header_value":
                self.part.header_value += data
            elif kind == "header_end":
                self.part.headers[self.part.header_name.lower()] = self.part.header_value
                self.part.header_name = b""
                self.part.header_value = b""
            elif kind == "headers_finished":
                await self._start_part(self.part)
            elif kind == "part_data":
                await self._feed_part(self.part, data)
            elif kind == "part_end":
                await self._end_part(self.part)
                self.part = None

    async def abort(self) -> None:
        """Discard a part left open by an interrupted request."""
        if self.part is not None and self.part.handle is not None:
            await self._discard(self.part)
        self.part = None

    async def _start_part(self, part: _Part) -> None:
        _, options = parse_options_header(part.headers.get(b"content-disposition", b""))
        part.name = options.get(b"name", b"").decode("utf-8", errors="replace")
        if b"filename" not in options:
            return
        part.filename = options[b"filename"].decode("utf-8", errors="replace")

        name = basename_of(part.filename)
        if not name:
            self._fail(part, "Missing filename")
            return
        try:
            directory = self.registry.locate(self.root_id, self.directory)
            await asyncio.to_thread(self.directories.create_directory, directory)
            destination = resolve_path(directory.root, posixpath.join(directory.relative_path, name))
            part.target = Path(destination.absolute_path)
            part.relative_path = destination.relative_path
            part.handle = await aiofiles.open(part.target, "wb")
        except FileServiceError as exc:
            self._fail(part, exc.message)
        except OSError as exc:
            self._fail(part, translate_os_error(exc, part.relative_path or name).message)

    async def _feed_part(self, part: _Part, data: bytes) -> None:
        if not part.is_file:
            if len(part.value) + len(data) > MAX_FIELD_BYTES:
                raise InvalidContentError(f"Form field '{part.name}' is too large")
            part.value.extend(data)
            return
        if part.handle is None:
            # Failed part: drain and drop
            return
        if part.written + len(data) > self.max_part_bytes:
            await self._discard(part)
            self._fail(part, f"File exceeds the upload limit of {self.max_part_bytes} bytes")
            return
        try:
            await part.handle.write(data)
        except OSError as exc:
            await self._discard(part)
            self._fail(part, translate_os_error(exc, part.relative_path).message)
            return
        part.written += len(data)

    async def _end_part(self, part: _Part) -> None:
        if not part.is_file:
            value = part.value.decode("utf-8", errors="replace")
            if part.name in DIRECTORY_FIELDS:
                self.directory = value
            elif part.name == ROOT_FIELD:
                self.root_id = value or None
            return
        if part.handle is None:
            return
        try:
            await part.handle.close()
        except OSError as exc:
            part.handle = None
            self._remove_partial(part)
            self._fail(part, translate_os_error(exc, part.relative_path).message)
            return
        part.handle = None
        self.result.saved.append(part.relative_path)
        logger.info("Uploaded %s (%d bytes)", part.relative_path, part.written)

    async def _discard(self, part: _Part) -> None:
        try:
            await part.handle.close()
        except OSError:
            logger.warning("Could not close partial upload %s", part.target)
        part.handle = None
        self._remove_partial(part)

    @staticmethod
    def _remove_partial(part: _Part) -> None:
        if part.target is None:
            return
        try:
            part.target.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove partial upload %s", part.target)

    def _fail(self, part: _Part, message: str) -> None:
        filename = part.filename or ""
        logger.warning("Upload of %r failed: %s", filename, message)
        part.error = message
        self.result.failed.append(UploadPartError(filename, message))


class UploadService:
    """Persist multipart file parts under a target directory of a root."""

    def __init__(self, registry: RootRegistry, directories: DirectoryService, max_part_bytes: int) -> None:
        self.registry = registry
        self.directories = directories
        self.max_part_bytes = max_part_bytes

    async def receive(
        self,
        content_type: str,
        chunks: AsyncIterator[bytes],
        *,
        directory: str = "",
        root_id: Optional[str] = None,
    ) -> UploadResult:
        """Consume a multipart body incrementally.

        ``dir``/``directory`` and ``root`` fields set the destination of the
        file parts that follow them. A part that cannot be stored is drained
        and reported in ``failed``; it never aborts the other parts.
        """
        mime, options = parse_options_header(content_type or "")
        boundary = options.get(b"boundary")
        if mime != b"multipart/form-data" or not boundary:
            raise InvalidContentError("Expected a multipart/form-data body with a boundary")

        session = _UploadSession(self.registry, self.directories, self.max_part_bytes, directory, root_id)
        parser = MultipartParser(boundary, session.callbacks())
        try:
            async for chunk in chunks:
                parser.write(chunk)
                await session.replay()
            parser.finalize()
            await session.replay()
        except MultipartParseError as exc:
            raise InvalidContentError(f"Malformed multipart body: {exc}") from exc
        finally:
            await session.abort()
        return session.result

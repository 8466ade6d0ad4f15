"""Inline previews and raw downloads of file content."""

from __future__ import annotations

import base64
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import AsyncIterator, Optional
from urllib.parse import quote

import aiofiles

from ..executor.archiver import ArchiveJob, ZipArchiver
from .errors import FileTooLargeError, NotAFileError, NotFoundError, translate_os_error
from .models import ContentPreview, PreviewKind, ResolvedPath

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
PDF = "application/pdf"

MIME_TYPES = MappingProxyType(
    {
        # text
        ".txt": "text/plain",
        ".log": "text/plain",
        ".md": "text/markdown",
        ".csv": "text/csv",
        ".tsv": "text/tab-separated-values",
        ".html": "text/html",
        ".htm": "text/html",
        ".css": "text/css",
        ".js": "text/javascript",
        ".json": "application/json",
        ".geojson": "application/geo+json",
        ".xml": "application/xml",
        ".gpx": "application/gpx+xml",
        ".kml": "application/vnd.google-earth.kml+xml",
        ".yml": "application/yaml",
        ".yaml": "application/yaml",
        ".ini": "text/plain",
        ".conf": "text/plain",
        ".nmea": "text/plain",
        # images
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".bmp": "image/bmp",
        ".svg": "image/svg+xml",
        ".ico": "image/x-icon",
        # audio / video
        ".mp3": "audio/mpeg",
        ".wav": "audio/wav",
        ".ogg": "audio/ogg",
        ".m4a": "audio/mp4",
        ".mp4": "video/mp4",
        ".webm": "video/webm",
        ".mov": "video/quicktime",
        # documents and archives
        ".pdf": PDF,
        ".zip": "application/zip",
        ".kmz": "application/vnd.google-earth.kmz",
        ".gz": "application/gzip",
    }
)

TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".log", ".md", ".csv", ".tsv", ".html", ".htm", ".css", ".js",
        ".json", ".geojson", ".xml", ".gpx", ".kml", ".yml", ".yaml", ".ini",
        ".conf", ".nmea",
    }
)

PREVIEWABLE_PREFIXES = ("image/", "audio/", "video/")


def extension_of(name: str) -> str:
    return posixpath.splitext(name)[1].lower()


def guess_mime(name: str) -> str:
    return MIME_TYPES.get(extension_of(name), OCTET_STREAM)


def is_text_extension(name: str) -> bool:
    return extension_of(name) in TEXT_EXTENSIONS


def is_previewable_mime(mime: str) -> bool:
    return mime.startswith(PREVIEWABLE_PREFIXES) or mime == PDF


def content_disposition(filename: str) -> str:
    """Build an attachment header, with an RFC 5987 variant for non-ASCII names."""
    fallback = filename.encode("ascii", errors="replace").decode("ascii").replace('"', "_")
    quoted = quote(filename, safe="")
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"


@dataclass
class DownloadStream:
    """Body of a download: a file read in chunks or a running archive."""

    filename: str
    media_type: str
    chunks: AsyncIterator[bytes]
    size_bytes: Optional[int] = None
    job: Optional[ArchiveJob] = None

    async def aclose(self) -> None:
        if self.job is not None:
            await self.job.aclose()


class ContentService:
    """Classify files for inline preview and stream them for download."""

    def __init__(self, preview_max_bytes: int, archiver: ZipArchiver, chunk_size: int = 64 * 1024) -> None:
        self.preview_max_bytes = preview_max_bytes
        self.archiver = archiver
        self.chunk_size = chunk_size

    def read(self, resolved: ResolvedPath) -> ContentPreview:
        target = Path(resolved.absolute_path)
        try:
            stat = target.stat()
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc
        if not target.is_file():
            raise NotAFileError(f"Not a file: {resolved.relative_path or '/'}")

        mime = guess_mime(target.name)
        if stat.st_size > self.preview_max_bytes:
            raise FileTooLargeError(
                f"File too large for preview ({stat.st_size} bytes, limit {self.preview_max_bytes}); use download"
            )

        if is_text_extension(target.name):
            kind = PreviewKind.TEXT
        elif is_previewable_mime(mime):
            kind = PreviewKind.PREVIEWABLE_BINARY
        else:
            return ContentPreview(kind=PreviewKind.OPAQUE_BINARY, mime=mime, size_bytes=stat.st_size)

        try:
            data = target.read_bytes()
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc

        if kind is PreviewKind.TEXT:
            payload = data.decode("utf-8", errors="replace")
        else:
            payload = base64.b64encode(data).decode("ascii")
        return ContentPreview(kind=kind, mime=mime, size_bytes=len(data), payload=payload)

    async def download(self, resolved: ResolvedPath) -> DownloadStream:
        target = Path(resolved.absolute_path)
        if target.is_dir():
            job = await self.archiver.start(target)
            return DownloadStream(
                filename=f"{resolved.name}.zip",
                media_type="application/zip",
                chunks=job.iter_bytes(),
                job=job,
            )
        if not target.is_file():
            raise NotFoundError(f"Not found: {resolved.relative_path or '/'}")

        try:
            size = target.stat().st_size
            handle = await aiofiles.open(target, "rb")
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc
        logger.info("Downloading %s:%s (%d bytes)", resolved.root.id, resolved.relative_path, size)
        return DownloadStream(
            filename=target.name,
            media_type=guess_mime(target.name),
            chunks=self._read_chunks(handle),
            size_bytes=size,
        )

    async def _read_chunks(self, handle) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await handle.close()

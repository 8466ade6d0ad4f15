"""Directory listing and creation."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from .errors import NotADirError, translate_os_error
from .models import DirectoryEntry, EntryKind, ResolvedPath

logger = logging.getLogger(__name__)


class DirectoryService:
    """List and create directories under a resolved path."""

    def list(self, resolved: ResolvedPath) -> list[DirectoryEntry]:
        target = Path(resolved.absolute_path)
        if target.exists() and not target.is_dir():
            raise NotADirError(f"Not a directory: {resolved.relative_path or '/'}")
        self.create_directory(resolved)

        entries: list[DirectoryEntry] = []
        try:
            with os.scandir(target) as iterator:
                for item in iterator:
                    entries.append(self._build_entry(item))
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc

        entries.sort(key=DirectoryEntry.sort_key)
        logger.debug("Listed %d entries in %s:%s", len(entries), resolved.root.id, resolved.relative_path)
        return entries

    def create_directory(self, resolved: ResolvedPath) -> None:
        try:
            Path(resolved.absolute_path).mkdir(parents=True, exist_ok=True)
        except FileExistsError as exc:
            # A file already occupies the path
            raise NotADirError(f"Not a directory: {resolved.relative_path or '/'}") from exc
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc

    # ----------------------------------------------------------------- private
    @staticmethod
    def _build_entry(item: os.DirEntry[str]) -> DirectoryEntry:
        try:
            is_dir = item.is_dir()
        except OSError:
            is_dir = False
        kind = EntryKind.DIRECTORY if is_dir else EntryKind.FILE
        try:
            stat = item.stat()
        except OSError:
            # Dangling symlink or a child removed mid-listing
            return DirectoryEntry(name=item.name, kind=kind)
        return DirectoryEntry(
            name=item.name,
            kind=kind,
            size_bytes=None if is_dir else stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

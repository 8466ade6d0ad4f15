"""Write, move and delete operations."""

from __future__ import annotations

import base64
import binascii
import errno
import logging
import os
import shutil
from pathlib import Path

from .errors import (
    DirectoryNotEmptyError,
    InvalidContentError,
    InvalidPathError,
    NotAFileError,
    NotFoundError,
    translate_os_error,
)
from .models import ResolvedPath

logger = logging.getLogger(__name__)


class MutationService:
    """Create, overwrite, move and remove entries.

    There is no locking: concurrent writers to the same path race at the
    filesystem layer and the last one wins.
    """

    def write(self, resolved: ResolvedPath, content: str, *, base64_encoded: bool = False) -> Path:
        if base64_encoded:
            try:
                data = base64.b64decode(content, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise InvalidContentError("Content is not valid base64") from exc
        else:
            data = content.encode("utf-8")

        target = Path(resolved.absolute_path)
        if resolved.is_root or target.is_dir():
            raise NotAFileError(f"Not a file: {resolved.relative_path or '/'}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise translate_os_error(exc, resolved.relative_path) from exc
        logger.info("Wrote %d bytes to %s:%s", len(data), resolved.root.id, resolved.relative_path)
        return target

    def rename(self, source: ResolvedPath, destination: ResolvedPath) -> Path:
        if source.is_root:
            raise InvalidPathError("The root directory cannot be moved")
        if destination.is_root:
            raise InvalidPathError("Cannot replace the root directory")

        src = Path(source.absolute_path)
        dst = Path(destination.absolute_path)
        if not src.exists() and not src.is_symlink():
            raise NotFoundError(f"Not found: {source.relative_path}")
        if destination.absolute_path.startswith(source.absolute_path + "/"):
            raise InvalidPathError(f"Cannot move {source.relative_path} into itself")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.replace(src, dst)
            except OSError as exc:
                if exc.errno != errno.EXDEV or dst.exists():
                    raise
                # Roots on different filesystems
                shutil.move(str(src), str(dst))
        except OSError as exc:
            raise translate_os_error(exc, source.relative_path) from exc
        logger.info(
            "Moved %s:%s to %s:%s",
            source.root.id,
            source.relative_path,
            destination.root.id,
            destination.relative_path,
        )
        return dst

    def delete(self, resolved: ResolvedPath) -> None:
        if resolved.is_root:
            raise InvalidPathError("The root directory cannot be deleted")

        target = Path(resolved.absolute_path)
        try:
            if target.is_dir() and not target.is_symlink():
                if any(target.iterdir()):
                    raise DirectoryNotEmptyError(f"Directory not empty: {resolved.relative_path}")
                target.rmdir()
            else:
                target.unlink()
        except OSError as exc:
            if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
                raise DirectoryNotEmptyError(f"Directory not empty: {resolved.relative_path}") from exc
            raise translate_os_error(exc, resolved.relative_path) from exc
        logger.info("Deleted %s:%s", resolved.root.id, resolved.relative_path)

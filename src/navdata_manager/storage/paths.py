"""Containment of client-supplied paths inside a file root."""

from __future__ import annotations

import logging
import posixpath

from .errors import PathTraversalError
from .models import FileRoot, ResolvedPath

logger = logging.getLogger(__name__)


def resolve_path(root: FileRoot, relative_path: str | None) -> ResolvedPath:
    """Resolve a user-provided path under ``root``.

    Backslashes are treated as separators and leading separators are dropped,
    so the input can never name an absolute location. ``.`` and ``..`` are
    collapsed lexically; a result outside the root raises
    :class:`PathTraversalError`. No filesystem access happens here, and an
    empty path resolves to the root itself.
    """
    raw = relative_path or ""
    if not isinstance(raw, str) or "\x00" in raw:
        logger.warning("Rejected path %r for root %s", raw, root.id)
        raise PathTraversalError("Invalid path; must reside under the root directory.")

    candidate = raw.replace("\\", "/").lstrip("/")
    base = root.absolute_path
    joined = posixpath.normpath(posixpath.join(base, candidate)) if candidate else base

    prefix = base.rstrip("/") + "/"
    if joined != base and not joined.startswith(prefix):
        logger.warning("Rejected path %r for root %s", raw, root.id)
        raise PathTraversalError("Invalid path; must reside under the root directory.")

    relative = "" if joined == base else joined[len(prefix):]
    return ResolvedPath(root=root, relative_path=relative, absolute_path=joined)

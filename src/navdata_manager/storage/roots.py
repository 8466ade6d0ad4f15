"""Registry of the configured file roots."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..config import RootConfig, Settings
from .errors import FileManagerDisabledError, NotFoundError
from .models import FileRoot, ResolvedPath
from .paths import resolve_path

logger = logging.getLogger(__name__)


class RootRegistry:
    """Immutable lookup of file roots, built once at startup."""

    def __init__(self, roots: Iterable[FileRoot]) -> None:
        self._roots: tuple[FileRoot, ...] = tuple(roots)
        self._by_id = {root.id: root for root in self._roots}
        if len(self._by_id) != len(self._roots):
            raise ValueError("Duplicate file root ids in configuration")

    @classmethod
    def from_configs(cls, configs: Iterable[RootConfig]) -> "RootRegistry":
        roots = []
        for config in configs:
            path = config.path.expanduser()
            path.mkdir(parents=True, exist_ok=True)
            canonical = path.resolve()
            roots.append(FileRoot(id=config.id, label=config.label or config.id, absolute_path=str(canonical)))
            logger.info("Registered file root %s at %s", config.id, canonical)
        return cls(roots)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RootRegistry":
        return cls.from_configs(settings.root_configs())

    @property
    def enabled(self) -> bool:
        return bool(self._roots)

    @property
    def roots(self) -> tuple[FileRoot, ...]:
        return self._roots

    def get(self, root_id: Optional[str] = None) -> FileRoot:
        """Return the root named ``root_id``, or the first root when omitted."""
        if not self._roots:
            raise FileManagerDisabledError()
        if not root_id:
            return self._roots[0]
        try:
            return self._by_id[root_id]
        except KeyError:
            raise NotFoundError(f"Unknown root: {root_id}") from None

    def locate(self, root_id: Optional[str], relative_path: Optional[str]) -> ResolvedPath:
        return resolve_path(self.get(root_id), relative_path)

    def describe(self) -> list[dict[str, str]]:
        return [root.to_payload() for root in self._roots]

"""Value objects exchanged between the file services, based on Pydantic."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileRoot(BaseModel):
    """An administrator-configured directory that scopes file operations."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Identifier clients send as the `root` parameter.")
    label: str = Field(description="Human readable label.")
    absolute_path: str = Field(description="Canonical absolute path, no trailing separator.")

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label}


class ResolvedPath(BaseModel):
    """A client path validated against its root."""

    model_config = ConfigDict(frozen=True)

    root: FileRoot
    relative_path: str = Field(description="Root-relative path using '/', empty for the root itself.")
    absolute_path: str

    @property
    def is_root(self) -> bool:
        return self.relative_path == ""

    @property
    def name(self) -> str:
        if self.is_root:
            return self.root.label
        return self.relative_path.rsplit("/", 1)[-1]


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"


class DirectoryEntry(BaseModel):
    """One child of a listed directory."""

    name: str
    kind: EntryKind
    size_bytes: Optional[int] = None
    modified_at: Optional[datetime] = None

    def sort_key(self) -> tuple[bool, str]:
        # Directories first, then case-sensitive by name
        return (self.kind is not EntryKind.DIRECTORY, self.name)

    def to_payload(self) -> dict[str, Any]:
        """Render the entry the way the browser client expects it."""
        return {
            "name": self.name,
            "type": self.kind.value,
            "size": self.size_bytes,
            "mtime": self.modified_at.isoformat() if self.modified_at else None,
        }


class PreviewKind(str, Enum):
    TEXT = "text"
    PREVIEWABLE_BINARY = "previewable_binary"
    OPAQUE_BINARY = "opaque_binary"


class ContentPreview(BaseModel):
    """Inline content returned by a read request."""

    kind: PreviewKind
    mime: str
    size_bytes: int
    payload: Optional[str] = Field(
        default=None,
        description="Decoded text for TEXT, base64 for PREVIEWABLE_BINARY, absent otherwise.",
    )

    def to_payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "kind": "text" if self.kind is PreviewKind.TEXT else "binary",
            "mime": self.mime,
            "size": self.size_bytes,
            "previewable": self.kind is not PreviewKind.OPAQUE_BINARY,
        }
        if self.kind is PreviewKind.TEXT:
            body["text"] = self.payload
        elif self.kind is PreviewKind.PREVIEWABLE_BINARY:
            body["data"] = self.payload
        return body

"""Configuration management for the navigation data manager."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RootConfig(BaseModel):
    """A file root as declared by the administrator."""

    id: str = Field(description="Identifier clients send as the `root` parameter.")
    label: Optional[str] = Field(default=None, description="Display label (defaults to the id).")
    path: Path = Field(description="Directory exposed by this root.")

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("root id must not be empty")
        return value


class Settings(BaseSettings):
    """Centralised runtime configuration for the service."""

    model_config = SettingsConfigDict(
        env_prefix="NAVDATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
    )

    # File roots
    files_root: Optional[Path] = Field(
        default=None,
        description="Single implicit root, used only when no explicit roots are configured.",
    )
    roots: list[RootConfig] = Field(default_factory=list)
    roots_file: Optional[Path] = Field(
        default=None,
        description="YAML file with a top-level `roots` list, appended after `roots`.",
    )

    # Limits
    preview_max_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    upload_max_part_bytes: int = Field(default=1024 * 1024 * 1024, gt=0)
    download_chunk_size: int = Field(default=64 * 1024, gt=0)

    # Archiving
    zip_binary: str = Field(default="zip")

    # Plugin / server
    plugin_id: str = Field(default="signalk-mydata-plugin")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    root_path: str = Field(default="", description="Mount prefix, e.g. /plugins/signalk-mydata-plugin.")
    log_level: str = Field(default="info")

    @field_validator("files_root", "roots_file", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Path | str | None) -> Path | str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def root_configs(self) -> list[RootConfig]:
        """Return every configured root in declaration order."""
        configured = list(self.roots)
        if self.roots_file is not None:
            configured.extend(load_roots_file(self.roots_file))
        if not configured and self.files_root is not None:
            configured.append(RootConfig(id="default", label="Files", path=self.files_root))
        return configured


def load_roots_file(path: Path) -> list[RootConfig]:
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    raw_roots = data.get("roots") or []
    if not isinstance(raw_roots, list):
        raise ValueError(f"{path}: 'roots' must be a list")
    base = path.parent
    roots: list[RootConfig] = []
    for item in raw_roots:
        root = RootConfig(**item)
        # Relative paths in the file are relative to the file itself
        if not root.path.is_absolute():
            root = root.model_copy(update={"path": base / root.path})
        roots.append(root)
    return roots


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()

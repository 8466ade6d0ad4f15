from __future__ import annotations

from pathlib import Path

import pytest

from navdata_manager.storage.models import FileRoot


def make_root(path: Path, root_id: str = "main") -> FileRoot:
    path.mkdir(parents=True, exist_ok=True)
    return FileRoot(id=root_id, label=root_id.title(), absolute_path=str(path.resolve()))


@pytest.fixture
def root(tmp_path: Path) -> FileRoot:
    return make_root(tmp_path / "root")

from __future__ import annotations

import asyncio
import base64
import io
import os
import shutil
import stat
import zipfile
from pathlib import Path

import pytest

from navdata_manager.executor.archiver import ZipArchiver
from navdata_manager.storage.content import (
    ContentService,
    DownloadStream,
    content_disposition,
    guess_mime,
    is_previewable_mime,
)
from navdata_manager.storage.errors import ArchiveError, FileTooLargeError, NotAFileError, NotFoundError
from navdata_manager.storage.models import FileRoot, PreviewKind
from navdata_manager.storage.mutations import MutationService
from navdata_manager.storage.paths import resolve_path

PNG_BYTES = bytes.fromhex("89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489")

requires_zip = pytest.mark.skipif(shutil.which("zip") is None, reason="zip binary not installed")


def make_service(ceiling: int = 5 * 1024 * 1024, zip_binary: str = "zip") -> ContentService:
    return ContentService(ceiling, ZipArchiver(zip_binary, chunk_size=1024), chunk_size=1024)


def write_script(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


async def collect(stream: DownloadStream) -> bytes:
    data = b""
    try:
        async for chunk in stream.chunks:
            data += chunk
    finally:
        await stream.aclose()
    return data


def test_text_round_trip(root: FileRoot) -> None:
    resolved = resolve_path(root, "notes/log.txt")
    MutationService().write(resolved, "Anchored in Ærøskøbing ⚓")

    preview = make_service().read(resolved)

    assert preview.kind is PreviewKind.TEXT
    assert preview.mime == "text/plain"
    assert preview.payload == "Anchored in Ærøskøbing ⚓"
    assert preview.to_payload()["kind"] == "text"


def test_image_round_trip(root: FileRoot) -> None:
    resolved = resolve_path(root, "photos/harbour.png")
    MutationService().write(resolved, base64.b64encode(PNG_BYTES).decode("ascii"), base64_encoded=True)

    preview = make_service().read(resolved)

    assert preview.kind is PreviewKind.PREVIEWABLE_BINARY
    assert preview.mime == "image/png"
    assert base64.b64decode(preview.payload) == PNG_BYTES
    payload = preview.to_payload()
    assert payload["kind"] == "binary"
    assert payload["previewable"] is True
    assert "data" in payload


def test_pdf_is_previewable(root: FileRoot) -> None:
    (Path(root.absolute_path) / "manual.pdf").write_bytes(b"%PDF-1.4")
    preview = make_service().read(resolve_path(root, "manual.pdf"))
    assert preview.kind is PreviewKind.PREVIEWABLE_BINARY
    assert preview.mime == "application/pdf"


def test_unknown_binary_is_opaque(root: FileRoot) -> None:
    (Path(root.absolute_path) / "chart.bin").write_bytes(b"\x00\x01\x02")

    preview = make_service().read(resolve_path(root, "chart.bin"))

    assert preview.kind is PreviewKind.OPAQUE_BINARY
    assert preview.mime == "application/octet-stream"
    assert preview.size_bytes == 3
    assert preview.payload is None
    assert preview.to_payload() == {
        "kind": "binary",
        "mime": "application/octet-stream",
        "size": 3,
        "previewable": False,
    }


def test_oversize_file_is_rejected_not_truncated(root: FileRoot) -> None:
    target = Path(root.absolute_path) / "big.txt"
    with target.open("wb") as fh:
        fh.truncate(6 * 1024 * 1024)

    with pytest.raises(FileTooLargeError):
        make_service(ceiling=5 * 1024 * 1024).read(resolve_path(root, "big.txt"))


def test_ceiling_applies_to_opaque_files(root: FileRoot) -> None:
    (Path(root.absolute_path) / "blob.dat").write_bytes(b"x" * 11)
    with pytest.raises(FileTooLargeError):
        make_service(ceiling=10).read(resolve_path(root, "blob.dat"))


def test_read_directory_and_missing(root: FileRoot) -> None:
    (Path(root.absolute_path) / "dir").mkdir()
    service = make_service()
    with pytest.raises(NotAFileError):
        service.read(resolve_path(root, "dir"))
    with pytest.raises(NotFoundError):
        service.read(resolve_path(root, "missing.txt"))


@pytest.mark.parametrize(
    ("name", "mime"),
    [
        ("route.GPX", "application/gpx+xml"),
        ("places.kml", "application/vnd.google-earth.kml+xml"),
        ("track.geojson", "application/geo+json"),
        ("clip.mp4", "video/mp4"),
        ("README", "application/octet-stream"),
    ],
)
def test_guess_mime(name: str, mime: str) -> None:
    assert guess_mime(name) == mime


def test_previewable_mime_rule() -> None:
    assert is_previewable_mime("audio/ogg")
    assert is_previewable_mime("application/pdf")
    assert not is_previewable_mime("application/zip")


def test_content_disposition() -> None:
    assert content_disposition("route.gpx") == 'attachment; filename="route.gpx"'
    header = content_disposition("Bøje liste.csv")
    assert "filename*=UTF-8''B%C3%B8je%20liste.csv" in header


def test_download_file_streams_all_bytes(root: FileRoot) -> None:
    data = bytes(range(256)) * 20
    (Path(root.absolute_path) / "track.bin").write_bytes(data)

    async def run() -> tuple[DownloadStream, bytes]:
        stream = await make_service().download(resolve_path(root, "track.bin"))
        return stream, await collect(stream)

    stream, received = asyncio.run(run())
    assert stream.filename == "track.bin"
    assert stream.media_type == "application/octet-stream"
    assert stream.size_bytes == len(data)
    assert received == data


def test_download_missing_entry(root: FileRoot) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(make_service().download(resolve_path(root, "nope.gpx")))


@requires_zip
def test_download_directory_is_zipped(root: FileRoot) -> None:
    base = Path(root.absolute_path) / "trip"
    (base / "sub").mkdir(parents=True)
    (base / "a.txt").write_text("alpha", encoding="utf-8")
    (base / "sub" / "b.txt").write_text("beta", encoding="utf-8")

    async def run() -> tuple[DownloadStream, bytes]:
        stream = await make_service().download(resolve_path(root, "trip"))
        return stream, await collect(stream)

    stream, data = asyncio.run(run())

    assert stream.filename == "trip.zip"
    assert stream.media_type == "application/zip"
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.read("a.txt") == b"alpha"
        assert archive.read("sub/b.txt") == b"beta"


@requires_zip
def test_download_large_directory_arrives_complete(root: FileRoot) -> None:
    base = Path(root.absolute_path) / "survey"
    base.mkdir()
    members = {f"tile-{index:02d}.bin": os.urandom(200 * 1024) for index in range(20)}
    for name, data in members.items():
        (base / name).write_bytes(data)

    async def run() -> tuple[int, bytes]:
        stream = await make_service().download(resolve_path(root, "survey"))
        chunks = []
        try:
            async for chunk in stream.chunks:
                chunks.append(chunk)
                await asyncio.sleep(0.001)
        finally:
            await stream.aclose()
        return len(chunks), b"".join(chunks)

    count, data = asyncio.run(run())

    assert count > 100
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert sorted(archive.namelist()) == sorted(members)
        for name, expected in members.items():
            assert archive.read(name) == expected


def test_output_buffered_after_archiver_exit_is_delivered(tmp_path: Path) -> None:
    script = write_script(tmp_path / "quick-zip", "head -c 200000 /dev/zero\n")

    async def run() -> bytes:
        job = await ZipArchiver(script, chunk_size=1024).start(tmp_path)
        data = b""
        async for chunk in job.iter_bytes():
            data += chunk
            await asyncio.sleep(0.001)
        return data

    assert len(asyncio.run(run())) == 200000


@requires_zip
def test_download_empty_directory_gives_empty_archive(root: FileRoot) -> None:
    (Path(root.absolute_path) / "empty").mkdir()

    async def run() -> bytes:
        return await collect(await make_service().download(resolve_path(root, "empty")))

    with zipfile.ZipFile(io.BytesIO(asyncio.run(run()))) as archive:
        assert archive.namelist() == []


def test_archiver_failure_before_output_raises(tmp_path: Path) -> None:
    script = write_script(tmp_path / "failing-zip", "echo 'zip error: broken' >&2\nexit 3\n")
    archiver = ZipArchiver(script)

    with pytest.raises(ArchiveError, match="broken"):
        asyncio.run(archiver.start(tmp_path))


def test_archiver_failure_after_output_raises_mid_stream(tmp_path: Path) -> None:
    script = write_script(tmp_path / "partial-zip", "printf 'PK'\nexit 3\n")

    async def run() -> list[bytes]:
        job = await ZipArchiver(script).start(tmp_path)
        chunks = []
        async for chunk in job.iter_bytes():
            chunks.append(chunk)
        return chunks

    with pytest.raises(ArchiveError):
        asyncio.run(run())


def test_missing_archiver_binary(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError):
        asyncio.run(ZipArchiver(str(tmp_path / "no-such-zip")).start(tmp_path))


def test_closing_job_terminates_archiver(tmp_path: Path) -> None:
    script = write_script(tmp_path / "slow-zip", "printf 'PK'\nexec sleep 30\n")

    async def run() -> int | None:
        job = await ZipArchiver(script).start(tmp_path)
        assert job.process.returncode is None
        iterator = job.iter_bytes()
        assert await iterator.__anext__() == b"PK"
        await iterator.aclose()
        return job.process.returncode

    assert asyncio.run(run()) is not None

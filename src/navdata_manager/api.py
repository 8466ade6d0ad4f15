"""FastAPI application exposing the navigation data manager endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .executor.archiver import ZipArchiver
from .navigation.models import Waypoint
from .navigation.service import MissingPositionError, NavigationService
from .storage.content import ContentService, content_disposition
from .storage.directories import DirectoryService
from .storage.errors import FileManagerDisabledError, FileServiceError
from .storage.mutations import MutationService
from .storage.roots import RootRegistry
from .storage.uploads import UploadService

logger = logging.getLogger(__name__)

app = FastAPI(title="Navigation Data Manager", version="0.1.0")

_SERVICE_ATTRS = (
    "root_registry",
    "directory_service",
    "content_service",
    "mutation_service",
    "upload_service",
    "navigation_service",
)


class PathRequest(BaseModel):
    path: str = Field(default="", description="Path relative to the selected root.")
    root: Optional[str] = Field(default=None, description="Root id; the first root when omitted.")


class WriteFileRequest(PathRequest):
    path: str
    content: str
    encoding: Literal["utf8", "utf-8", "base64"] = "utf8"


class RenameRequest(PathRequest):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    new_path: str = Field(alias="newPath")
    new_root: Optional[str] = Field(default=None, alias="newRoot", description="Destination root; defaults to `root`.")


class DeleteRequest(PathRequest):
    path: str


class WaypointRequest(BaseModel):
    waypoint: Optional[Waypoint] = None


# ----------------------------------------------------------------- errors
@app.exception_handler(FileServiceError)
async def file_service_error_handler(request: Request, exc: FileServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"ok": False, "error": "; ".join(messages) or "Invalid request"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


# ------------------------------------------------------------ dependencies
async def get_root_registry(settings: Settings = Depends(get_settings)) -> RootRegistry:
    if not hasattr(app.state, "root_registry"):
        app.state.root_registry = RootRegistry.from_settings(settings)
    return app.state.root_registry


async def get_enabled_registry(registry: RootRegistry = Depends(get_root_registry)) -> RootRegistry:
    if not registry.enabled:
        raise FileManagerDisabledError()
    return registry


async def get_directory_service() -> DirectoryService:
    if not hasattr(app.state, "directory_service"):
        app.state.directory_service = DirectoryService()
    return app.state.directory_service


async def get_content_service(settings: Settings = Depends(get_settings)) -> ContentService:
    if not hasattr(app.state, "content_service"):
        archiver = ZipArchiver(settings.zip_binary, settings.download_chunk_size)
        app.state.content_service = ContentService(
            settings.preview_max_bytes,
            archiver,
            chunk_size=settings.download_chunk_size,
        )
    return app.state.content_service


async def get_mutation_service() -> MutationService:
    if not hasattr(app.state, "mutation_service"):
        app.state.mutation_service = MutationService()
    return app.state.mutation_service


async def get_upload_service(
    settings: Settings = Depends(get_settings),
    registry: RootRegistry = Depends(get_enabled_registry),
    directories: DirectoryService = Depends(get_directory_service),
) -> UploadService:
    if not hasattr(app.state, "upload_service"):
        app.state.upload_service = UploadService(registry, directories, settings.upload_max_part_bytes)
    return app.state.upload_service


async def get_navigation_service(settings: Settings = Depends(get_settings)) -> NavigationService:
    if not hasattr(app.state, "navigation_service"):
        app.state.navigation_service = NavigationService(settings.plugin_id)
    return app.state.navigation_service


def reset_services() -> None:
    """Drop cached services so the next request rebuilds them (useful for tests)."""
    for attr in _SERVICE_ATTRS:
        if hasattr(app.state, attr):
            delattr(app.state, attr)


# ---------------------------------------------------------------- routes
@app.get("/healthz")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/files/roots")
async def list_roots(registry: RootRegistry = Depends(get_root_registry)) -> dict[str, Any]:
    return {"ok": True, "roots": registry.describe()}


@app.get("/files/list")
async def list_directory(
    path: str = Query(default=""),
    root: Optional[str] = Query(default=None),
    registry: RootRegistry = Depends(get_enabled_registry),
    directories: DirectoryService = Depends(get_directory_service),
) -> dict[str, Any]:
    resolved = registry.locate(root, path)
    entries = await asyncio.to_thread(directories.list, resolved)
    return {
        "ok": True,
        "path": resolved.relative_path,
        "entries": [entry.to_payload() for entry in entries],
        "root": resolved.root.id,
    }


@app.get("/files/read")
async def read_file(
    path: str = Query(...),
    root: Optional[str] = Query(default=None),
    registry: RootRegistry = Depends(get_enabled_registry),
    content: ContentService = Depends(get_content_service),
) -> dict[str, Any]:
    resolved = registry.locate(root, path)
    preview = await asyncio.to_thread(content.read, resolved)
    return {"ok": True, **preview.to_payload()}


@app.get("/files/download")
async def download_file(
    path: str = Query(...),
    root: Optional[str] = Query(default=None),
    registry: RootRegistry = Depends(get_enabled_registry),
    content: ContentService = Depends(get_content_service),
):
    resolved = registry.locate(root, path)
    stream = await content.download(resolved)
    return StreamingResponse(
        stream.chunks,
        media_type=stream.media_type,
        headers={"Content-Disposition": content_disposition(stream.filename)},
        background=BackgroundTask(stream.aclose),
    )


@app.post("/files/mkdir")
async def make_directory(
    payload: PathRequest,
    registry: RootRegistry = Depends(get_enabled_registry),
    directories: DirectoryService = Depends(get_directory_service),
) -> dict[str, bool]:
    resolved = registry.locate(payload.root, payload.path)
    await asyncio.to_thread(directories.create_directory, resolved)
    return {"ok": True}


@app.post("/files/upload")
async def upload_files(
    request: Request,
    directory: str = Query(default="", alias="dir"),
    root: Optional[str] = Query(default=None),
    uploads: UploadService = Depends(get_upload_service),
) -> dict[str, Any]:
    result = await uploads.receive(
        request.headers.get("content-type", ""),
        request.stream(),
        directory=directory,
        root_id=root,
    )
    return result.to_payload()


@app.post("/files/write")
async def write_file(
    payload: WriteFileRequest,
    registry: RootRegistry = Depends(get_enabled_registry),
    mutations: MutationService = Depends(get_mutation_service),
) -> dict[str, bool]:
    resolved = registry.locate(payload.root, payload.path)
    await asyncio.to_thread(
        mutations.write,
        resolved,
        payload.content,
        base64_encoded=payload.encoding == "base64",
    )
    return {"ok": True}


@app.post("/files/rename")
async def rename_entry(
    payload: RenameRequest,
    registry: RootRegistry = Depends(get_enabled_registry),
    mutations: MutationService = Depends(get_mutation_service),
) -> dict[str, bool]:
    source = registry.locate(payload.root, payload.path)
    destination = registry.locate(payload.new_root or payload.root, payload.new_path)
    await asyncio.to_thread(mutations.rename, source, destination)
    return {"ok": True}


@app.post("/files/delete")
async def delete_entry(
    payload: DeleteRequest,
    registry: RootRegistry = Depends(get_enabled_registry),
    mutations: MutationService = Depends(get_mutation_service),
) -> dict[str, bool]:
    resolved = registry.locate(payload.root, payload.path)
    await asyncio.to_thread(mutations.delete, resolved)
    return {"ok": True}


@app.post("/goto")
async def goto_waypoint(
    payload: WaypointRequest,
    navigation: NavigationService = Depends(get_navigation_service),
) -> dict[str, bool]:
    try:
        navigation.goto(payload.waypoint)
    except MissingPositionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True}


@app.post("/show")
async def show_waypoint(payload: Optional[WaypointRequest] = None) -> dict[str, Any]:
    return {"result": {"message": "ok"}}

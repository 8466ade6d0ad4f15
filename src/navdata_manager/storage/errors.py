"""Error taxonomy shared by the file services."""

from __future__ import annotations

import errno


class FileServiceError(Exception):
    """Base class for every failure surfaced by the file services."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PathTraversalError(FileServiceError):
    """The client-supplied path escapes its root."""

    status_code = 400


class InvalidPathError(FileServiceError):
    status_code = 400


class NotFoundError(FileServiceError):
    """Unknown root id or missing filesystem entry."""

    status_code = 404


class FileManagerDisabledError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("File manager is not configured")


class NotAFileError(FileServiceError):
    status_code = 400


class NotADirError(FileServiceError):
    status_code = 400


class FileTooLargeError(FileServiceError):
    """The file exceeds the preview ceiling; it has to be downloaded."""

    status_code = 413


class DirectoryNotEmptyError(FileServiceError):
    status_code = 400


class InvalidContentError(FileServiceError):
    status_code = 400


class UploadPartError(FileServiceError):
    """One multipart part failed; the rest of the request is unaffected."""

    status_code = 400

    def __init__(self, filename: str, message: str) -> None:
        super().__init__(message)
        self.filename = filename


class ArchiveError(FileServiceError):
    status_code = 500


class FileSystemError(FileServiceError):
    status_code = 500


def translate_os_error(exc: OSError, relative_path: str) -> FileServiceError:
    """Map a raw OSError raised for ``relative_path`` onto the taxonomy."""
    display = relative_path or "/"
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(f"Not found: {display}")
    if isinstance(exc, IsADirectoryError):
        return NotAFileError(f"Not a file: {display}")
    if isinstance(exc, NotADirectoryError):
        return NotADirError(f"Not a directory: {display}")
    if exc.errno == errno.ENOTEMPTY:
        return DirectoryNotEmptyError(f"Directory not empty: {display}")
    return FileSystemError(f"{exc.strerror or exc.__class__.__name__}: {display}")

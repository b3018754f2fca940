"""Export download and unpack.

This module fetches the zipped export from the object store into a
local staging path and extracts it. Destination paths follow a fixed
resolution rule so callers may pass either a directory or a file name.
"""

from __future__ import annotations

import os
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from billing.naming import build_object_key
from core.constants import DEFAULT_DIR_MODE, DEFAULT_FILE_MODE, DOWNLOAD_CHUNK_SIZE
from core.errors import BillsyncRetrieveError, BillsyncStoreError
from core.logging_config import get_logger
from store.interfaces import ObjectStore

_LOGGER = get_logger(__name__)


class Retriever:
    """Downloads exports from one bucket and unpacks them."""

    def __init__(self, object_store: ObjectStore, bucket: str, key_prefix: str = "") -> None:
        self._object_store = object_store
        self._bucket = bucket
        self._key_prefix = key_prefix

    def fetch(self, source_name: str, destination: str | Path) -> Path:
        """Download an export to a local path.

        Args:
            source_name: Export file name in the bucket.
            destination: Directory or file path to download into.

        Returns:
            Path of the downloaded archive.

        Raises:
            BillsyncRetrieveError: If the path cannot be prepared or the
                download fails.
        """
        try:
            target = Path(resolve_destination(str(destination), source_name))
        except OSError as error:
            raise BillsyncRetrieveError(
                f"Error while identifying destination path {destination}: {error}"
            ) from error
        object_key = build_object_key(self._key_prefix, source_name)
        try:
            size = self._object_store.download(self._bucket, object_key, target)
        except (BillsyncStoreError, OSError) as error:
            raise BillsyncRetrieveError(
                f"Error while downloading s3://{self._bucket}/{object_key} to {target}: {error}"
            ) from error
        _LOGGER.info("export_downloaded", source_name=source_name, path=str(target), size=size)
        return target

    def unpack(self, archive_path: str | Path, dest_dir: str | Path) -> Path:
        """Extract a downloaded export; see ``unpack_archive``."""
        return unpack_archive(archive_path, dest_dir)


def resolve_destination(destination: str, source_name: str) -> str:
    """Resolve where a downloaded export is written.

    A missing destination gets its parent tree created. When the parent
    path contains the destination's base name the destination is treated
    as a directory spec and the source name is appended to it; otherwise
    it is used as the file path. An existing directory receives the
    source name as a child; an existing file is used as is.

    Args:
        destination: Caller-supplied path.
        source_name: Export file name.

    Returns:
        Final file path.

    Raises:
        OSError: If the parent tree cannot be created or inspected.
    """
    if not os.path.exists(destination):
        parent = os.path.dirname(destination)
        if parent:
            os.makedirs(parent, mode=DEFAULT_DIR_MODE, exist_ok=True)
        base_name = os.path.basename(destination.rstrip(os.sep)) or os.sep
        if base_name in parent:
            return destination + source_name
        return destination
    if os.path.isdir(destination):
        return os.path.join(destination, source_name)
    return destination


def unpack_archive(archive_path: str | Path, dest_dir: str | Path) -> Path:
    """Extract a zip export into a directory.

    Directory structure and archive permission bits are recreated. Partial
    output is left in place when extraction fails.

    Args:
        archive_path: Zip file to extract.
        dest_dir: Extraction directory, created when missing.

    Returns:
        The extracted file when the archive holds exactly one top-level
        file, ignoring top-level directories, else the extraction directory.

    Raises:
        BillsyncRetrieveError: If the archive is unreadable or an entry
            escapes the extraction directory.
    """
    destination = Path(dest_dir)
    try:
        destination.mkdir(mode=DEFAULT_DIR_MODE, parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            top_level = _extract_entries(archive, destination)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, OSError) as error:
        raise BillsyncRetrieveError(f"Failed to unpack {archive_path}: {error}") from error
    files = [name for name, is_dir in top_level.items() if not is_dir]
    if len(files) == 1:
        result = destination / files[0]
    else:
        result = destination
    _LOGGER.info("export_unpacked", archive=str(archive_path), path=str(result))
    return result


def _extract_entries(archive: zipfile.ZipFile, destination: Path) -> dict[str, bool]:
    """Extract all entries and return top-level names mapped to is-directory."""
    root = destination.resolve()
    top_level: dict[str, bool] = {}
    for info in archive.infolist():
        parts = PurePosixPath(info.filename).parts
        if not parts:
            continue
        target = destination.joinpath(*parts)
        if not target.resolve().is_relative_to(root):
            raise BillsyncRetrieveError(
                f"Archive entry '{info.filename}' escapes {destination}. Refusing to extract."
            )
        mode = (info.external_attr >> 16) & 0o777
        if info.is_dir():
            target.mkdir(mode=mode or DEFAULT_DIR_MODE, parents=True, exist_ok=True)
        else:
            target.parent.mkdir(mode=DEFAULT_DIR_MODE, parents=True, exist_ok=True)
            with archive.open(info) as source, target.open("wb") as sink:
                shutil.copyfileobj(source, sink, DOWNLOAD_CHUNK_SIZE)
            os.chmod(target, mode or DEFAULT_FILE_MODE)
        top_level[parts[0]] = top_level.get(parts[0], False) or info.is_dir() or len(parts) > 1
    return top_level

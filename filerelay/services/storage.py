from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

from ..config import Settings
from ..schemas.files import ListPage, RawEntry
from .errors import BackendUnavailable, KeyConflict, ListError, SignedUrlUnsupported, UploadError

logger = logging.getLogger("filerelay")

LOCAL_PUBLIC_MOUNT = "/files"


class Storage(Protocol):
    supports_signed_urls: bool

    def ensure_ready(self) -> None: ...
    def put(self, key: str, data: bytes, content_type: str) -> None: ...
    def list_page(self, prefix: str, limit: int, token: Optional[str] = None) -> ListPage: ...
    def public_url(self, key: str) -> str: ...
    def signed_url(self, key: str, ttl_seconds: int, download_name: str) -> str: ...


class LocalStorage:
    """
    Stores objects as plain files below a root directory.

    Keys are relative paths ("uploads/report__1700000000000.pdf"). Files are
    written to a hidden temp file first and published with a hard link, so a
    concurrent listing never sees half-written bytes and an existing key is
    never overwritten.
    """
    supports_signed_urls = False

    def __init__(self, root: str, public_mount: str = LOCAL_PUBLIC_MOUNT):
        self.root = Path(root).resolve()
        self.public_mount = public_mount.rstrip("/")

    def ensure_ready(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendUnavailable(f"cannot create storage root {self.root}: {e}") from e

    def _path(self, key: str) -> Path:
        p = (self.root / key.strip("/")).resolve()
        if p != self.root and self.root not in p.parents:
            raise ValueError(f"key escapes storage root: {key}")
        return p

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            path = self._path(key)
        except ValueError as e:
            raise UploadError(str(e)) from e

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".upload-", dir=path.parent)
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                try:
                    os.link(tmp, path)
                except FileExistsError as e:
                    raise KeyConflict(key) from e
            finally:
                os.unlink(tmp)
        except OSError as e:
            raise UploadError(f"write failed for {key}: {e}") from e
        logger.info("[storage] stored %s (%d bytes, %s)", key, len(data), content_type)

    def list_page(self, prefix: str, limit: int, token: Optional[str] = None) -> ListPage:
        try:
            directory = self._path(prefix) if prefix else self.root
        except ValueError as e:
            raise ListError(str(e)) from e
        offset = int(token) if token else 0

        entries = []
        try:
            with os.scandir(directory) as it:
                for entry in it:
                    if entry.name.startswith("."):
                        continue
                    if entry.is_dir():
                        entries.append(RawEntry(name=entry.name, is_dir=True))
                        continue
                    st = entry.stat()
                    entries.append(RawEntry(
                        name=entry.name,
                        size=st.st_size,
                        modified_at_ms=st.st_mtime_ns // 1_000_000,
                    ))
        except (FileNotFoundError, NotADirectoryError):
            return ListPage()
        except OSError as e:
            raise ListError(f"list failed for '{prefix}': {e}") from e

        # newest first, like the remote listing
        entries.sort(key=lambda e: e.modified_at_ms or 0, reverse=True)
        page = entries[offset:offset + limit]
        more = offset + limit < len(entries)
        return ListPage(entries=page, next_token=str(offset + limit) if more else None)

    def public_url(self, key: str) -> str:
        return f"{self.public_mount}/{quote(key)}"

    def signed_url(self, key: str, ttl_seconds: int, download_name: str) -> str:
        raise SignedUrlUnsupported("local storage has no signed download URLs")


def build_storage(settings: Settings) -> Storage:
    """Pick the storage variant named by the configuration."""
    if settings.is_remote:
        from ..aws.s3_storage import S3Storage

        missing = settings.missing_remote_settings()
        if missing:
            # Not fatal: the first upload/list call reports the real error.
            logger.error("Missing %s; remote storage will not be reachable", " / ".join(missing))
        return S3Storage(settings)

    if settings.storage_backend != "local":
        logger.warning("Unknown STORAGE_BACKEND %r; falling back to local storage", settings.storage_backend)
    return LocalStorage(settings.storage_root)

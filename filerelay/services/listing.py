from __future__ import annotations

import logging
import mimetypes
import re
import time
from typing import Callable, Iterator, List, Optional
from urllib.parse import quote

from ..schemas.files import RawEntry, StoredObject
from ..utils.naming import UPLOAD_PREFIX, display_name
from .storage import Storage

logger = logging.getLogger("filerelay")

PAGE_SIZE = 100
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_YEAR = re.compile(r"^\d{4}$")
_MONTH = re.compile(r"^\d{2}$")


def guess_content_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or DEFAULT_CONTENT_TYPE


def join_prefix(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def dedupe(items: List[StoredObject]) -> List[StoredObject]:
    """Drop entries sharing (key or url, size, modified time); first one wins."""
    seen = set()
    out: List[StoredObject] = []
    for it in items:
        k = it.dedup_key()
        if k in seen:
            continue
        seen.add(k)
        out.append(it)
    return out


class ListingService:
    """
    Rebuilds the full file list on every call by walking the backend.

    Roots scanned: the bucket root, "uploads", and the legacy YYYY/MM folders
    of the previous naming scheme. There is no index; each call re-lists.
    """

    def __init__(self, storage: Storage, page_size: int = PAGE_SIZE,
                 clock: Optional[Callable[[], float]] = None):
        self.storage = storage
        self.page_size = page_size
        self._clock = clock or time.time

    # ------------------------------------------------------------------ #
    # Walking
    # ------------------------------------------------------------------ #
    def _pages(self, prefix: str) -> Iterator[RawEntry]:
        token = None
        while True:
            page = self.storage.list_page(prefix, self.page_size, token)
            yield from page.entries
            if not page.next_token:
                break
            token = page.next_token

    def _child_dirs(self, prefix: str, pattern: "re.Pattern[str]") -> List[str]:
        return [e.name for e in self._pages(prefix) if e.is_dir and pattern.match(e.name)]

    def root_prefixes(self) -> List[str]:
        roots = ["", UPLOAD_PREFIX]
        for year in self._child_dirs("", _YEAR):
            for month in self._child_dirs(year, _MONTH):
                roots.append(f"{year}/{month}")
        return roots

    def walk(self, root: str, visited: Optional[set] = None) -> List[StoredObject]:
        """All files below `root`, using a worklist instead of recursion."""
        visited = set() if visited is None else visited
        found: List[StoredObject] = []
        pending = [root]
        while pending:
            prefix = pending.pop()
            if prefix in visited:
                continue
            visited.add(prefix)
            for entry in self._pages(prefix):
                if entry.is_dir:
                    pending.append(join_prefix(prefix, entry.name))
                else:
                    found.append(self.to_stored(prefix, entry))
        return found

    def to_stored(self, prefix: str, entry: RawEntry) -> StoredObject:
        key = join_prefix(prefix, entry.name)
        modified = entry.modified_at_ms
        if modified is None:
            modified = int(self._clock() * 1000)
        return StoredObject(
            key=key,
            display_name=display_name(entry.name),
            content_type=entry.content_type or guess_content_type(entry.name),
            size_bytes=entry.size or 0,
            modified_at_ms=modified,
            access_url=self.storage.public_url(key),
            download_url=f"/api/dl?key={quote(key)}" if self.storage.supports_signed_urls else None,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def aggregate(self) -> List[StoredObject]:
        self.storage.ensure_ready()

        visited: set = set()
        collected: List[StoredObject] = []
        for root in self.root_prefixes():
            collected.extend(self.walk(root, visited))

        items = dedupe(collected)
        items.sort(key=lambda it: it.modified_at_ms, reverse=True)
        logger.info("Listed %d files (%d raw entries)", len(items), len(collected))
        return items

import os
import tempfile
from typing import Dict, List, Optional

import pytest

# filerelay.main builds an app at import time; keep it on a throwaway local root.
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="filerelay-tests-")

from filerelay.schemas.files import ListPage, RawEntry  # noqa: E402
from filerelay.services.errors import KeyConflict  # noqa: E402


class InMemoryStorage:
    """Prefix -> entries map with offset paging, for service and route tests."""
    supports_signed_urls = True

    def __init__(self, tree: Optional[Dict[str, List[RawEntry]]] = None):
        self.tree = tree or {}
        self.puts: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.ready_calls = 0

    def ensure_ready(self) -> None:
        self.ready_calls += 1

    def put(self, key: str, data: bytes, content_type: str) -> None:
        if key in self.puts:
            raise KeyConflict(key)
        self.puts[key] = data
        self.content_types[key] = content_type

    def list_page(self, prefix: str, limit: int, token: Optional[str] = None) -> ListPage:
        self.calls.append((prefix, limit, token))
        entries = self.tree.get(prefix, [])
        offset = int(token) if token else 0
        more = offset + limit < len(entries)
        return ListPage(entries=entries[offset:offset + limit], next_token=str(offset + limit) if more else None)

    def public_url(self, key: str) -> str:
        return f"https://cdn.example.test/{key}"

    def signed_url(self, key: str, ttl_seconds: int, download_name: str) -> str:
        return f"https://signed.example.test/{key}?ttl={ttl_seconds}&name={download_name}"


@pytest.fixture
def memory_storage():
    return InMemoryStorage()

from __future__ import annotations

from typing import Optional

from ..utils.naming import display_name
from .errors import MissingParameter
from .storage import Storage

SIGNED_URL_TTL_SECONDS = 60


class DownloadService:
    """Turns a storage key into a short-lived "save as" URL."""

    def __init__(self, storage: Storage, ttl_seconds: int = SIGNED_URL_TTL_SECONDS):
        self.storage = storage
        self.ttl_seconds = ttl_seconds

    def resolve(self, key: Optional[str]) -> str:
        key = (key or "").strip()
        if not key:
            raise MissingParameter("key")
        return self.storage.signed_url(key, self.ttl_seconds, display_name(key))

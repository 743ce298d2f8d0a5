from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from ..schemas.files import IncomingFile, UploadResult
from ..utils.naming import UPLOAD_PREFIX, encode_key
from .errors import TooManyFiles, UploadError
from .listing import guess_content_type
from .storage import Storage

logger = logging.getLogger("filerelay")

MAX_FILES_PER_REQUEST = 20


class UploadService:
    def __init__(self, storage: Storage, max_files: int = MAX_FILES_PER_REQUEST,
                 clock: Optional[Callable[[], float]] = None):
        self.storage = storage
        self.max_files = max_files
        self._clock = clock or time.time

    def _batch_keys(self, files: Sequence[IncomingFile], now_ms: int) -> List[str]:
        """One key per file; names repeated inside the batch get a counter."""
        keys: List[str] = []
        used = set()
        for f in files:
            counter = 0
            key = encode_key(f.filename, now_ms, UPLOAD_PREFIX)
            while key in used:
                counter += 1
                key = encode_key(f.filename, now_ms, UPLOAD_PREFIX, counter)
            used.add(key)
            keys.append(key)
        return keys

    def handle(self, files: Sequence[IncomingFile]) -> UploadResult:
        """
        Store a batch of uploaded files.

        All-or-nothing from the caller's point of view: the first failed write
        aborts the batch and raises UploadError.
        """
        if len(files) > self.max_files:
            raise TooManyFiles(len(files), self.max_files)
        if not files:
            return UploadResult(ok=True, count=0, files=[])

        self.storage.ensure_ready()

        now_ms = int(self._clock() * 1000)
        keys = self._batch_keys(files, now_ms)
        for i, (f, key) in enumerate(zip(files, keys), start=1):
            content_type = f.content_type or guess_content_type(f.filename)
            try:
                self.storage.put(key, f.data, content_type)
            except UploadError:
                logger.error("Upload aborted at %s (%d of %d)", key, i, len(keys))
                raise

        logger.info("Uploaded %d file(s)", len(keys))
        return UploadResult(ok=True, count=len(keys), files=keys)

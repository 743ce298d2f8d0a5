from __future__ import annotations


class StorageError(Exception):
    """Base class for every failure surfaced by the relay's storage layer."""


class BackendUnavailable(StorageError):
    """Endpoint or credentials missing/invalid."""


class ListError(StorageError):
    """A paginated list call failed; the whole listing is aborted."""


class UploadError(StorageError):
    """A write failed; the whole upload batch is aborted."""


class KeyConflict(UploadError):
    def __init__(self, key: str):
        super().__init__(f"object already exists: {key}")
        self.key = key


class TooManyFiles(UploadError):
    def __init__(self, count: int, limit: int):
        super().__init__(f"too many files: {count} (max {limit})")
        self.count = count
        self.limit = limit


class ObjectNotFound(StorageError):
    def __init__(self, key: str):
        super().__init__(f"not found: {key}")
        self.key = key


class SignedUrlUnsupported(StorageError):
    """The configured backend cannot hand out signed download URLs."""


class MissingParameter(StorageError):
    def __init__(self, name: str):
        super().__init__(f"missing parameter: {name}")
        self.name = name

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field


class RawEntry(BaseModel):
    """One child of a listed prefix, as reported by a storage backend."""
    name: str
    is_dir: bool = False
    size: Optional[int] = None
    content_type: Optional[str] = None
    modified_at_ms: Optional[int] = None


class ListPage(BaseModel):
    entries: List[RawEntry] = Field(default_factory=list)
    next_token: Optional[str] = None


class StoredObject(BaseModel):
    key: str
    display_name: str
    content_type: str
    size_bytes: int = Field(0, ge=0)
    modified_at_ms: int
    access_url: str
    download_url: Optional[str] = None

    def dedup_key(self) -> tuple:
        return (self.key or self.access_url, self.size_bytes, self.modified_at_ms)

    def to_out(self, include_key: bool = False) -> "FileOut":
        return FileOut(
            name=self.display_name,
            url=self.access_url,
            type=self.content_type,
            size=self.size_bytes,
            uploadedAt=self.modified_at_ms,
            key=self.key if include_key else None,
            dl=self.download_url,
        )


class FileOut(BaseModel):
    name: str
    url: str
    type: str
    size: int
    uploadedAt: int
    key: Optional[str] = None
    dl: Optional[str] = None


class IncomingFile(BaseModel):
    filename: str
    data: bytes
    content_type: Optional[str] = None


class UploadResult(BaseModel):
    ok: bool = True
    count: int = 0
    files: List[str] = Field(default_factory=list)


class ErrorOut(BaseModel):
    ok: bool = False
    error: str


# Required in some Pydantic v2 setups when using __future__.annotations.
RawEntry.model_rebuild()
ListPage.model_rebuild()
StoredObject.model_rebuild()
FileOut.model_rebuild()
IncomingFile.model_rebuild()
UploadResult.model_rebuild()
ErrorOut.model_rebuild()

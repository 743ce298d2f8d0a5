import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ...schemas.files import FileOut, IncomingFile, UploadResult
from ...services.download import DownloadService
from ...services.errors import (
    MissingParameter,
    ObjectNotFound,
    SignedUrlUnsupported,
    StorageError,
    TooManyFiles,
)
from ...services.listing import ListingService
from ...services.upload import UploadService

logger = logging.getLogger("filerelay")

router = APIRouter(prefix="/api", tags=["files"])


def get_listing(request: Request) -> ListingService:
    return request.app.state.listing


def get_uploads(request: Request) -> UploadService:
    return request.app.state.uploads


def get_downloads(request: Request) -> DownloadService:
    return request.app.state.downloads


# ------------------------------------------------------------------ #
# Listing
# ------------------------------------------------------------------ #
@router.get("/files", response_model=List[FileOut], response_model_exclude_none=True)
def list_files(listing: ListingService = Depends(get_listing)):
    try:
        items = listing.aggregate()
    except StorageError as e:
        logger.exception("Listing failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})
    include_key = listing.storage.supports_signed_urls
    return [it.to_out(include_key=include_key) for it in items]


# ------------------------------------------------------------------ #
# Upload
# ------------------------------------------------------------------ #
@router.post("/upload", response_model=UploadResult)
async def upload_files(request: Request, uploads: UploadService = Depends(get_uploads)):
    form = await request.form()
    try:
        parts = [p for p in form.getlist("file") if isinstance(p, UploadFile)]
        if len(parts) > uploads.max_files:
            raise TooManyFiles(len(parts), uploads.max_files)

        files = []
        for p in parts:
            data = await p.read()
            files.append(IncomingFile(filename=p.filename or "", data=data, content_type=p.content_type))

        # blocking backend writes stay off the event loop
        return await run_in_threadpool(uploads.handle, files)
    except TooManyFiles as e:
        logger.warning("Upload rejected: %s", e)
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})
    except StorageError as e:
        logger.exception("Upload failed: %s", e)
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    finally:
        await form.close()


# ------------------------------------------------------------------ #
# Download redirect
# ------------------------------------------------------------------ #
@router.get("/dl")
def download(
    key: Optional[str] = Query(default=None, description="storage key to download"),
    downloads: DownloadService = Depends(get_downloads),
):
    try:
        url = downloads.resolve(key)
    except MissingParameter:
        return PlainTextResponse("Missing key", status_code=400)
    except (ObjectNotFound, SignedUrlUnsupported) as e:
        logger.warning("Download unavailable: %s", e)
        return PlainTextResponse("Not found", status_code=404)
    except StorageError as e:
        logger.exception("Download failed: %s", e)
        return PlainTextResponse("Download failed", status_code=500)
    return RedirectResponse(url, status_code=302)

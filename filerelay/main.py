# filerelay/main.py
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # load .env early

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from mangum import Mangum

from .api.routers import files as files_router
from .config import Settings, configure_logging
from .services.download import DownloadService
from .services.errors import BackendUnavailable
from .services.listing import ListingService
from .services.storage import LOCAL_PUBLIC_MOUNT, LocalStorage, Storage, build_storage
from .services.upload import UploadService

logger = logging.getLogger("filerelay")

STATIC_DIR = Path(__file__).resolve().parent / "static"


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    storage = storage if storage is not None else build_storage(settings)

    app = FastAPI(title="filerelay", version="0.1.0", description="Upload, list and download relay")
    app.state.settings = settings
    app.state.storage = storage
    app.state.listing = ListingService(storage)
    app.state.uploads = UploadService(storage)
    app.state.downloads = DownloadService(storage)

    # --- CORS setup ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount routers under /api
    app.include_router(files_router.router)

    # Health & root redirect
    @app.get("/health", response_class=PlainTextResponse)
    def health():
        return "ok"

    @app.get("/")
    def root():
        return RedirectResponse("/login.html", status_code=302)

    @app.get("/api/env")
    def get_env_values():
        return {
            "backend": settings.storage_backend,
            "bucket": settings.s3_bucket if settings.is_remote else None,
        }

    # Stored files are only served from disk in the local variant
    if isinstance(storage, LocalStorage):
        try:
            storage.ensure_ready()
        except BackendUnavailable as e:
            logger.error("Local storage unavailable: %s", e)
        app.mount(LOCAL_PUBLIC_MOUNT, StaticFiles(directory=str(storage.root), check_dir=False), name="files")

    # Static UI last so it never shadows the API
    app.mount("/", StaticFiles(directory=str(STATIC_DIR), check_dir=False), name="static")
    return app


_settings = Settings.from_env()
configure_logging(_settings)

app = create_app(_settings)

# Single Lambda entrypoint
handler = Mangum(app)

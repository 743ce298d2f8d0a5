# filerelay/config.py
"""
Process configuration.

Settings are read from the environment exactly once, at process entry
(``Settings.from_env()``), and the resulting object is handed to every
component. Nothing else in the package calls ``os.getenv``.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_BUCKET = "yaatra-file"
DEFAULT_PORT = 3000

# Map numeric env value -> actual logging level
_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    storage_backend: str = Field("local", description="local | s3")
    storage_root: str = "./data"

    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_region: Optional[str] = None
    s3_bucket: str = DEFAULT_BUCKET
    s3_public_url: Optional[str] = None
    s3_make_public: bool = True

    port: int = DEFAULT_PORT
    log_level: int = 0
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        endpoint = env.get("S3_ENDPOINT_URL") or None
        backend = (env.get("STORAGE_BACKEND") or ("s3" if endpoint else "local")).strip().lower()

        try:
            port = int(env.get("PORT", DEFAULT_PORT))
        except ValueError:
            port = DEFAULT_PORT
        try:
            log_level = int(env.get("LOG_LEVEL", "0"))
        except ValueError:
            log_level = 0

        return cls(
            storage_backend=backend,
            storage_root=env.get("STORAGE_ROOT") or "./data",
            s3_endpoint_url=endpoint,
            s3_access_key_id=env.get("S3_ACCESS_KEY_ID") or None,
            s3_secret_access_key=env.get("S3_SECRET_ACCESS_KEY") or None,
            s3_region=env.get("S3_REGION") or env.get("AWS_REGION") or None,
            s3_bucket=(env.get("S3_BUCKET") or env.get("BUCKET_NAME") or DEFAULT_BUCKET).strip(),
            s3_public_url=env.get("S3_PUBLIC_URL") or None,
            s3_make_public=_flag(env.get("S3_MAKE_PUBLIC"), True),
            port=port,
            log_level=log_level,
            log_file=env.get("LOG_FILE") or None,
        )

    @property
    def is_remote(self) -> bool:
        return self.storage_backend == "s3"

    def public_base_url(self) -> str:
        """Base URL under which objects of a public bucket are reachable."""
        if self.s3_public_url:
            return self.s3_public_url.rstrip("/")
        if self.s3_endpoint_url:
            return f"{self.s3_endpoint_url.rstrip('/')}/{self.s3_bucket}"
        # plain AWS: virtual-hosted style URL
        if self.s3_region and self.s3_region != "us-east-1":
            return f"https://{self.s3_bucket}.s3.{self.s3_region}.amazonaws.com"
        return f"https://{self.s3_bucket}.s3.amazonaws.com"

    def missing_remote_settings(self) -> list:
        """Settings a gateway needs; plain AWS may use boto3's credential chain instead."""
        missing = []
        if not self.s3_endpoint_url:
            return missing
        if not self.s3_access_key_id:
            missing.append("S3_ACCESS_KEY_ID")
        if not self.s3_secret_access_key:
            missing.append("S3_SECRET_ACCESS_KEY")
        return missing


def configure_logging(settings: Settings) -> None:
    """Configure logging: either to a file or to stderr."""
    level = _LOG_LEVELS.get(settings.log_level, logging.WARNING)
    fmt = "%(asctime)s %(levelname)s %(message)s"
    if settings.log_file:
        logging.basicConfig(filename=settings.log_file, level=level, format=fmt)
    else:
        logging.basicConfig(stream=sys.stderr, level=level, format=fmt)

# filerelay/aws/s3_storage.py
import json
import logging
import threading
from typing import Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..schemas.files import ListPage, RawEntry
from ..services.errors import KeyConflict, ListError, ObjectNotFound, StorageError, UploadError

logger = logging.getLogger("filerelay")

_NOT_FOUND = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_WRITE_CONFLICT = {"412", "PreconditionFailed", "409", "ConditionalRequestConflict"}
_UNSUPPORTED = {"501", "NotImplemented"}
# Some S3 gateways (Supabase, MinIO consoles) keep empty "folders" alive with these.
_PLACEHOLDERS = {".emptyFolderPlaceholder", ".keep"}


def _client(settings: Settings):
    """
    Create an S3 client for the configured endpoint.
    - Against AWS: endpoint_url may be left unset and boto3 resolves it from the region.
    - Against an S3-compatible gateway: endpoint_url points at the gateway.
    """
    kwargs = {"config": Config(signature_version="s3v4")}
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
        # gateways rarely resolve bucket subdomains
        kwargs["config"] = Config(signature_version="s3v4", s3={"addressing_style": "path"})
    if settings.s3_region:
        kwargs["region_name"] = settings.s3_region
    if settings.s3_access_key_id and settings.s3_secret_access_key:
        kwargs["aws_access_key_id"] = settings.s3_access_key_id
        kwargs["aws_secret_access_key"] = settings.s3_secret_access_key
    return boto3.client("s3", **kwargs)


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def content_disposition(filename: str) -> str:
    """attachment header value; non-ASCII names also get an RFC 5987 filename*."""
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    value = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        value += f"; filename*=UTF-8''{quote(filename)}"
    return value


class S3Storage:
    """
    Objects in one S3-compatible bucket.

    The bucket is provisioned lazily: the first upload or listing makes sure it
    exists (and is public when configured so). The result is remembered for
    the life of the process and forgotten as soon as a bucket call fails.
    """
    supports_signed_urls = True

    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.s3_bucket
        self.region = settings.s3_region
        self.make_public = settings.s3_make_public
        self.public_base = settings.public_base_url()
        self.on_aws = not settings.s3_endpoint_url
        self.client = client if client is not None else _client(settings)
        # cleared once a gateway rejects If-None-Match on PutObject
        self.conditional_writes = True
        self._provisioned = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Provisioning
    # ------------------------------------------------------------------ #
    def ensure_ready(self) -> None:
        if self._provisioned:
            return
        with self._lock:
            if self._provisioned:
                return
            try:
                self._ensure_bucket()
            except (BotoCoreError, ClientError, StorageError) as e:
                # log and carry on; the real call reports its own error
                logger.error("[storage] ensure_bucket error: %s", e)
                return
            self._provisioned = True

    def invalidate(self) -> None:
        self._provisioned = False

    def _ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND:
                raise
            self._create_bucket()
            logger.info('[storage] bucket "%s" created.', self.bucket)
            if self.make_public:
                self._make_public()
            return

        if self.make_public and not self._is_public():
            self._make_public()
            logger.info('[storage] bucket "%s" set public.', self.bucket)
        else:
            logger.debug('[storage] bucket "%s" already exists.', self.bucket)

    def _create_bucket(self) -> None:
        params = {"Bucket": self.bucket}
        if self.region and self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        self.client.create_bucket(**params)

    def _is_public(self) -> bool:
        try:
            status = self.client.get_bucket_policy_status(Bucket=self.bucket)
        except ClientError:
            # NoSuchBucketPolicy and gateways without policy status: treat as private
            return False
        return bool(status.get("PolicyStatus", {}).get("IsPublic"))

    def _make_public(self) -> None:
        if self.on_aws:
            # new AWS buckets block public policies until this is lifted
            self.client.put_public_access_block(
                Bucket=self.bucket,
                PublicAccessBlockConfiguration={
                    "BlockPublicAcls": False,
                    "IgnorePublicAcls": False,
                    "BlockPublicPolicy": False,
                    "RestrictPublicBuckets": False,
                },
            )
        policy = {
            "Version": "2012-10-17",
            "Statement": [{
                "Sid": "PublicRead",
                "Effect": "Allow",
                "Principal": "*",
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{self.bucket}/*"],
            }],
        }
        self.client.put_bucket_policy(Bucket=self.bucket, Policy=json.dumps(policy))

    # ------------------------------------------------------------------ #
    # Objects
    # ------------------------------------------------------------------ #
    def _exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND:
                return False
            raise
        return True

    def _put_new(self, key: str, data: bytes, content_type: str) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        if self.conditional_writes:
            try:
                self.client.put_object(IfNoneMatch="*", **params)
                return
            except ClientError as e:
                code = _error_code(e)
                if code in _WRITE_CONFLICT:
                    raise KeyConflict(key) from e
                if code not in _UNSUPPORTED:
                    raise
                logger.warning("[storage] conditional writes unsupported (%s); relying on existence check", code)
                self.conditional_writes = False
        self.client.put_object(**params)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        """
        Upload bytes; never overwrites an existing key.

        The write itself is conditional (If-None-Match: *), so two racing
        requests cannot both win. The HEAD check up front covers gateways that
        ignore the condition.
        """
        try:
            if self._exists(key):
                raise KeyConflict(key)
            self._put_new(key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            self.invalidate()
            raise UploadError(f"upload failed for {key}: {e}") from e
        logger.info("[storage] uploaded s3://%s/%s (%d bytes)", self.bucket, key, len(data))

    def list_page(self, prefix: str, limit: int, token: Optional[str] = None) -> ListPage:
        folder = f"{prefix.strip('/')}/" if prefix.strip("/") else ""
        params = {"Bucket": self.bucket, "Prefix": folder, "Delimiter": "/", "MaxKeys": limit}
        if token:
            params["ContinuationToken"] = token
        try:
            resp = self.client.list_objects_v2(**params)
        except (BotoCoreError, ClientError) as e:
            self.invalidate()
            raise ListError(f"list failed for '{prefix}': {e}") from e

        entries = []
        for cp in resp.get("CommonPrefixes", []):
            name = cp["Prefix"][len(folder):].rstrip("/")
            if name:
                entries.append(RawEntry(name=name, is_dir=True))
        for obj in resp.get("Contents", []):
            name = obj["Key"][len(folder):]
            if not name or name.endswith("/") or name in _PLACEHOLDERS:
                continue
            modified = obj.get("LastModified")
            entries.append(RawEntry(
                name=name,
                size=obj.get("Size", 0),
                modified_at_ms=int(modified.timestamp() * 1000) if modified else None,
            ))

        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return ListPage(entries=entries, next_token=next_token)

    def public_url(self, key: str) -> str:
        return f"{self.public_base}/{quote(key)}"

    def signed_url(self, key: str, ttl_seconds: int, download_name: str) -> str:
        try:
            if not self._exists(key):
                raise ObjectNotFound(key)
            return self.client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "ResponseContentDisposition": content_disposition(download_name),
                },
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"cannot sign {key}: {e}") from e

"""
StorageStager — stage/move semantics over the DMZ, clean and quarantine areas.

Wraps a boto3 S3 client.  boto3 is blocking, so every call is pushed to
a worker thread with asyncio.to_thread; the event loop never waits on
the network.  Generic (non-storage) downloads go through the shared
httpx client.

move() is copy-then-delete and is NOT atomic: a crash between the two
calls leaves the object in both areas.  Re-running it overwrites the
copy and deletes the source again, so broker redelivery repairs it.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any
from urllib.parse import unquote, urlparse

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from scan_processor.core.config import Settings
from scan_processor.core.constants import StorageArea
from scan_processor.core.logging import get_logger
from scan_processor.core.tracing import Span
from scan_processor.messaging.errors import ObjectNotFoundError, StorageError

logger = get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# bucket.s3.amazonaws.com, bucket.s3-us-west-2.amazonaws.com, bucket.s3.us-west-2.amazonaws.com
_VIRTUAL_HOST_RE = re.compile(r"^(?P<bucket>.+?)\.s3[.-](?:[a-z0-9-]+\.)?amazonaws\.com$")
# s3.amazonaws.com, s3-us-west-2.amazonaws.com, s3.us-west-2.amazonaws.com
_PATH_STYLE_RE = re.compile(r"^s3(?:[.-][a-z0-9-]+)?\.amazonaws\.com$")


def parse_s3_url(url: str) -> tuple[str, str]:
    """
    Split a storage URL into (bucket, key).

    Accepts s3://bucket/key, path-style and virtual-hosted-style URLs.
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    path = unquote(parsed.path).lstrip("/")

    if parsed.scheme == "s3":
        bucket, key = parsed.netloc, path
    elif match := _VIRTUAL_HOST_RE.match(host):
        bucket, key = match.group("bucket"), path
    elif _PATH_STYLE_RE.match(host):
        bucket, _, key = path.partition("/")
    else:
        raise StorageError(f"Not a recognised storage URL: {url}")

    if not bucket or not key:
        raise StorageError(f"Storage URL has no bucket or key: {url}")
    return bucket, key


def _is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(error.get("Code")) in _NOT_FOUND_CODES or status == 404


def create_s3_client(settings: Settings) -> Any:
    """Build the process-wide boto3 S3 client from settings."""
    kwargs: dict[str, Any] = {"region_name": settings.AWS_REGION}
    if settings.STORAGE_ENDPOINT:
        kwargs["endpoint_url"] = settings.STORAGE_ENDPOINT
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return boto3.client("s3", **kwargs)


class StorageStager:
    """Existence probe, download, upload and move across the storage areas."""

    def __init__(self, s3_client: Any, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._s3 = s3_client
        self._http = http_client
        self._public_url = settings.STORAGE_PUBLIC_URL.rstrip("/")
        self._storage_url_re = re.compile(settings.STORAGE_URL_PATTERN)
        self._buckets = {
            StorageArea.DMZ: settings.DMZ_BUCKET,
            StorageArea.CLEAN: settings.CLEAN_BUCKET,
            StorageArea.QUARANTINE: settings.QUARANTINE_BUCKET,
        }

    def bucket(self, area: StorageArea) -> str:
        return self._buckets[area]

    def public_url(self, area: StorageArea, key: str) -> str:
        """Public URL of an object, e.g. https://s3.amazonaws.com/<bucket>/<key>."""
        return f"{self._public_url}/{self.bucket(area)}/{key}"

    def is_storage_url(self, url: str) -> bool:
        return self._storage_url_re.search(url) is not None

    async def _call(self, operation: str, **params: Any) -> Any:
        method = getattr(self._s3, operation)
        return await asyncio.to_thread(method, **params)

    # ─── Probe ─────────────────────────────────────────

    async def head(self, area: StorageArea, key: str) -> dict[str, Any]:
        """Return object metadata; ObjectNotFoundError if absent."""
        bucket = self.bucket(area)
        try:
            return await self._call("head_object", Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(bucket, key) from exc
            raise StorageError(
                f"Failed to probe {bucket}/{key}: {exc}",
                details={"bucket": bucket, "key": key},
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to probe {bucket}/{key}: {exc}") from exc

    async def exists(self, area: StorageArea, key: str) -> bool:
        """True if present, False on not-found; any other failure propagates."""
        try:
            await self.head(area, key)
        except ObjectNotFoundError:
            return False
        return True

    # ─── Transfer ──────────────────────────────────────

    async def download(self, url: str, parent_span: Span | None = None) -> bytes:
        """Fetch file bytes from a storage URL or any public URL."""
        span = parent_span.child("download_file") if parent_span else Span("download_file")
        span.set_tag("http.url", url)

        with span:
            if self.is_storage_url(url):
                bucket, key = parse_s3_url(url)
                logger.info("Downloading file from storage", bucket=bucket, key=key)
                try:
                    response = await self._call("get_object", Bucket=bucket, Key=key)
                    return await asyncio.to_thread(response["Body"].read)
                except ClientError as exc:
                    if _is_not_found(exc):
                        raise ObjectNotFoundError(bucket, key) from exc
                    raise StorageError(f"Failed to download {bucket}/{key}: {exc}") from exc
                except BotoCoreError as exc:
                    raise StorageError(f"Failed to download {bucket}/{key}: {exc}") from exc

            logger.info("Downloading file from public URL", url=url)
            try:
                response = await self._http.get(url, follow_redirects=True)
            except httpx.TransportError as exc:
                raise StorageError(f"Failed to download {url}: {exc}", details={"url": url}) from exc
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise StorageError(
                    f"Failed to download {url}: HTTP {response.status_code}",
                    details={"url": url, "status_code": response.status_code},
                ) from exc
            return response.content

    async def upload(self, area: StorageArea, key: str, body: bytes) -> None:
        bucket = self.bucket(area)
        logger.info("Uploading file", bucket=bucket, key=key, size=len(body))
        try:
            await self._call("put_object", Bucket=bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload {bucket}/{key}: {exc}") from exc

    async def move(
        self,
        source_area: StorageArea,
        source_key: str,
        target_area: StorageArea,
        target_key: str,
        parent_span: Span | None = None,
    ) -> None:
        """Copy the object to the target area, then delete the source."""
        source_bucket = self.bucket(source_area)
        target_bucket = self.bucket(target_area)

        span = parent_span.child("move_file") if parent_span else Span("move_file")
        span.set_tag("sourceBucket", source_bucket)
        span.set_tag("sourceKey", source_key)
        span.set_tag("targetBucket", target_bucket)
        span.set_tag("targetKey", target_key)

        with span:
            logger.info(
                "Moving file",
                source_bucket=source_bucket,
                source_key=source_key,
                target_bucket=target_bucket,
                target_key=target_key,
            )
            try:
                await self._call(
                    "copy_object",
                    Bucket=target_bucket,
                    Key=target_key,
                    CopySource={"Bucket": source_bucket, "Key": source_key},
                )
                await self._call("delete_object", Bucket=source_bucket, Key=source_key)
            except ClientError as exc:
                if _is_not_found(exc):
                    raise ObjectNotFoundError(source_bucket, source_key) from exc
                raise StorageError(
                    f"Failed to move {source_bucket}/{source_key} to {target_bucket}/{target_key}: {exc}"
                ) from exc
            except BotoCoreError as exc:
                raise StorageError(f"Failed to move {source_bucket}/{source_key}: {exc}") from exc

"""
Media Storage.

Durable storage for extracted audio across storage backends (Local, S3),
plus read-only access to HTTP-hosted media. Every call is bounded by the
configured timeout; a timeout surfaces as ``MediaTimeoutError``.
"""

import asyncio
import hashlib
import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse
import uuid

import boto3
import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StorageConfig
from ..errors import MediaError, MediaTimeoutError

logger = structlog.get_logger(__name__)


class StorageBackend(ABC):
    """Abstract storage backend interface."""

    scheme: str = ""

    @abstractmethod
    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload data and return its URL."""

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Download data by key."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""

    @abstractmethod
    def key_for(self, url: str) -> str:
        """Map a URL produced by this backend back to its key."""


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend."""

    scheme = "file"

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get full path for a key."""
        # Sanitize key to prevent path traversal
        safe_key = key.replace("..", "").lstrip("/")
        return self.base_path / safe_key

    def key_for(self, url: str) -> str:
        path = Path(unquote(urlparse(url).path)).resolve()
        try:
            return str(path.relative_to(self.base_path))
        except ValueError:
            raise MediaError(f"URL outside storage root: {url}", code="FOREIGN_URL")

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload data to local filesystem."""
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        await asyncio.to_thread(path.write_bytes, data)

        meta = dict(metadata or {})
        meta["content_type"] = content_type
        meta_path = path.with_suffix(path.suffix + ".meta")
        await asyncio.to_thread(meta_path.write_text, json.dumps(meta))

        return path.as_uri()

    async def download(self, key: str) -> bytes:
        """Download data from local filesystem."""
        path = self._get_path(key)
        if not path.exists():
            raise MediaError(f"Key not found: {key}", code="NOT_FOUND")
        return await asyncio.to_thread(path.read_bytes)

    async def exists(self, key: str) -> bool:
        return self._get_path(key).is_file()


class S3StorageBackend(StorageBackend):
    """AWS S3 storage backend."""

    scheme = "s3"

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region
        self._s3 = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
        )

    def key_for(self, url: str) -> str:
        parsed = urlparse(url)
        if parsed.netloc != self.bucket:
            raise MediaError(f"URL for foreign bucket: {url}", code="FOREIGN_URL")
        return parsed.path.lstrip("/")

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload to S3."""
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (BotoCoreError, ClientError) as e:
            raise MediaError(f"S3 upload failed: {e}", code="UPLOAD_ERROR")
        return f"s3://{self.bucket}/{key}"

    async def download(self, key: str) -> bytes:
        """Download from S3."""
        try:
            response = await asyncio.to_thread(
                self._s3.get_object,
                Bucket=self.bucket,
                Key=key,
            )
        except (BotoCoreError, ClientError) as e:
            raise MediaError(f"S3 download failed: {e}", code="DOWNLOAD_ERROR")
        return await asyncio.to_thread(response["Body"].read)

    async def exists(self, key: str) -> bool:
        """Check if key exists in S3."""
        try:
            await asyncio.to_thread(
                self._s3.head_object,
                Bucket=self.bucket,
                Key=key,
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise MediaError(f"S3 head failed: {e}", code="HEAD_ERROR")


class MediaStorage:
    """
    Unified media access.

    Writes go to the configured backend. Reads and existence checks are
    routed by URL scheme: the backend's own scheme, or http(s) through httpx.
    """

    def __init__(
        self,
        backend: StorageBackend,
        timeout_s: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.backend = backend
        self.timeout_s = timeout_s
        self._http = http_client

    @classmethod
    def from_config(cls, config: StorageConfig) -> "MediaStorage":
        """Create storage based on configuration."""
        if config.provider == "s3":
            backend: StorageBackend = S3StorageBackend(
                bucket=config.bucket_name,
                region=config.region,
                access_key=config.aws_access_key_id,
                secret_key=config.aws_secret_access_key,
            )
        else:
            backend = LocalStorageBackend(config.local_path)
        return cls(backend, timeout_s=config.timeout_s)

    def _generate_key(self, category: str, extension: str = "wav") -> str:
        """Structure: category/date/unique.ext"""
        date_prefix = datetime.utcnow().strftime("%Y/%m/%d")
        return f"{category}/{date_prefix}/{uuid.uuid4().hex[:12]}.{extension}"

    async def _bounded(self, coro, operation: str, target: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            raise MediaTimeoutError(
                f"{operation} timed out after {self.timeout_s}s",
                details={"target": target},
            )

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=True)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def upload(
        self,
        data: bytes,
        content_type: str = "audio/wav",
        metadata: Optional[Dict[str, str]] = None,
        category: str = "segments",
    ) -> str:
        """Store bytes and return their URL."""
        extension = "wav" if content_type in ("audio/wav", "audio/x-wav") else "bin"
        key = self._generate_key(category, extension)

        meta = {str(k): str(v) for k, v in (metadata or {}).items()}
        meta["checksum"] = hashlib.sha256(data).hexdigest()
        meta["uploaded_at"] = datetime.utcnow().isoformat()

        url = await self._bounded(
            self.backend.upload(key, data, content_type=content_type, metadata=meta),
            "upload",
            key,
        )
        logger.debug("media_uploaded", url=url, size=len(data))
        return url

    async def download(self, url: str) -> bytes:
        """Fetch bytes behind a URL."""
        scheme = urlparse(url).scheme
        if scheme in ("http", "https"):
            return await self._bounded(self._http_get(url), "download", url)
        if scheme == self.backend.scheme:
            key = self.backend.key_for(url)
            return await self._bounded(self.backend.download(key), "download", url)
        raise MediaError(f"Unsupported URL scheme: {url}", code="UNSUPPORTED_SCHEME")

    async def exists(self, url: str) -> bool:
        """Independent existence check for a URL."""
        scheme = urlparse(url).scheme
        if scheme in ("http", "https"):
            return await self._bounded(self._http_head(url), "exists", url)
        if scheme == self.backend.scheme:
            try:
                key = self.backend.key_for(url)
            except MediaError:
                return False
            return await self._bounded(self.backend.exists(key), "exists", url)
        return False

    async def _http_get(self, url: str) -> bytes:
        try:
            response = await self._http_client().get(url)
        except httpx.TimeoutException:
            raise MediaTimeoutError(f"download timed out: {url}")
        except httpx.HTTPError as e:
            raise MediaError(f"Download failed: {e}", code="DOWNLOAD_ERROR")
        if response.status_code != 200:
            raise MediaError(
                f"Download failed with HTTP {response.status_code}",
                code="DOWNLOAD_ERROR",
                details={"url": url, "status_code": response.status_code},
            )
        return response.content

    async def _http_head(self, url: str) -> bool:
        try:
            response = await self._http_client().head(url)
        except httpx.TimeoutException:
            raise MediaTimeoutError(f"exists timed out: {url}")
        except httpx.HTTPError as e:
            logger.warning("media_head_failed", url=url, error=str(e))
            return False
        return response.status_code == 200

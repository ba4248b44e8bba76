import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

import httpx
import structlog

from shared.config import settings
from shared.errors import NetworkError, StoreError, ValidationError

logger = structlog.get_logger(__name__)


def _check_key(key: str):
    if not key or "/" in key or "\\" in key or key.startswith("."):
        raise ValidationError(f"Invalid blob key: {key!r}")


class BlobStore(ABC):
    """Content storage for uploaded files. Keys are flat names inside a bucket."""

    @abstractmethod
    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        """Store ``data``. Raises StoreError (or NetworkError) on failure."""

    @abstractmethod
    async def exists(self, bucket: str, key: str) -> bool:
        ...

    @abstractmethod
    def public_url(self, bucket: str, key: str) -> str:
        ...


class LocalBlobStore(BlobStore):
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        _check_key(key)
        path = self.root / bucket / key
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise StoreError(f"Could not write blob {bucket}/{key}: {e}") from e
        logger.info("blob_stored", backend="local", bucket=bucket, key=key, size=len(data))

    async def exists(self, bucket: str, key: str) -> bool:
        _check_key(key)
        return await asyncio.to_thread((self.root / bucket / key).is_file)

    @staticmethod
    def _write(path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        # 'xb' refuses to overwrite an existing proof
        with open(path, "xb") as fh:
            fh.write(data)

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.base_url}/{bucket}/{key}"


class HttpBlobStore(BlobStore):
    """Supabase-storage compatible REST backend."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {api_key}", "apikey": api_key}
        self.timeout = timeout
        self.transport = transport

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        _check_key(key)
        url = f"{self.base_url}/storage/v1/object/{bucket}/{key}"
        headers = {"Content-Type": content_type, "x-upsert": "false"}
        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(url, content=data, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"Blob store rejected {bucket}/{key}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Blob store unreachable: {e}") from e
        logger.info("blob_stored", backend="http", bucket=bucket, key=key, size=len(data))

    async def exists(self, bucket: str, key: str) -> bool:
        _check_key(key)
        url = f"{self.base_url}/storage/v1/object/{bucket}/{key}"
        try:
            async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout, transport=self.transport) as client:
                resp = await client.head(url)
                if resp.status_code == 404:
                    return False
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"Blob store rejected lookup of {bucket}/{key}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Blob store unreachable: {e}") from e
        return True

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{key}"


def build_blob_store() -> BlobStore:
    if settings.BLOB_BACKEND == "http":
        return HttpBlobStore(settings.BLOB_STORE_URL, settings.BLOB_STORE_API_KEY, settings.BLOB_STORE_TIMEOUT)
    if settings.BLOB_BACKEND == "local":
        return LocalBlobStore(settings.BLOB_LOCAL_ROOT, settings.BLOB_PUBLIC_BASE_URL)
    raise ValueError(f"Unknown BLOB_BACKEND: {settings.BLOB_BACKEND!r}")

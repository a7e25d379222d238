# services/api/adapters/blob/__init__.py
"""
Blob storage adapters (read-only from the export pipeline's point of view).

LocalBlobStore  - files under <root>/<bucket>/<path>, for dev and tests
HttpBlobStore   - storage REST API: GET <base_url>/object/<bucket>/<path>
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

import httpx

from core.errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger(__name__)


class LocalBlobStore:
    def __init__(self, root: str = "data/blobs"):
        self.root = Path(root).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path.lstrip("/")).resolve()
        # No escaping the bucket with '..'
        if base != target and base not in target.parents:
            raise BlobStoreError(f"path escapes bucket: {bucket}/{path}")
        return target

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise BlobNotFoundError(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise BlobStoreError(f"read failed for {bucket}/{path}: {e}") from e

    def upload(self, bucket: str, path: str, data: bytes) -> None:
        """Used by seeding/admin tooling only; the export path never writes."""
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class HttpBlobStore:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("HttpBlobStore requires a base_url")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    async def download(self, bucket: str, path: str) -> bytes:
        url = f"{self.base_url}/object/{bucket}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                r = await client.get(url, headers=self._headers())
        except httpx.TimeoutException as e:
            raise BlobStoreError(f"timeout fetching {bucket}/{path}") from e
        except httpx.RequestError as e:
            raise BlobStoreError(f"error fetching {bucket}/{path}: {e}") from e

        # Some storage APIs answer 400 with "Object not found" instead of 404
        if r.status_code == 404 or (r.status_code == 400 and "not found" in r.text.lower()):
            raise BlobNotFoundError(bucket, path)
        if r.status_code != 200:
            raise BlobStoreError(f"storage returned HTTP {r.status_code} for {bucket}/{path}")

        logger.debug(f"downloaded {bucket}/{path} ({len(r.content)} bytes)")
        return r.content

"""
HTTP client for the blob object service.

Speaks the Vercel Blob REST API:
    PUT  {api}/{pathname}        upload (public, no random suffix)
    GET  {api}?prefix=&cursor=   list, paginated
    POST {api}/delete            delete by URL
Object bodies are read anonymously from their public URL.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class BlobObject:
    url: str
    pathname: str
    uploaded_at: Optional[str] = None
    size: Optional[int] = None


class BlobClient(Protocol):
    async def put(self, pathname: str, body: bytes, content_type: str = "application/json") -> BlobObject: ...

    async def list(self, prefix: str) -> List[BlobObject]: ...

    async def fetch(self, url: str) -> bytes: ...

    async def delete(self, urls: List[str]) -> None: ...

    async def aclose(self) -> None: ...


class HttpBlobClient:
    API_VERSION = "7"
    PAGE_SIZE = 1000

    def __init__(self, token: str, api_url: str = "https://blob.vercel-storage.com",
                 http: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        if not token:
            raise ValueError("A blob read/write token is required")
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict:
        return {
            "authorization": f"Bearer {self._token}",
            "x-api-version": self.API_VERSION,
        }

    async def put(self, pathname: str, body: bytes, content_type: str = "application/json") -> BlobObject:
        headers = self._headers()
        headers.update({
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
            "x-content-type": content_type,
        })
        response = await self._http.put(f"{self._api_url}/{pathname}", content=body, headers=headers)
        response.raise_for_status()
        data = response.json()
        return BlobObject(url=data["url"], pathname=data.get("pathname", pathname))

    async def list(self, prefix: str) -> List[BlobObject]:
        blobs: List[BlobObject] = []
        cursor = None
        while True:
            params = {"prefix": prefix, "limit": str(self.PAGE_SIZE)}
            if cursor:
                params["cursor"] = cursor
            response = await self._http.get(self._api_url, params=params, headers=self._headers())
            response.raise_for_status()
            data = response.json()
            for item in data.get("blobs", []):
                blobs.append(BlobObject(
                    url=item["url"],
                    pathname=item["pathname"],
                    uploaded_at=item.get("uploadedAt"),
                    size=item.get("size"),
                ))
            cursor = data.get("cursor")
            if not data.get("hasMore") or not cursor:
                return blobs

    async def fetch(self, url: str) -> bytes:
        response = await self._http.get(url, headers={"cache-control": "no-cache"})
        response.raise_for_status()
        return response.content

    async def delete(self, urls: List[str]) -> None:
        if not urls:
            return
        response = await self._http.post(f"{self._api_url}/delete", json={"urls": urls}, headers=self._headers())
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._http.aclose()

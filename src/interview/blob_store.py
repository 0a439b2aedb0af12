"""
Blob-backed store for an eventually-consistent object service.

==============================================================================
READ-AFTER-WRITE PROTOCOL (Feature: blob-read-after-write)
==============================================================================
An object is durable as soon as put() returns, but the listing index may not
show it for a while. get() therefore:

1. tries a direct fetch at {base_endpoint}/{pathname} when the base endpoint
   of this store is already known
2. falls back to an indexed lookup by exact key prefix; a hit caches the
   base endpoint for later direct fetches
3. on a miss, retries the lookup with linearly growing delays
   (1x, 2x base_delay) for a bounded number of attempts
4. counts transport/decode failures inside an attempt as a miss, so the loop
   always spends its whole budget before reporting "not found"

The sleeps are asyncio.sleep(), so a caller-side timeout or request
cancellation interrupts the loop.
==============================================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

from . import codec
from .blob_client import BlobClient, BlobObject
from .cache import TimedValue
from .codec import Entity, EntityKind
from .store import DurableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.2

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based attempt: 1x, 2x, 3x ... base_delay."""
        return self.base_delay * (attempt + 1)


def base_endpoint_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class BlobStore(DurableStore):
    backend_name = "blob"

    def __init__(self, client: BlobClient, retry_policy: Optional[RetryPolicy] = None,
                 settings_cache_seconds: float = 5.0,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        super().__init__(settings_cache_seconds=settings_cache_seconds)
        self._client = client
        self._policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        # Lazily discovered from the first put/list; never expires
        self._base_endpoint: TimedValue[str] = TimedValue(ttl=None)

    @property
    def base_endpoint(self) -> Optional[str]:
        return self._base_endpoint.get()

    def _remember_endpoint(self, url: str) -> None:
        if self._base_endpoint.get() is None:
            self._base_endpoint.set(base_endpoint_of(url))
            logger.debug(f"Cached blob base endpoint {self._base_endpoint.get()}")

    async def _exact_matches(self, pathname: str) -> List[BlobObject]:
        blobs = await self._client.list(prefix=pathname)
        return [b for b in blobs if b.pathname == pathname]

    # ===== Primitives =====

    async def _put(self, entity: Entity) -> None:
        result = await self._client.put(codec.path_for(entity), codec.encode(entity))
        self._remember_endpoint(result.url)

    async def _get(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> Optional[Entity]:
        pathname = codec.record_path(kind, entity_id, scope)
        start = time.monotonic()

        base = self._base_endpoint.get()
        if base:
            try:
                entity = codec.decode(kind, await self._client.fetch(f"{base}/{pathname}"))
                logger.debug(f"[Blob] get {pathname}: direct URL hit in {time.monotonic() - start:.3f}s")
                return entity
            except Exception as e:
                logger.debug(f"[Blob] get {pathname}: direct URL failed ({e}), falling back to list()")

        for attempt in range(self._policy.max_attempts):
            try:
                matches = await self._exact_matches(pathname)
                if matches:
                    self._remember_endpoint(matches[0].url)
                    entity = codec.decode(kind, await self._client.fetch(matches[0].url))
                    logger.debug(
                        f"[Blob] get {pathname}: list() hit on attempt {attempt + 1} "
                        f"in {time.monotonic() - start:.3f}s"
                    )
                    return entity
            except Exception as e:
                logger.warning(f"[Blob] get {pathname}: attempt {attempt + 1}/{self._policy.max_attempts} failed: {e}")

            if attempt < self._policy.max_attempts - 1:
                await self._sleep(self._policy.delay_for(attempt))

        logger.info(f"[Blob] get {pathname}: not found after {self._policy.max_attempts} attempts "
                    f"({time.monotonic() - start:.3f}s)")
        return None

    async def _list(self, kind: EntityKind, scope: Optional[str]) -> List[Entity]:
        entities = []
        for blob in await self._client.list(prefix=codec.collection_prefix(kind, scope)):
            if not blob.pathname.endswith(".json"):
                continue
            try:
                entities.append(codec.decode(kind, await self._client.fetch(blob.url)))
            except Exception as e:
                logger.warning(f"[Blob] skipping {blob.pathname}: {e}")
        return entities

    async def _delete(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> None:
        matches = await self._exact_matches(codec.record_path(kind, entity_id, scope))
        await self._client.delete([b.url for b in matches])

    async def close(self) -> None:
        await self._client.aclose()

"""
Key-value backed store.

One string key per entity plus an index used for enumeration:

    run:{runId}                 value     runs:index               sorted set (score = createdAt)
    prompt:{agentType}:{id}     value     prompts:{agentType}:index  set
    profile:{id}                value     profiles:index           set
    settings:settings           value     (not enumerated)

put() writes the value then adds the index member. delete() always removes
both; skipping either leaves a stale index entry or an orphaned value.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from . import codec
from .codec import Entity, EntityKind
from .kv_client import KeyValueClient
from .store import DurableStore

logger = logging.getLogger(__name__)


def value_key(kind: EntityKind, entity_id: str, scope: Optional[str] = None) -> str:
    codec.record_path(kind, entity_id, scope)  # same id/scope validation as the path layout
    if scope:
        return f"{kind.value}:{scope}:{entity_id}"
    return f"{kind.value}:{entity_id}"


def index_key(kind: EntityKind, scope: Optional[str] = None) -> Optional[str]:
    if kind == EntityKind.run:
        return "runs:index"
    if kind == EntityKind.prompt:
        return f"prompts:{scope}:index"
    if kind == EntityKind.profile:
        return "profiles:index"
    return None


def _created_score(entity: Entity) -> float:
    raw = getattr(entity, "created_at", None)
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


class KeyValueStore(DurableStore):
    backend_name = "kv"

    def __init__(self, client: KeyValueClient, settings_cache_seconds: float = 5.0):
        super().__init__(settings_cache_seconds=settings_cache_seconds)
        self._client = client

    async def _put(self, entity: Entity) -> None:
        kind = codec.kind_of(entity)
        entity_id = codec.record_id(entity)
        scope = codec.scope_of(entity)
        await self._client.set(value_key(kind, entity_id, scope), codec.encode(entity).decode("utf-8"))

        index = index_key(kind, scope)
        if index is None:
            return
        if kind == EntityKind.run:
            await self._client.zadd(index, _created_score(entity), entity_id)
        else:
            await self._client.sadd(index, entity_id)

    async def _get(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> Optional[Entity]:
        raw = await self._client.get(value_key(kind, entity_id, scope))
        if raw is None:
            return None
        return codec.decode(kind, raw)

    async def _members(self, kind: EntityKind, scope: Optional[str]) -> List[str]:
        index = index_key(kind, scope)
        if index is None:
            return []
        if kind == EntityKind.run:
            return await self._client.zrevrange(index)
        return await self._client.smembers(index)

    async def _list(self, kind: EntityKind, scope: Optional[str]) -> List[Entity]:
        entities = []
        for member in await self._members(kind, scope):
            try:
                entity = await self._get(kind, member, scope)
            except Exception as e:
                logger.warning(f"[kv] skipping {kind.value} {member}: {e}")
                continue
            if entity is None:
                logger.debug(f"[kv] index member {member} has no value")
                continue
            entities.append(entity)
        return entities

    async def _delete(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> None:
        key = value_key(kind, entity_id, scope)
        index = index_key(kind, scope)
        if index is not None:
            if kind == EntityKind.run:
                await self._client.zrem(index, entity_id)
            else:
                await self._client.srem(index, entity_id)
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()

"""
Durable store interface.

Every backend implements four primitives (_put, _get, _list, _delete). The
public wrappers here give all backends the same failure semantics:

- reads (get/list) degrade to None / [] and log a warning, so one flaky
  record never fails a whole request
- writes (put/delete) raise StoreWriteError, so a lost write is never silent

Prompt activation and settings caching are written once on top of the
primitives and shared by every backend.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from .cache import TimedValue
from .codec import Entity, EntityKind, kind_of, record_id
from .errors import InvalidStateError, NotFoundError, StoreWriteError
from .models import AgentType, Prompt, Settings, utc_now_iso

logger = logging.getLogger(__name__)

SETTINGS_ID = "settings"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _recency_key(entity: Entity) -> datetime:
    raw = getattr(entity, "created_at", None)
    if not raw:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_by_recency(entities: List[Entity]) -> List[Entity]:
    return sorted(entities, key=_recency_key, reverse=True)


class DurableStore(ABC):
    """Backend-agnostic entity store."""

    backend_name = "abstract"

    def __init__(self, settings_cache_seconds: float = 5.0):
        self._settings_cache: TimedValue[Settings] = TimedValue(ttl=settings_cache_seconds)

    # ===== Backend primitives =====

    @abstractmethod
    async def _put(self, entity: Entity) -> None: ...

    @abstractmethod
    async def _get(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> Optional[Entity]: ...

    @abstractmethod
    async def _list(self, kind: EntityKind, scope: Optional[str]) -> List[Entity]: ...

    @abstractmethod
    async def _delete(self, kind: EntityKind, entity_id: str, scope: Optional[str]) -> None: ...

    async def close(self) -> None:
        """Release network clients / connections. No-op by default."""

    # ===== Uniform contract =====

    async def put(self, entity: Entity) -> Entity:
        try:
            await self._put(entity)
        except StoreWriteError:
            raise
        except Exception as e:
            logger.error(f"[{self.backend_name}] put {kind_of(entity).value} {record_id(entity)} failed: {e}")
            raise StoreWriteError(f"Failed to save {kind_of(entity).value} '{record_id(entity)}': {e}") from e
        return entity

    async def get(self, kind: EntityKind, entity_id: str, scope=None) -> Optional[Entity]:
        scope = _scope(scope)
        try:
            return await self._get(kind, entity_id, scope)
        except Exception as e:
            logger.warning(f"[{self.backend_name}] get {kind.value} {entity_id} degraded to not-found: {e}")
            return None

    async def list(self, kind: EntityKind, scope=None) -> List[Entity]:
        scope = _scope(scope)
        try:
            entities = await self._list(kind, scope)
        except Exception as e:
            logger.warning(f"[{self.backend_name}] list {kind.value} degraded to empty: {e}")
            return []
        return sort_by_recency(entities)

    async def delete(self, kind: EntityKind, entity_id: str, scope=None) -> None:
        scope = _scope(scope)
        try:
            await self._delete(kind, entity_id, scope)
        except StoreWriteError:
            raise
        except Exception as e:
            logger.error(f"[{self.backend_name}] delete {kind.value} {entity_id} failed: {e}")
            raise StoreWriteError(f"Failed to delete {kind.value} '{entity_id}': {e}") from e

    # ===== Prompts =====

    async def get_active_prompt(self, agent_type: AgentType) -> Optional[Prompt]:
        for prompt in await self.list(EntityKind.prompt, agent_type):
            if prompt.is_active:
                return prompt
        return None

    async def add_prompt(self, prompt: Prompt, set_as_active: bool = False) -> Prompt:
        """Store a new prompt version. The first prompt of a type becomes active."""
        existing = await self.list(EntityKind.prompt, prompt.agent_type)
        if set_as_active:
            # Deactivate first so a crash between writes leaves zero active, never two
            for other in existing:
                if other.is_active:
                    other.is_active = False
                    await self.put(other)
            prompt.is_active = True
        elif not existing:
            prompt.is_active = True
        else:
            prompt.is_active = False
        return await self.put(prompt)

    async def activate_prompt(self, agent_type: AgentType, prompt_id: str) -> Prompt:
        scope = _scope(agent_type)
        target = await self.get(EntityKind.prompt, prompt_id, scope)
        if target is None:
            raise NotFoundError("prompt", prompt_id)
        for other in await self.list(EntityKind.prompt, scope):
            if other.id != prompt_id and other.is_active:
                other.is_active = False
                await self.put(other)
        if not target.is_active:
            target.is_active = True
            await self.put(target)
        logger.info(f"Activated {scope} prompt {prompt_id}")
        return target

    async def delete_prompt(self, agent_type: AgentType, prompt_id: str) -> None:
        target = await self.get(EntityKind.prompt, prompt_id, agent_type)
        if target is None:
            raise NotFoundError("prompt", prompt_id)
        if target.is_active:
            raise InvalidStateError("Cannot delete the active prompt")
        await self.delete(EntityKind.prompt, prompt_id, agent_type)

    # ===== Settings (Feature: configurable-scoring) =====

    async def get_settings(self) -> Settings:
        cached = self._settings_cache.get()
        if cached is not None:
            return cached.model_copy(deep=True)
        settings = await self.get(EntityKind.settings, SETTINGS_ID)
        if settings is None:
            settings = Settings()
        self._settings_cache.set(settings)
        return settings.model_copy(deep=True)

    async def save_settings(self, settings: Settings) -> Settings:
        settings.id = SETTINGS_ID
        settings.updated_at = utc_now_iso()
        await self.put(settings)
        self._settings_cache.set(settings.model_copy(deep=True))
        return settings


def _scope(scope) -> Optional[str]:
    if scope is None:
        return None
    return scope.value if isinstance(scope, AgentType) else str(scope)

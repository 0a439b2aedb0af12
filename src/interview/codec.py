"""
Record codec.

Turns the persisted entities into bytes and back, and owns the path layout
shared by the filesystem and blob backends:

    runs/{runId}.json
    prompts/{agentType}/{id}.json
    profiles/{id}.json
    settings/settings.json
"""

import json
from enum import Enum
from typing import Optional, Type, Union

from pydantic import ValidationError

from .errors import CodecError
from .models import Run, Prompt, Profile, Settings


class EntityKind(str, Enum):
    run = "run"
    prompt = "prompt"
    profile = "profile"
    settings = "settings"


Entity = Union[Run, Prompt, Profile, Settings]

_MODELS: dict = {
    EntityKind.run: Run,
    EntityKind.prompt: Prompt,
    EntityKind.profile: Profile,
    EntityKind.settings: Settings,
}

_COLLECTIONS = {
    EntityKind.run: "runs",
    EntityKind.prompt: "prompts",
    EntityKind.profile: "profiles",
    EntityKind.settings: "settings",
}


def model_for(kind: EntityKind) -> Type[Entity]:
    return _MODELS[kind]


def kind_of(entity: Entity) -> EntityKind:
    for kind, model in _MODELS.items():
        if isinstance(entity, model):
            return kind
    raise TypeError(f"Not a persisted entity: {type(entity).__name__}")


def record_id(entity: Entity) -> str:
    if isinstance(entity, Run):
        return entity.run_id
    return entity.id


def scope_of(entity: Entity) -> Optional[str]:
    """Prompts live under their agent type; nothing else is scoped."""
    if isinstance(entity, Prompt):
        return entity.agent_type.value
    return None


def _check_segment(value: str, what: str) -> str:
    if not value or value == "." or ".." in value or "/" in value or "\\" in value:
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


def _scope_value(scope) -> Optional[str]:
    if scope is None:
        return None
    return scope.value if isinstance(scope, Enum) else str(scope)


def collection_prefix(kind: EntityKind, scope=None) -> str:
    base = _COLLECTIONS[kind]
    scope = _scope_value(scope)
    if kind == EntityKind.prompt:
        if scope is None:
            raise ValueError("Prompts are scoped by agent type")
        return f"{base}/{_check_segment(scope, 'scope')}/"
    return f"{base}/"


def record_path(kind: EntityKind, entity_id: str, scope=None) -> str:
    return f"{collection_prefix(kind, scope)}{_check_segment(entity_id, 'id')}.json"


def path_for(entity: Entity) -> str:
    return record_path(kind_of(entity), record_id(entity), scope_of(entity))


def encode(entity: Entity) -> bytes:
    return entity.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def decode(kind: EntityKind, data: Union[bytes, str]) -> Entity:
    try:
        payload = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise CodecError(f"Unparseable {kind.value} record: {e}") from e
    if not isinstance(payload, dict):
        raise CodecError(f"Expected a JSON object for {kind.value}, got {type(payload).__name__}")
    try:
        return _MODELS[kind].model_validate(payload)
    except ValidationError as e:
        raise CodecError(f"Invalid {kind.value} record: {e.error_count()} validation error(s)") from e

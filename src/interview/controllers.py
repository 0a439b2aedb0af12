from typing import List
from fastapi import APIRouter, HTTPException
import logging

logger = logging.getLogger(__name__)

from . import default_prompts
from .codec import EntityKind
from .errors import InvalidStateError, NotFoundError
from .models import (
    AgentType,
    ChatRequest,
    CreateProfileRequest,
    CreatePromptRequest,
    CreateRunRequest,
    ImportTranscriptRequest,
    Profile,
    Prompt,
    PromptListResponse,
    Run,
    Settings,
    TurnResult,
    UpdateProfileRequest,
    utc_now_iso,
)
from .orchestrator import get_orchestrator
from .schema_builder import EvaluationSchemaBuilder
from .store_factory import get_store

router = APIRouter(prefix="/api")
store = get_store()
orchestrator = get_orchestrator(store)


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map domain errors onto status codes; anything else is a 500."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, NotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, InvalidStateError):
        return HTTPException(400, str(e))
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(500, f"Failed to {action}: {str(e)}")


# Runs
@router.get("/runs", response_model=List[Run])
async def list_runs():
    return await orchestrator.list_runs()


@router.post("/runs", response_model=Run, status_code=201)
async def create_run(request: CreateRunRequest):
    try:
        return await orchestrator.create_run(
            request.mode,
            request.initial_question,
            task_topic=request.task_topic,
            profile_id=request.profile_id,
            max_turns=request.max_turns,
        )
    except Exception as e:
        raise _http_error(e, "create run")


@router.post("/runs/upload", response_model=Run, status_code=201)
async def upload_transcript(request: ImportTranscriptRequest):
    """Create a completed run from an existing transcript and evaluate it once."""
    try:
        return await orchestrator.import_transcript(
            request.initial_question, request.transcript, task_topic=request.task_topic
        )
    except Exception as e:
        raise _http_error(e, "import transcript")


@router.get("/runs/{run_id}", response_model=Run)
async def get_run(run_id: str):
    try:
        return await orchestrator.get_run(run_id)
    except Exception as e:
        raise _http_error(e, "get run")


@router.delete("/runs/{run_id}", status_code=204)
async def delete_run(run_id: str):
    try:
        await orchestrator.delete_run(run_id)
    except Exception as e:
        raise _http_error(e, "delete run")


@router.post("/runs/{run_id}/chat/start", response_model=TurnResult)
async def start_chat(run_id: str):
    """Generate the interviewer's opening message. Returns the run unchanged if already started."""
    try:
        return await orchestrator.interactive_turn(run_id)
    except Exception as e:
        raise _http_error(e, "start chat")


@router.post("/runs/{run_id}/chat", response_model=TurnResult)
async def chat(run_id: str, request: ChatRequest):
    try:
        return await orchestrator.interactive_turn(run_id, request.user_message)
    except Exception as e:
        raise _http_error(e, "process chat message")


@router.post("/runs/{run_id}/sim/step", response_model=TurnResult)
async def simulation_step(run_id: str):
    try:
        return await orchestrator.simulation_step(run_id)
    except Exception as e:
        raise _http_error(e, "run simulation step")


@router.post("/runs/{run_id}/stop", response_model=TurnResult)
async def stop_run(run_id: str):
    try:
        return await orchestrator.stop_run(run_id)
    except Exception as e:
        raise _http_error(e, "stop run")


@router.post("/runs/{run_id}/discard", response_model=TurnResult)
async def discard_run(run_id: str):
    try:
        return await orchestrator.discard_run(run_id)
    except Exception as e:
        raise _http_error(e, "discard run")


# Prompts
@router.get("/prompts/{agent_type}", response_model=PromptListResponse)
async def list_prompts(agent_type: AgentType):
    prompts = await store.list(EntityKind.prompt, agent_type)
    active = next((p for p in prompts if p.is_active), None)
    return PromptListResponse(prompts=prompts, active_prompt=active)


@router.post("/prompts", response_model=Prompt, status_code=201)
async def create_prompt(request: CreatePromptRequest):
    prompt = Prompt(
        agent_type=request.agent_type,
        content=request.content,
        name=request.name,
        author=request.author,
    )
    try:
        return await store.add_prompt(prompt, set_as_active=request.set_as_active)
    except Exception as e:
        raise _http_error(e, "save prompt")


@router.put("/prompts/{agent_type}/{prompt_id}/activate", response_model=Prompt)
async def activate_prompt(agent_type: AgentType, prompt_id: str):
    try:
        return await store.activate_prompt(agent_type, prompt_id)
    except Exception as e:
        raise _http_error(e, "activate prompt")


@router.delete("/prompts/{agent_type}/{prompt_id}", status_code=204)
async def delete_prompt(agent_type: AgentType, prompt_id: str):
    try:
        await store.delete_prompt(agent_type, prompt_id)
    except Exception as e:
        raise _http_error(e, "delete prompt")


# Profiles
def _builtin_profile() -> Profile:
    return Profile(
        id=default_prompts.DEFAULT_PROFILE_ID,
        name=default_prompts.DEFAULT_PROFILE_NAME,
        content=default_prompts.DEFAULT_PERSONA,
    )


@router.get("/profiles", response_model=List[Profile])
async def list_profiles():
    """Stored profiles, or the built-in persona when none exist yet."""
    profiles = await store.list(EntityKind.profile)
    return profiles or [_builtin_profile()]


@router.post("/profiles", response_model=Profile, status_code=201)
async def create_profile(request: CreateProfileRequest):
    try:
        return await store.put(Profile(name=request.name, content=request.content))
    except Exception as e:
        raise _http_error(e, "save profile")


@router.put("/profiles/{profile_id}", response_model=Profile)
async def update_profile(profile_id: str, request: UpdateProfileRequest):
    existing = await store.get(EntityKind.profile, profile_id)
    if not existing:
        raise HTTPException(404, f"Profile '{profile_id}' not found")

    updates = request.model_dump(exclude_none=True)
    updated = existing.model_copy(update={**updates, "updated_at": utc_now_iso()})
    try:
        return await store.put(updated)
    except Exception as e:
        raise _http_error(e, "update profile")


@router.delete("/profiles/{profile_id}", status_code=204)
async def delete_profile(profile_id: str):
    if profile_id == default_prompts.DEFAULT_PROFILE_ID:
        raise HTTPException(400, "Cannot delete the default profile")
    if not await store.get(EntityKind.profile, profile_id):
        raise HTTPException(404, f"Profile '{profile_id}' not found")
    try:
        await store.delete(EntityKind.profile, profile_id)
    except Exception as e:
        raise _http_error(e, "delete profile")


# Settings (Feature: configurable-scoring)
@router.get("/settings", response_model=Settings)
async def get_settings():
    return await store.get_settings()


@router.put("/settings", response_model=Settings)
async def update_settings(settings: Settings):
    if not (settings.agent_a_model and settings.agent_b_model and settings.agent_c_model):
        raise HTTPException(400, "All agent models are required")
    try:
        EvaluationSchemaBuilder.from_settings(settings)
    except ValueError as e:
        raise HTTPException(400, str(e))
    try:
        return await store.save_settings(settings)
    except Exception as e:
        raise _http_error(e, "save settings")


@router.get("/settings/evaluation-schema")
async def get_evaluation_schema():
    """The structured-output schema the evaluator is currently called with."""
    settings = await store.get_settings()
    return EvaluationSchemaBuilder.from_settings(settings).build_schema()

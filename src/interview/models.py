from datetime import datetime, timezone
from typing import List, Dict, Any, Optional
import secrets
import uuid
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from enum import Enum

from . import config


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Record(BaseModel):
    """Base for everything that is persisted or sent over the wire.

    Persisted records use camelCase keys. Unknown keys are ignored so older
    processes can read records written by newer ones.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ==============================================================================
# ENUMS
# ==============================================================================

class RunMode(str, Enum):
    interactive = "interactive"  # Human answers, interviewer generated
    simulated = "simulated"      # Both sides generated
    imported = "imported"        # Uploaded transcript, evaluated once


class RunStatus(str, Enum):
    active = "active"
    completed = "completed"  # Terminal


class TranscriptRole(str, Enum):
    interviewer = "agentA"
    persona = "agentB"
    user = "user"


class AgentType(str, Enum):
    interviewer = "agentA"
    persona = "agentB"
    evaluator = "agentC"


class StopTiming(str, Enum):
    too_early = "too early"
    appropriate = "appropriate"
    too_late = "too late"


class ValueType(str, Enum):
    number = "number"
    string = "string"
    string_array = "string_array"
    object_array = "object_array"


# Values written by earlier releases of the web app
_LEGACY_MODES = {"human": "interactive", "simulation": "simulated", "transcript": "imported"}
_LEGACY_STATUSES = {"in_progress": "active", "error": "completed"}


# ==============================================================================
# TRANSCRIPT & EVALUATION
# ==============================================================================

class TranscriptEntry(Record):
    role: TranscriptRole
    content: str
    timestamp: str = Field(default_factory=utc_now_iso)
    # Only set on interviewer entries: 0 = continue, 1 = done
    end_flag: Optional[int] = Field(default=None, ge=0, le=1)


class EvidenceItem(Record):
    quote: str
    note: str
    category: str


class Evaluation(Record):
    overall_score: float = 0
    subscores: Dict[str, float] = Field(default_factory=dict)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    actionable_suggestions: List[str] = Field(default_factory=list)
    stop_timing: StopTiming = StopTiming.appropriate
    evidence: List[EvidenceItem] = Field(default_factory=list)
    # Enabled output options without a dedicated field above
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


# ==============================================================================
# RUN MODEL
# ==============================================================================
# The central aggregate. Mutated only by the orchestrator:
# - transcript is append-only and turn_count always equals its length
# - status moves active -> completed once
# - evaluation is attached at most once, on that transition
# - prompt/profile ids are captured at creation and never re-resolved
# ==============================================================================
class Run(Record):
    run_id: str = Field(default_factory=lambda: secrets.token_urlsafe(16)[:21])
    mode: RunMode
    status: RunStatus = RunStatus.active
    created_at: str = Field(default_factory=utc_now_iso)
    ended_at: Optional[str] = None

    initial_question: str
    task_topic: Optional[str] = None

    # ==== PROVENANCE ====
    agent_a_prompt_version_id: str = "default"
    agent_b_prompt_version_id: Optional[str] = None
    agent_c_prompt_version_id: str = "default"
    agent_b_profile_id: Optional[str] = None

    transcript: List[TranscriptEntry] = Field(default_factory=list)
    turn_count: int = 0
    max_turns: Optional[int] = Field(default=None, ge=1)
    evaluation: Optional[Evaluation] = None
    error: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _map_legacy_mode(cls, value):
        if isinstance(value, str):
            return _LEGACY_MODES.get(value, value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _map_legacy_status(cls, value):
        if isinstance(value, str):
            return _LEGACY_STATUSES.get(value, value)
        return value

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.completed

    def turn_limit(self) -> int:
        return self.max_turns or config.MAX_TURNS


# ====== Prompts & Profiles ======
class Prompt(Record):
    id: str = Field(default_factory=lambda: f"prompt_{uuid.uuid4().hex[:16]}")
    agent_type: AgentType
    content: str
    name: Optional[str] = None
    author: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    is_active: bool = False


class Profile(Record):
    id: str = Field(default_factory=lambda: f"profile_{uuid.uuid4().hex[:16]}")
    name: str
    content: str
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None


# ==============================================================================
# EVALUATION SETTINGS (Feature: configurable-scoring)
# ==============================================================================
# Scoring factors become the keys of the evaluator's `subscores` object and
# output options become top-level fields. Both are chosen at configuration
# time, so nothing downstream assumes a fixed set of names.
# ==============================================================================
class ScoringFactor(Record):
    name: str = Field(..., min_length=1)
    min_score: float = 0
    max_score: float = 100
    description: str = ""

    @model_validator(mode="after")
    def _check_range(self):
        if self.max_score < self.min_score:
            raise ValueError(f"max_score must be >= min_score for factor '{self.name}'")
        return self


class OutputOption(Record):
    name: str = Field(..., min_length=1)
    description: str = ""
    value_type: ValueType = ValueType.string
    enabled: bool = True


def default_scoring_factors() -> List[ScoringFactor]:
    return [
        ScoringFactor(name="relevance", description="Were follow-ups on-topic and goal-directed?"),
        ScoringFactor(name="coverage", description="Did the interviewer gather the key missing information?"),
        ScoringFactor(name="clarity", description="Were questions specific and easy to answer?"),
        ScoringFactor(name="efficiency", description="Did the interviewer avoid unnecessary turns?"),
        ScoringFactor(name="redundancy", description="Did the interviewer avoid repeating itself?"),
        ScoringFactor(name="reasoning", description="Were questions sequenced logically and reactive to answers?"),
        ScoringFactor(name="tone", description="Was the tone appropriate and helpful?"),
    ]


def default_output_options() -> List[OutputOption]:
    return [
        OutputOption(name="overallScore", description="Overall score from 0 to 100", value_type=ValueType.number),
        OutputOption(name="strengths", description="What the interviewer did well", value_type=ValueType.string_array),
        OutputOption(name="weaknesses", description="What the interviewer did poorly", value_type=ValueType.string_array),
        OutputOption(name="actionableSuggestions", description="Concrete improvements", value_type=ValueType.string_array),
        OutputOption(name="stopTiming", description="Whether the interview ended at the right time", value_type=ValueType.string),
        OutputOption(name="evidence", description="Short transcript quotes supporting the scores", value_type=ValueType.object_array),
    ]


class Settings(Record):
    id: str = "settings"
    agent_a_model: str = Field(default_factory=lambda: config.AGENT_A_MODEL)
    agent_b_model: str = Field(default_factory=lambda: config.AGENT_B_MODEL)
    agent_c_model: str = Field(default_factory=lambda: config.AGENT_C_MODEL)
    scoring_factors: List[ScoringFactor] = Field(default_factory=default_scoring_factors)
    output_options: List[OutputOption] = Field(default_factory=default_output_options)
    updated_at: Optional[str] = None


# ==============================================================================
# REQUEST / RESPONSE BODIES
# ==============================================================================

class CreateRunRequest(Record):
    mode: RunMode
    initial_question: str = Field(..., min_length=1)
    task_topic: Optional[str] = None
    profile_id: Optional[str] = None
    max_turns: Optional[int] = Field(default=None, ge=1, le=200)

    @model_validator(mode="after")
    def _check_mode(self):
        if self.mode == RunMode.imported:
            raise ValueError("Imported runs are created through the upload endpoint")
        if self.mode == RunMode.simulated and not self.profile_id:
            raise ValueError("profile_id is required for simulated runs")
        return self


class ChatRequest(Record):
    user_message: str = Field(..., min_length=1)


class ImportedEntry(Record):
    role: TranscriptRole
    content: str = Field(..., min_length=1)
    timestamp: Optional[str] = None
    end_flag: Optional[int] = Field(default=None, ge=0, le=1)


class ImportTranscriptRequest(Record):
    initial_question: str = Field(..., min_length=1)
    task_topic: Optional[str] = None
    transcript: List[ImportedEntry] = Field(..., min_length=1)


class CreatePromptRequest(Record):
    agent_type: AgentType
    content: str = Field(..., min_length=1)
    name: Optional[str] = None
    author: str = Field(..., min_length=1)
    set_as_active: bool = False

    @field_validator("author")
    @classmethod
    def _author_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("author must not be blank")
        return value.strip()


class PromptListResponse(Record):
    prompts: List[Prompt] = Field(default_factory=list)
    active_prompt: Optional[Prompt] = None


class CreateProfileRequest(Record):
    name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class UpdateProfileRequest(Record):
    name: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)


class TurnResult(Record):
    """Outcome of one orchestrator transition, returned to the caller."""
    run: Run
    interviewer_message: Optional[str] = None
    persona_message: Optional[str] = None
    done: bool = False
    reason: Optional[str] = None  # "interviewer_done" | "max_turns" | "stopped" | "discarded"
    evaluation: Optional[Evaluation] = None


__all__ = [
    'Record',
    'RunMode',
    'RunStatus',
    'TranscriptRole',
    'AgentType',
    'StopTiming',
    'ValueType',
    'TranscriptEntry',
    'EvidenceItem',
    'Evaluation',
    'Run',
    'Prompt',
    'Profile',
    'ScoringFactor',
    'OutputOption',
    'Settings',
    'CreateRunRequest',
    'ChatRequest',
    'ImportedEntry',
    'ImportTranscriptRequest',
    'CreatePromptRequest',
    'PromptListResponse',
    'CreateProfileRequest',
    'UpdateProfileRequest',
    'TurnResult',
    'utc_now_iso',
    'default_scoring_factors',
    'default_output_options',
]

"""
Run lifecycle orchestrator.

==============================================================================
STATE MACHINE
==============================================================================
A Run is `active` until exactly one terminal transition moves it to
`completed`. Each public operation is one read-modify-write against the
store: load the run, compute the transition, write it back. There is no lock
between the read and the write; one logical actor drives a run at a time.

interactive  one request = (optional user entry) + one interviewer entry.
             Completes when the interviewer says done or the hard turn
             ceiling is reached.
simulated    one step = interviewer entry, then persona entry unless the
             interviewer said done. The ceiling is checked before anything
             is generated.
imported     created already completed, evaluated once.
stop/discard manual termination, with / without evaluation.

The done signal is checked before the ceiling within a step. The evaluator
runs at most once per run, on the active -> completed transition, and its
failures are replaced with a deterministic failure evaluation.
==============================================================================
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from . import default_prompts
from .codec import EntityKind
from .errors import InvalidStateError, NotFoundError
from .models import (
    AgentType, Evaluation, ImportedEntry, Run, RunMode, RunStatus, Settings,
    TranscriptEntry, TranscriptRole, TurnResult, utc_now_iso,
)
from .llm_client import get_agents
from .schema_builder import EvaluationSchemaBuilder
from .store import DurableStore
from .store_factory import get_store

logger = logging.getLogger(__name__)

UPLOADED_PROMPT_ID = "uploaded"


class RunOrchestrator:
    def __init__(self, store: DurableStore, agents):
        self.store = store
        self.agents = agents

    # ===== Helpers =====

    async def _load(self, run_id: str) -> Run:
        run = await self.store.get(EntityKind.run, run_id)
        if run is None:
            raise NotFoundError("run", run_id)
        return run

    @staticmethod
    def _require_turnable(run: Run, mode: RunMode) -> None:
        if run.status != RunStatus.active:
            raise InvalidStateError(f"Run {run.run_id} is not active")
        if run.mode != mode:
            raise InvalidStateError(f"Run {run.run_id} is a {run.mode.value} run, not {mode.value}")

    @staticmethod
    def _append(run: Run, role: TranscriptRole, content: str, end_flag: Optional[int] = None) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, content=content, end_flag=end_flag)
        run.transcript.append(entry)
        run.turn_count = len(run.transcript)
        return entry

    async def _active_prompt_id(self, agent_type: AgentType) -> str:
        prompt = await self.store.get_active_prompt(agent_type)
        return prompt.id if prompt else default_prompts.DEFAULT_PROMPT_ID

    async def _prompt_text(self, agent_type: AgentType, prompt_id: Optional[str]) -> str:
        if prompt_id and prompt_id not in (default_prompts.DEFAULT_PROMPT_ID, UPLOADED_PROMPT_ID):
            prompt = await self.store.get(EntityKind.prompt, prompt_id, agent_type)
            if prompt is not None:
                return prompt.content
            logger.warning(f"{agent_type.value} prompt {prompt_id} not found, using built-in prompt")
        return default_prompts.default_prompt(agent_type)

    async def _profile_text(self, profile_id: Optional[str]) -> str:
        if profile_id and profile_id != default_prompts.DEFAULT_PROFILE_ID:
            profile = await self.store.get(EntityKind.profile, profile_id)
            if profile is not None:
                return profile.content
            logger.warning(f"Profile {profile_id} not found, using built-in persona")
        return default_prompts.DEFAULT_PERSONA

    async def _evaluate(self, run: Run, settings: Settings) -> Evaluation:
        builder = EvaluationSchemaBuilder.from_settings(settings)
        try:
            prompt_text = await self._prompt_text(AgentType.evaluator, run.agent_c_prompt_version_id)
            payload = await self.agents.call_evaluator(
                prompt_text,
                run.initial_question,
                run.transcript,
                builder.response_format(),
                model=settings.agent_c_model,
            )
            evaluation = builder.reconcile(payload)
        except Exception as e:
            logger.error(f"Evaluation failed for run {run.run_id}: {e}", exc_info=True)
            run.error = f"Evaluation failed: {str(e)[:500]}"
            return builder.failure_evaluation()
        logger.info(f"Run {run.run_id} evaluated: overall score {evaluation.overall_score:g}")
        return evaluation

    async def _complete(self, run: Run, evaluate: bool, settings: Optional[Settings] = None) -> None:
        """The single active -> completed transition. Attaches the evaluation when asked."""
        if run.status == RunStatus.completed:
            raise InvalidStateError(f"Run {run.run_id} is already completed")
        run.status = RunStatus.completed
        run.ended_at = utc_now_iso()
        if evaluate:
            run.evaluation = await self._evaluate(run, settings or await self.store.get_settings())
        logger.info(f"Run {run.run_id} completed after {run.turn_count} turns (evaluated: {evaluate})")

    # ===== Creation =====

    async def create_run(self, mode: RunMode, initial_question: str, task_topic: Optional[str] = None,
                         profile_id: Optional[str] = None, max_turns: Optional[int] = None) -> Run:
        if mode == RunMode.imported:
            raise InvalidStateError("Imported runs are created by importing a transcript")
        if mode == RunMode.simulated:
            if not profile_id:
                raise InvalidStateError("A profile is required for simulated runs")
            if profile_id != default_prompts.DEFAULT_PROFILE_ID:
                if await self.store.get(EntityKind.profile, profile_id) is None:
                    raise NotFoundError("profile", profile_id)

        run = Run(
            mode=mode,
            initial_question=initial_question,
            task_topic=(task_topic or "").strip() or None,
            agent_a_prompt_version_id=await self._active_prompt_id(AgentType.interviewer),
            agent_c_prompt_version_id=await self._active_prompt_id(AgentType.evaluator),
        )
        if mode == RunMode.simulated:
            run.agent_b_prompt_version_id = await self._active_prompt_id(AgentType.persona)
            run.agent_b_profile_id = profile_id
            run.max_turns = max_turns

        await self.store.put(run)
        logger.info(f"Created {mode.value} run {run.run_id}")
        return run

    async def import_transcript(self, initial_question: str, transcript: List[ImportedEntry],
                                task_topic: Optional[str] = None) -> Run:
        if not transcript:
            raise InvalidStateError("Transcript must not be empty")

        run = Run(
            mode=RunMode.imported,
            initial_question=initial_question,
            task_topic=(task_topic or "").strip() or None,
            agent_a_prompt_version_id=UPLOADED_PROMPT_ID,
            agent_c_prompt_version_id=await self._active_prompt_id(AgentType.evaluator),
        )
        now = datetime.now(timezone.utc)
        for index, item in enumerate(transcript):
            run.transcript.append(TranscriptEntry(
                role=item.role,
                content=item.content,
                timestamp=item.timestamp or (now + timedelta(seconds=index)).isoformat(),
                end_flag=item.end_flag if item.role == TranscriptRole.interviewer else None,
            ))
        run.turn_count = len(run.transcript)

        await self._complete(run, evaluate=True)
        await self.store.put(run)
        logger.info(f"Imported run {run.run_id} with {run.turn_count} entries")
        return run

    # ===== Turns =====

    async def interactive_turn(self, run_id: str, user_message: Optional[str] = None) -> TurnResult:
        run = await self._load(run_id)
        self._require_turnable(run, RunMode.interactive)

        if user_message is None and run.transcript:
            # Already started; nothing to generate
            return TurnResult(run=run)
        if run.turn_count >= run.turn_limit():
            raise InvalidStateError("Maximum turn limit reached")

        settings = await self.store.get_settings()
        if user_message is not None:
            self._append(run, TranscriptRole.user, user_message)

        prompt_text = await self._prompt_text(AgentType.interviewer, run.agent_a_prompt_version_id)
        reply = await self.agents.call_interviewer(
            prompt_text, run.initial_question, run.transcript, run.task_topic, model=settings.agent_a_model
        )
        self._append(run, TranscriptRole.interviewer, reply.content, end_flag=1 if reply.done else 0)

        reason = None
        if reply.done:
            reason = "interviewer_done"
        elif run.turn_count >= run.turn_limit():
            reason = "max_turns"
        if reason:
            await self._complete(run, evaluate=True, settings=settings)

        await self.store.put(run)
        return TurnResult(
            run=run,
            interviewer_message=reply.content,
            done=reason is not None,
            reason=reason,
            evaluation=run.evaluation,
        )

    async def simulation_step(self, run_id: str) -> TurnResult:
        run = await self._load(run_id)
        self._require_turnable(run, RunMode.simulated)
        settings = await self.store.get_settings()

        if run.turn_count >= run.turn_limit():
            await self._complete(run, evaluate=True, settings=settings)
            await self.store.put(run)
            return TurnResult(run=run, done=True, reason="max_turns", evaluation=run.evaluation)

        prompt_text = await self._prompt_text(AgentType.interviewer, run.agent_a_prompt_version_id)
        reply = await self.agents.call_interviewer(
            prompt_text, run.initial_question, run.transcript, run.task_topic, model=settings.agent_a_model
        )
        self._append(run, TranscriptRole.interviewer, reply.content, end_flag=1 if reply.done else 0)

        if reply.done:
            await self._complete(run, evaluate=True, settings=settings)
            await self.store.put(run)
            return TurnResult(
                run=run,
                interviewer_message=reply.content,
                done=True,
                reason="interviewer_done",
                evaluation=run.evaluation,
            )

        persona_prompt = await self._prompt_text(AgentType.persona, run.agent_b_prompt_version_id)
        profile_text = await self._profile_text(run.agent_b_profile_id)
        answer = await self.agents.call_persona(
            persona_prompt, profile_text, run.transcript, reply.content, model=settings.agent_b_model
        )
        self._append(run, TranscriptRole.persona, answer.content)

        await self.store.put(run)
        return TurnResult(run=run, interviewer_message=reply.content, persona_message=answer.content)

    # ===== Manual termination =====

    async def stop_run(self, run_id: str) -> TurnResult:
        run = await self._load(run_id)
        if run.status == RunStatus.completed:
            # Already ended some other way; report it as-is
            return TurnResult(run=run, done=True, evaluation=run.evaluation)
        if len(run.transcript) < 2:
            raise InvalidStateError("At least two transcript entries are required to stop and evaluate")

        await self._complete(run, evaluate=True)
        await self.store.put(run)
        return TurnResult(run=run, done=True, reason="stopped", evaluation=run.evaluation)

    async def discard_run(self, run_id: str) -> TurnResult:
        run = await self._load(run_id)
        if run.status == RunStatus.completed:
            return TurnResult(run=run, done=True, evaluation=run.evaluation)
        if not run.transcript:
            raise InvalidStateError("Nothing to discard: the transcript is empty")

        await self._complete(run, evaluate=False)
        await self.store.put(run)
        return TurnResult(run=run, done=True, reason="discarded")

    # ===== Queries =====

    async def get_run(self, run_id: str) -> Run:
        return await self._load(run_id)

    async def list_runs(self) -> List[Run]:
        return await self.store.list(EntityKind.run)

    async def delete_run(self, run_id: str) -> None:
        await self._load(run_id)
        await self.store.delete(EntityKind.run, run_id)
        logger.info(f"Deleted run {run_id}")


# Singleton instance
_orchestrator: Optional[RunOrchestrator] = None


def get_orchestrator(store: DurableStore = None, agents=None) -> RunOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RunOrchestrator(store or get_store(), agents or get_agents())
    return _orchestrator

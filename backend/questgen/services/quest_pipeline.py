"""Three-stage quest generation pipeline.

Idle -> SkillMapping -> DailyQuestDrafting -> PolicyChecking -> Done, with
Failed reachable from every non-terminal stage. Stages run strictly in
sequence; each depends on the previous stage's validated output. Any
``QuestGenerationError`` aborts the whole run: the error gets the failing
stage attached and is re-raised, and no partial result is returned.

The backend adapter is injected at construction. ``QuestPipeline`` keeps no
per-run state, so one instance can serve concurrent runs; each run's progress
lives in its own ``PipelineRun``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from questgen.core.context import pipeline_stage_context
from questgen.observability.metrics import log_metric
from questgen.observability.tracing import annotate, trace
from questgen.services.constraints import derive_constraints, derive_daily, neutral_checkin
from questgen.services.contracts import (
    DailyCheckin,
    GoalDeepDiveQuestions,
    Profile,
    Quest,
    QuestList,
    SkillAtom,
    SkillMap,
    find_prereq_issues,
)
from questgen.services.errors import NotInitialized, QuestGenerationError
from questgen.services.generation_backend import GenerationBackend
from questgen.services.quest_prompts import (
    DAILY_QUESTS_SYSTEM,
    DEEP_DIVE_SYSTEM,
    POLICY_CHECK_SYSTEM,
    SKILL_MAP_SYSTEM,
    build_daily_quests_prompt,
    build_goal_deep_dive_prompt,
    build_policy_check_prompt,
    build_skill_map_prompt,
)
from questgen.services.quest_repair import clamp_quests_to_session, decluster_patterns, scale_down_to_budget

logger = logging.getLogger(__name__)

SKILL_MAP_STAGE = "skill_map"
DAILY_QUESTS_STAGE = "daily_quests"
POLICY_CHECK_STAGE = "policy_check"
DEEP_DIVE_STAGE = "goal_deep_dive"


class PipelineStage(str, Enum):
    IDLE = "idle"
    SKILL_MAPPING = "skill_mapping"
    DAILY_QUEST_DRAFTING = "daily_quest_drafting"
    POLICY_CHECKING = "policy_checking"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS: Dict[PipelineStage, Tuple[PipelineStage, ...]] = {
    PipelineStage.IDLE: (PipelineStage.SKILL_MAPPING, PipelineStage.FAILED),
    PipelineStage.SKILL_MAPPING: (PipelineStage.DAILY_QUEST_DRAFTING, PipelineStage.FAILED),
    PipelineStage.DAILY_QUEST_DRAFTING: (PipelineStage.POLICY_CHECKING, PipelineStage.FAILED),
    PipelineStage.POLICY_CHECKING: (PipelineStage.DONE, PipelineStage.FAILED),
    PipelineStage.DONE: (),
    PipelineStage.FAILED: (),
}

STAGE_NAMES: Dict[PipelineStage, str] = {
    PipelineStage.SKILL_MAPPING: SKILL_MAP_STAGE,
    PipelineStage.DAILY_QUEST_DRAFTING: DAILY_QUESTS_STAGE,
    PipelineStage.POLICY_CHECKING: POLICY_CHECK_STAGE,
}


@dataclass
class StageFailure:
    stage: str
    cause: QuestGenerationError


@dataclass
class PipelineRun:
    """Progress of one pipeline invocation."""

    stage: PipelineStage = PipelineStage.IDLE
    history: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.IDLE])
    failure: Optional[StageFailure] = None
    notes: List[str] = field(default_factory=list)

    def advance(self, target: PipelineStage) -> None:
        if target not in TRANSITIONS[self.stage]:
            raise RuntimeError(f"Illegal pipeline transition {self.stage.value} -> {target.value}")
        self.stage = target
        self.history.append(target)

    def fail(self, cause: QuestGenerationError) -> StageFailure:
        stage_name = STAGE_NAMES.get(self.stage, self.stage.value)
        self.advance(PipelineStage.FAILED)
        self.failure = StageFailure(stage=stage_name, cause=cause)
        return self.failure

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self.stage]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "history": [stage.value for stage in self.history],
            "failure": self.failure.cause.to_dict() if self.failure else None,
            "notes": list(self.notes),
        }


@dataclass
class PolicyCheckOutcome:
    quest_list: QuestList
    total_before_scaling: int
    overshoot_min: int
    declustered_moves: int
    unresolved_pattern_pairs: int


@dataclass
class PipelineResult:
    skill_atoms: List[SkillAtom]
    quests_candidate: List[Quest]
    final_quests: QuestList
    run: PipelineRun


class QuestPipeline:
    def __init__(self, backend: Optional[GenerationBackend]) -> None:
        self.backend = backend

    @property
    def initialized(self) -> bool:
        return self.backend is not None

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "backend": self.backend.kind if self.backend else None,
        }

    def _require_backend(self) -> GenerationBackend:
        if self.backend is None:
            raise NotInitialized("Quest pipeline has no generation backend; configure OPENAI_API_KEY or the canned backend.")
        return self.backend

    def generate_skill_map(
        self,
        goal_text: str,
        current_level_tags: Optional[Sequence[str]] = None,
        priority_areas: Optional[Sequence[str]] = None,
    ) -> List[SkillAtom]:
        backend = self._require_backend()
        prompt = build_skill_map_prompt(goal_text, current_level_tags, priority_areas)
        skill_map = backend.complete_structured(prompt, SkillMap, system_text=SKILL_MAP_SYSTEM)
        logger.info("Skill map validated with %s atoms", len(skill_map.skill_atoms))
        return skill_map.skill_atoms

    def draft_daily_quests(
        self,
        profile: Profile,
        skill_atoms: Sequence[SkillAtom],
        checkin: Optional[DailyCheckin] = None,
    ) -> List[Quest]:
        backend = self._require_backend()
        checkin = checkin or neutral_checkin()
        derived = derive_daily(profile)
        prompt = build_daily_quests_prompt(profile, derived, skill_atoms, checkin)
        quest_list = backend.complete_structured(prompt, QuestList, system_text=DAILY_QUESTS_SYSTEM)
        clamped = clamp_quests_to_session(quest_list.quests, profile.preferred_session_length_min)
        logger.info(
            "Drafted %s quests (capacity=%s min, hint=%s quests)",
            len(clamped),
            derived.daily_capacity_min,
            derived.quest_count_hint,
        )
        return clamped

    def policy_check(
        self,
        quests: Sequence[Quest],
        profile: Profile,
        checkin: Optional[DailyCheckin] = None,
    ) -> PolicyCheckOutcome:
        backend = self._require_backend()
        checkin = checkin or neutral_checkin()
        constraints = derive_constraints(profile, derive_daily(profile), checkin)
        prompt = build_policy_check_prompt(quests, constraints)
        reviewed = backend.complete_structured(prompt, QuestList, system_text=POLICY_CHECK_SYSTEM)

        scaled = scale_down_to_budget(reviewed.quests, constraints.total_minutes_max)
        if scaled.scaled:
            log_metric(
                "quests.scale_down.used",
                1,
                {"total_before": scaled.total_before, "limit": scaled.limit, "overshoot_min": scaled.overshoot_min},
            )
        declustered = decluster_patterns(scaled.quests)
        if declustered.moves:
            log_metric("quests.decluster.moves", declustered.moves, {"unresolved": declustered.unresolved})
        if declustered.unresolved:
            logger.info("%s repeated-pattern pair(s) left in place; no reordering available", declustered.unresolved)

        final = reviewed.model_copy(update={"quests": declustered.quests})
        return PolicyCheckOutcome(
            quest_list=final,
            total_before_scaling=scaled.total_before,
            overshoot_min=scaled.overshoot_min,
            declustered_moves=declustered.moves,
            unresolved_pattern_pairs=declustered.unresolved,
        )

    def run(
        self,
        goal_text: Optional[str],
        profile: Profile,
        current_level_tags: Optional[Sequence[str]] = None,
        priority_areas: Optional[Sequence[str]] = None,
        checkin: Optional[DailyCheckin] = None,
        request_id: Optional[str] = None,
        pipeline_run: Optional[PipelineRun] = None,
    ) -> PipelineResult:
        """Run skill map -> daily quests -> policy check end to end.

        Pass ``pipeline_run`` to observe the stage history even when the run fails.
        """
        self._require_backend()
        goal = (goal_text or "").strip() or (profile.long_term_goal or "").strip()
        if not goal:
            raise ValueError("A goal statement is required (goal_text or profile.long_term_goal).")
        tags = current_level_tags if current_level_tags is not None else profile.current_level_tags
        areas = priority_areas if priority_areas is not None else profile.priority_areas
        checkin = checkin or neutral_checkin()

        run = pipeline_run if pipeline_run is not None else PipelineRun()
        started = perf_counter()
        success = False
        metadata = {"goal_chars": len(goal), "heat_level": profile.heat_level, "backend": self.backend.kind}
        try:
            with trace("quests.pipeline", metadata=metadata, request_id=request_id) as span:
                with self._stage(run, PipelineStage.SKILL_MAPPING):
                    skill_atoms = self.generate_skill_map(goal, tags, areas)
                    run.notes.extend(find_prereq_issues(skill_atoms))
                    for note in run.notes:
                        logger.warning("Skill map prerequisite issue: %s", note)

                with self._stage(run, PipelineStage.DAILY_QUEST_DRAFTING):
                    candidate = self.draft_daily_quests(profile, skill_atoms, checkin)

                with self._stage(run, PipelineStage.POLICY_CHECKING):
                    outcome = self.policy_check(candidate, profile, checkin)
                    if outcome.overshoot_min:
                        run.notes.append(
                            f"total exceeds budget by {outcome.overshoot_min} min after scaling (10-minute floor)"
                        )
                    if outcome.unresolved_pattern_pairs:
                        run.notes.append(
                            f"{outcome.unresolved_pattern_pairs} repeated-pattern pair(s) could not be reordered"
                        )

                run.advance(PipelineStage.DONE)
                annotate(
                    span,
                    skill_atoms=len(skill_atoms),
                    final_quests=len(outcome.quest_list.quests),
                    final_minutes=sum(quest.minutes for quest in outcome.quest_list.quests),
                )
            success = True
        finally:
            log_metric("quests.pipeline.success", 1 if success else 0, {"stage": run.stage.value})
            log_metric("quests.pipeline.latency_ms", (perf_counter() - started) * 1000, {"stage": run.stage.value})

        logger.info(
            "Quest pipeline done: %s atoms, %s candidate quests, %s final quests",
            len(skill_atoms),
            len(candidate),
            len(outcome.quest_list.quests),
        )
        return PipelineResult(
            skill_atoms=skill_atoms,
            quests_candidate=candidate,
            final_quests=outcome.quest_list,
            run=run,
        )

    def generate_goal_deep_dive(self, goal_text: Optional[str] = None) -> GoalDeepDiveQuestions:
        backend = self._require_backend()
        prompt = build_goal_deep_dive_prompt(goal_text)
        with pipeline_stage_context(DEEP_DIVE_STAGE):
            try:
                return backend.complete_structured(prompt, GoalDeepDiveQuestions, system_text=DEEP_DIVE_SYSTEM)
            except QuestGenerationError as exc:
                exc.stage = DEEP_DIVE_STAGE
                logger.error("Goal deep-dive generation failed: %s", exc)
                raise

    @contextmanager
    def _stage(self, run: PipelineRun, stage: PipelineStage) -> Iterator[None]:
        run.advance(stage)
        stage_name = STAGE_NAMES[stage]
        started = perf_counter()
        with pipeline_stage_context(stage_name):
            logger.info("Entering stage %s", stage_name)
            try:
                with trace(f"quests.{stage_name}"):
                    yield
            except QuestGenerationError as exc:
                failure = run.fail(exc)
                exc.stage = failure.stage
                logger.error("Stage %s failed: %s", failure.stage, exc)
                raise
            latency_ms = (perf_counter() - started) * 1000
            logger.info("Stage %s completed in %.1f ms", stage_name, latency_ms)
            log_metric(f"quests.{stage_name}.latency_ms", latency_ms)

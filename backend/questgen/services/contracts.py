"""Structural contracts for every planning entity.

Models run in pydantic strict mode so values are range-checked but never
coerced (``"25"`` is not a valid ``minutes``). ``validate_entity`` is the
gate used on every boundary crossing; it turns pydantic's ``ValidationError``
into a ``SchemaViolation`` naming the field path, the constraint and the
offending value.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from questgen.services.errors import FieldViolation, SchemaViolation
from questgen.services.pattern_catalog import PATTERN_IDS, is_known_pattern

Level3 = Literal["low", "mid", "high"]
MotivationStyle = Literal["push", "pull", "social"]
PacePreference = Literal["sprint", "cadence"]
Modality = Literal["read", "video", "audio", "dialog", "mimesis"]
DeliverablePreference = Literal["note", "flashcards", "snippet", "mini_task", "past_paper"]
AtomType = Literal["concept", "procedure", "habit"]
AtomLevel = Literal["intro", "basic", "intermediate", "advanced"]
BloomLevel = Literal["remember", "understand", "apply", "analyze", "evaluate", "create"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class Contract(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")


def _check_pattern(value: str) -> str:
    if not is_known_pattern(value):
        raise ValueError(f"pattern must be one of {', '.join(PATTERN_IDS)}")
    return value


class Profile(Contract):
    """A user's planning preferences, captured at onboarding."""

    time_budget_min_per_day: int = Field(..., ge=15, le=240)
    peak_hours: List[int] = Field(default_factory=list, max_length=8)
    env_constraints: List[str] = Field(default_factory=list, max_length=10)
    hard_constraints: List[str] = Field(default_factory=list, max_length=10)
    motivation_style: MotivationStyle = "pull"
    difficulty_tolerance: float = Field(0.5, ge=0, le=1)
    novelty_preference: float = Field(0.5, ge=0, le=1)
    pace_preference: PacePreference = "cadence"
    long_term_goal: Optional[str] = Field(default=None, min_length=4, max_length=240)
    milestone_granularity: Optional[float] = Field(default=None, ge=0, le=1)
    current_level_tags: List[str] = Field(default_factory=list, max_length=15)
    priority_areas: List[str] = Field(default_factory=list, max_length=5)
    heat_level: int = Field(3, ge=1, le=5)
    risk_factors: List[str] = Field(default_factory=list, max_length=10)
    preferred_session_length_min: int = Field(20, ge=10, le=60)
    modality_preference: List[Modality] = Field(default_factory=lambda: ["read"], min_length=1, max_length=5)
    deliverable_preferences: List[DeliverablePreference] = Field(default_factory=lambda: ["note"], max_length=2)
    weekly_minimum_commitment_min: int = Field(120, ge=60, le=600)
    goal_motivation: Level3 = "mid"

    @field_validator("peak_hours")
    @classmethod
    def _hours_of_day(cls, value: List[int]) -> List[int]:
        for hour in value:
            if not 0 <= hour <= 23:
                raise ValueError("peak hours must be hour-of-day values between 0 and 23")
        return value


class Derived(Contract):
    """Planning envelope for one day, recomputed from a profile."""

    daily_capacity_min: int = Field(..., ge=0)
    quest_count_hint: int = Field(..., ge=3, le=6)
    novelty_ratio: float = Field(0.5, ge=0, le=1)
    difficulty_rating: int = Field(1200, ge=800, le=2000)
    difficulty_hint: float = Field(0.5, ge=0, le=1)


class DailyCheckin(Contract):
    """Same-day adjustment layered over the profile."""

    mood_energy: Level3 = "mid"
    available_time_today_delta_min: int = Field(0, ge=-60, le=60)
    focus_noise: Level3 = "mid"


class SkillAtom(Contract):
    id: str = Field(..., min_length=3)
    label: str = Field(..., min_length=3)
    type: AtomType
    level: AtomLevel
    bloom: BloomLevel
    prereq: List[str] = Field(default_factory=list)
    representative_tasks: List[str] = Field(..., min_length=1, max_length=6)
    suggested_patterns: List[str] = Field(default_factory=list)

    @field_validator("suggested_patterns")
    @classmethod
    def _known_patterns(cls, value: List[str]) -> List[str]:
        for pattern in value:
            _check_pattern(pattern)
        return value


class SkillMap(Contract):
    skill_atoms: List[SkillAtom] = Field(..., min_length=10)


class KnowledgeCheck(Contract):
    q: str
    a: str


class Quest(Contract):
    """One concrete, time-boxed daily task."""

    title: str = Field(..., min_length=4)
    pattern: str
    minutes: int = Field(..., ge=10, le=90)
    difficulty: float = Field(0.5, ge=0, le=1)
    deliverable: str = Field(..., min_length=2)
    steps: Optional[List[str]] = Field(default=None, min_length=1, max_length=3)
    criteria: List[str] = Field(..., min_length=1)
    knowledge_check: List[KnowledgeCheck] = Field(default_factory=list)
    tags: List[str] = Field(..., min_length=1)

    @field_validator("pattern")
    @classmethod
    def _known_pattern(cls, value: str) -> str:
        return _check_pattern(value)


class QuestList(Contract):
    quests: List[Quest] = Field(..., min_length=3, max_length=5)
    rationale: Optional[List[str]] = None


class Constraints(Contract):
    """Enforceable envelope for one quest list."""

    total_minutes_max: int = Field(..., ge=10)
    preferred_session_length_min: int = Field(..., ge=10, le=60)
    novelty_ratio: float = Field(..., ge=0, le=1)
    env_constraints: List[str] = Field(default_factory=list)
    avoid_consecutive_same_pattern: bool = True


DeepDiveId = Literal["goal_focus", "goal_horizon", "goal_tradeoff", "goal_evidence"]


class DeepDiveOption(Contract):
    label: str
    value: str


class GoalDeepDiveQuestion(Contract):
    id: DeepDiveId
    title: str
    help: Optional[str] = None
    options: List[DeepDiveOption] = Field(..., min_length=4, max_length=4)
    memoEnabled: bool = True


class GoalDeepDiveQuestions(Contract):
    questions: List[GoalDeepDiveQuestion] = Field(..., min_length=4, max_length=4)


class _Answer(Contract):
    note: Optional[str] = Field(default=None, max_length=120)


class GoalFocusAnswer(_Answer):
    choice: Literal["knowledge", "skill", "outcome", "habit"]


class GoalHorizonAnswer(_Answer):
    choice: Literal["1m", "3m", "6m", "12m+"]


class GoalTradeoffAnswer(_Answer):
    choice: Literal["quality", "speed", "balance", "experiment"]


class GoalEvidenceAnswer(_Answer):
    choice: Literal["credential_score", "portfolio_demo", "realworld_result", "presentation_review"]


class GoalDeepDiveAnswers(Contract):
    goal_focus: GoalFocusAnswer
    goal_horizon: GoalHorizonAnswer
    goal_tradeoff: GoalTradeoffAnswer
    goal_evidence: GoalEvidenceAnswer


def validate_entity(value: Any, model: Type[ModelT]) -> ModelT:
    """Validate ``value`` against ``model`` or raise ``SchemaViolation``."""
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise SchemaViolation(model.__name__, _violations_from(exc)) from exc


def _violations_from(exc: ValidationError) -> List[FieldViolation]:
    violations: List[FieldViolation] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        constraint = str(error.get("msg", error.get("type", "invalid")))
        if constraint.startswith("Value error, "):
            constraint = constraint[len("Value error, "):]
        violations.append(FieldViolation(field=path, constraint=constraint, actual=error.get("input")))
    return violations


def find_prereq_issues(skill_atoms: List[SkillAtom]) -> List[str]:
    """Report unknown prerequisite ids and prerequisite cycles.

    Advisory only: the pipeline logs these and carries them in the run
    record; it never rejects a skill map because of them.
    """
    known = {atom.id for atom in skill_atoms}
    issues: List[str] = []
    graph: Dict[str, List[str]] = {}
    for atom in skill_atoms:
        graph[atom.id] = [prereq for prereq in atom.prereq if prereq in known]
        for prereq in atom.prereq:
            if prereq not in known:
                issues.append(f"{atom.id}: unknown prerequisite '{prereq}'")

    visiting: set[str] = set()
    done: set[str] = set()

    def visit(node: str, trail: List[str]) -> None:
        if node in done:
            return
        if node in visiting:
            cycle = trail[trail.index(node):] + [node]
            issues.append("prerequisite cycle: " + " -> ".join(cycle))
            return
        visiting.add(node)
        for prereq in graph.get(node, []):
            visit(prereq, trail + [node])
        visiting.discard(node)
        done.add(node)

    for atom_id in graph:
        visit(atom_id, [])
    return issues

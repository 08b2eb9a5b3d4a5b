"""Schemas for the quest generation endpoints."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from questgen.services.contracts import (
    Constraints,
    DailyCheckin,
    Derived,
    Profile,
    Quest,
    QuestList,
    SkillAtom,
)


class QuestGenerationRequest(BaseModel):
    goal_text: Optional[str] = Field(
        default=None,
        min_length=4,
        max_length=240,
        description="Goal statement; falls back to profile.long_term_goal.",
    )
    profile: Profile
    current_level_tags: Optional[List[str]] = Field(default=None, max_length=15)
    priority_areas: Optional[List[str]] = Field(default=None, max_length=5)
    checkin: Optional[DailyCheckin] = None


class PipelineRunPayload(BaseModel):
    stage: str
    history: List[str]
    notes: List[str] = Field(default_factory=list)


class QuestGenerationResponse(BaseModel):
    skill_atoms: List[SkillAtom]
    quests_candidate: List[Quest]
    final_quests: QuestList
    pipeline: PipelineRunPayload
    request_id: str


class DeriveRequest(BaseModel):
    profile: Profile
    checkin: Optional[DailyCheckin] = None


class DeriveResponse(BaseModel):
    derived: Derived
    constraints: Constraints


class GoalDeepDiveRequest(BaseModel):
    goal_text: Optional[str] = Field(default=None, max_length=2000)

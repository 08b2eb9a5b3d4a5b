"""Pure derivation of planning limits from a profile and a daily check-in."""
from __future__ import annotations

import math
from typing import Dict, Optional

from questgen.services.contracts import Constraints, DailyCheckin, Derived, Profile, validate_entity

CAPACITY_FACTOR = 0.8
MIN_SESSION_MIN = 10
MAX_SESSION_MIN = 60
MIN_QUEST_COUNT = 3
MAX_QUEST_COUNT = 6
MIN_TOTAL_MINUTES = 10

DIFFICULTY_HINTS: Dict[str, float] = {"low": 0.35, "mid": 0.50, "high": 0.65}
HEAT_MULTIPLIERS: Dict[int, float] = {1: 0.6, 2: 0.8, 3: 1.0, 4: 1.2, 5: 1.4}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` would bank to even)."""
    return int(math.floor(value + 0.5))


def difficulty_hint(motivation: str) -> float:
    return DIFFICULTY_HINTS.get(motivation, DIFFICULTY_HINTS["mid"])


def heat_multiplier(level: int) -> float:
    return HEAT_MULTIPLIERS.get(level, 1.0)


def neutral_checkin() -> DailyCheckin:
    return DailyCheckin()


def derive_daily(profile: Profile) -> Derived:
    """Compute today's capacity, quest count hint, novelty and difficulty targets."""
    daily_capacity = math.floor(profile.time_budget_min_per_day * CAPACITY_FACTOR * heat_multiplier(profile.heat_level))
    session = max(MIN_SESSION_MIN, min(MAX_SESSION_MIN, profile.preferred_session_length_min))
    quest_count_hint = max(MIN_QUEST_COUNT, min(MAX_QUEST_COUNT, round_half_up(daily_capacity / session)))
    return Derived(
        daily_capacity_min=daily_capacity,
        quest_count_hint=quest_count_hint,
        novelty_ratio=profile.novelty_preference,
        difficulty_hint=difficulty_hint(profile.goal_motivation),
    )


def derive_constraints(profile: Profile, derived: Derived, checkin: Optional[DailyCheckin] = None) -> Constraints:
    """Build the enforceable envelope the policy check works against."""
    checkin = checkin or neutral_checkin()
    return Constraints(
        total_minutes_max=max(MIN_TOTAL_MINUTES, derived.daily_capacity_min + checkin.available_time_today_delta_min),
        preferred_session_length_min=profile.preferred_session_length_min,
        novelty_ratio=derived.novelty_ratio,
        env_constraints=list(profile.env_constraints),
        avoid_consecutive_same_pattern=True,
    )


def create_basic_profile(
    goal_text: str,
    time_budget_min: int,
    motivation: str,
    session_length: int = 20,
) -> Profile:
    """Build a reasonable default profile for demos and smoke tests."""
    weekly_minimum = max(60, min(600, math.floor(time_budget_min * 7 * CAPACITY_FACTOR)))
    return validate_entity(
        {
            "time_budget_min_per_day": time_budget_min,
            "peak_hours": [9, 10, 11, 14, 15, 16],
            "env_constraints": [],
            "hard_constraints": [],
            "motivation_style": "pull",
            "difficulty_tolerance": 0.5,
            "novelty_preference": 0.5,
            "pace_preference": "cadence",
            "long_term_goal": goal_text.strip()[:240],
            "heat_level": 3,
            "preferred_session_length_min": session_length,
            "modality_preference": ["read", "video"],
            "deliverable_preferences": ["note"],
            "weekly_minimum_commitment_min": weekly_minimum,
            "goal_motivation": motivation,
        },
        Profile,
    )

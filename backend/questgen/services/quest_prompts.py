"""Prompt builders for the three generation stages (plus onboarding deep-dive).

Builders are pure: they serialize profile, constraint and catalog data into
an instruction string and never call the backend.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from questgen.services.contracts import Constraints, DailyCheckin, Derived, Profile, Quest, SkillAtom
from questgen.services.pattern_catalog import PATTERN_IDS, preferred_patterns, render_pattern_catalog

SKILL_MAP_SYSTEM = "You are a precise curriculum designer."
DAILY_QUESTS_SYSTEM = "You are a precise learning planner."
POLICY_CHECK_SYSTEM = "You are a careful policy checker."
DEEP_DIVE_SYSTEM = "You are an onboarding designer for a goal-tracking product."

MAX_SKILL_ATOMS_IN_PROMPT = 24
MAX_GOAL_CHARS = 240

SKILL_MAP_FORMAT = """{
  "skill_atoms": [
    {
      "id": "domain.topic.subtopic",
      "label": "short, plain name",
      "type": "concept|procedure|habit",
      "level": "intro|basic|intermediate|advanced",
      "bloom": "remember|understand|apply|analyze|evaluate|create",
      "prereq": ["..."],
      "representative_tasks": ["..."],
      "suggested_patterns": ["read_note_q", "build_micro", "config_verify"]
    }
  ]
}"""

DEEP_DIVE_FORMAT = """{
  "questions": [
    {"id": "goal_focus", "title": "What are you aiming for right now?",
     "options": [
       {"label": "Know and understand more", "value": "knowledge"},
       {"label": "Be able to do more", "value": "skill"},
       {"label": "Hit a result (a number or a ranking)", "value": "outcome"},
       {"label": "Build a habit that sticks", "value": "habit"}
     ], "memoEnabled": true},
    {"id": "goal_horizon", "title": "How long do you want to give it?",
     "options": [
       {"label": "About a month", "value": "1m"},
       {"label": "Roughly three months", "value": "3m"},
       {"label": "Half a year", "value": "6m"},
       {"label": "A year or more", "value": "12m+"}
     ], "memoEnabled": true},
    {"id": "goal_tradeoff", "title": "How do you like to move?",
     "options": [
       {"label": "Carefully, quality first", "value": "quality"},
       {"label": "Fast, momentum first", "value": "speed"},
       {"label": "Somewhere in between", "value": "balance"},
       {"label": "By trying things out", "value": "experiment"}
     ], "memoEnabled": true},
    {"id": "goal_evidence", "title": "How will you know you made it?",
     "options": [
       {"label": "A test or a score", "value": "credential_score"},
       {"label": "Something I built (demo or portfolio)", "value": "portfolio_demo"},
       {"label": "A real-world result (a sale, a delivery, production use)", "value": "realworld_result"},
       {"label": "A presentation or review", "value": "presentation_review"}
     ], "memoEnabled": true}
  ]
}"""


def _compact(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def build_skill_map_prompt(
    goal_text: str,
    current_level_tags: Optional[Sequence[str]] = None,
    priority_areas: Optional[Sequence[str]] = None,
) -> str:
    """Ask for a 12-18 atom skill map covering the next four weeks."""
    return (
        "Decompose the goal below into a skill map for the next 4 weeks of study, "
        "taking the learner's current level into account. Return JSON only.\n\n"
        "### OUTPUT FORMAT\n"
        f"{SKILL_MAP_FORMAT}\n\n"
        "### RULES\n"
        "- Return between 12 and 18 skill_atoms. Avoid vague wording; labels must be reusable across days.\n"
        "- Every atom needs 1-6 representative_tasks, each concrete (include numbers or conditions).\n"
        "- prereq lists ids of other atoms in this map.\n"
        f"- suggested_patterns may only use these ids: {', '.join(PATTERN_IDS)}.\n"
        "- Where content depends on fact-sensitive specifics (law names, regulations, proper nouns, figures), "
        "include a 'verify against a primary source' step in representative_tasks.\n\n"
        f"<GOAL_TEXT>\n{goal_text.strip()}\n</GOAL_TEXT>\n"
        f"<CURRENT_LEVEL_TAGS>{_compact(list(current_level_tags or []))}</CURRENT_LEVEL_TAGS>\n"
        f"<PRIORITY>{_compact(list(priority_areas or []))}</PRIORITY>"
    )


def build_daily_quests_prompt(
    profile: Profile,
    derived: Derived,
    skill_atoms: Sequence[SkillAtom],
    checkin: DailyCheckin,
) -> str:
    """Ask for today's 3-5 quests under the profile's binding constraints."""
    capacity_today = derived.daily_capacity_min + checkin.available_time_today_delta_min
    session = profile.preferred_session_length_min
    atoms = [atom.model_dump() for atom in list(skill_atoms)[:MAX_SKILL_ATOMS_IN_PROMPT]]
    preferred = ", ".join(preferred_patterns(profile.goal_motivation))
    return (
        "From the profile, derived envelope, check-in and skill map below, return today's 3-5 quests as JSON "
        '({"quests": [...], "rationale": [...]}).\n'
        "Choose each quest's pattern from these definitions:\n"
        f"{render_pattern_catalog()}\n\n"
        "### CONSTRAINTS\n"
        f"- Total minutes <= daily_capacity_min + available_time_today_delta_min ({capacity_today} min today).\n"
        f"- Keep minutes close to preferred_session_length_min ({session} min); within +/-5 min is fine.\n"
        f"- Respect novelty_ratio ({derived.novelty_ratio:.2f}) as the share of new material versus review.\n"
        "- Never give two consecutive quests the same pattern.\n"
        "- Respect env_constraints and hard_constraints (e.g. when audio is not allowed, "
        "replace spoken shadowing with silent copying).\n"
        "- Quests are terse task prompts, not tutorials. steps is optional; if present, key points only, at most 3.\n"
        f"- Set each quest's difficulty within +/-0.1 of difficulty_hint ({derived.difficulty_hint:.2f}).\n"
        f"- Prefer these patterns for this learner's motivation: {preferred}.\n"
        "- Every quest needs a deliverable, at least one completion criterion and at least one tag.\n\n"
        f"<PROFILE_JSON>\n{_compact(profile.model_dump())}\n</PROFILE_JSON>\n"
        f"<DERIVED_JSON>\n{_compact(derived.model_dump())}\n</DERIVED_JSON>\n"
        f"<CHECKINS>\n{_compact(checkin.model_dump())}\n</CHECKINS>\n"
        f"<SKILL_MAP_JSON>\n{_compact({'skill_atoms': atoms})}\n</SKILL_MAP_JSON>"
    )


def build_policy_check_prompt(quests_candidate: Sequence[Quest], constraints: Constraints) -> str:
    """Ask the backend to review and repair a drafted quest list."""
    candidate = {"quests": [quest.model_dump(exclude_none=True) for quest in quests_candidate]}
    return (
        "Review the quests[] below. Detect constraint violations, duplicated or over-concentrated patterns "
        "and modality imbalance, fix them, and return the final version as JSON.\n"
        "Keep each quest's original intent; adjust pattern and minutes only as much as needed.\n\n"
        "Input:\n"
        f"<QUESTS_CANDIDATE>{_compact(candidate)}</QUESTS_CANDIDATE>\n"
        f"<CONSTRAINTS>{_compact(constraints.model_dump())}</CONSTRAINTS>\n\n"
        "Output format:\n"
        "{\n"
        '  "quests": [ /* 3-5 quests */ ],\n'
        '  "rationale": ["one bullet per correction"]\n'
        "}"
    )


def build_goal_deep_dive_prompt(goal_text: Optional[str] = None) -> str:
    """Ask for the four onboarding questions that sharpen a goal statement."""
    goal = (goal_text or "(the user's goal statement)")[:MAX_GOAL_CHARS]
    return (
        "Given the goal text below, return the 4 gently worded questions that help the user picture "
        "their goal concretely, as JSON.\n"
        "Return question definitions only (no explanations or learning content). "
        "Keep the ids, the 4 options per question and the option values exactly as shown; "
        "you may adapt titles and labels to the goal.\n\n"
        "Format:\n"
        f"{DEEP_DIVE_FORMAT}\n\n"
        f"<GOAL_TEXT>\n{goal}\n</GOAL_TEXT>"
    )

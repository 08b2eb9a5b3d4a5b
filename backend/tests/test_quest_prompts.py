"""Tests for the prompt builders."""
from __future__ import annotations

from questgen.services.constraints import derive_constraints, derive_daily
from questgen.services.contracts import DailyCheckin, Profile, Quest, SkillAtom
from questgen.services.generation_backend import detect_prompt_topic
from questgen.services.pattern_catalog import PATTERN_IDS, preferred_patterns, render_pattern_catalog
from questgen.services.quest_prompts import (
    build_daily_quests_prompt,
    build_goal_deep_dive_prompt,
    build_policy_check_prompt,
    build_skill_map_prompt,
)


def _atom(index: int) -> SkillAtom:
    return SkillAtom(
        id=f"x.atom.{index:02d}",
        label=f"Atom {index}",
        type="procedure",
        level="basic",
        bloom="apply",
        representative_tasks=["Do it twice"],
        suggested_patterns=["build_micro"],
    )


def _quest(pattern: str, minutes: int) -> Quest:
    return Quest(
        title=f"{pattern} quest",
        pattern=pattern,
        minutes=minutes,
        deliverable="notes",
        criteria=["done"],
        tags=["t"],
    )


def test_skill_map_prompt_embeds_goal_and_levels() -> None:
    prompt = build_skill_map_prompt("  Pass the AWS SAA exam  ", ["ec2-basics"], ["networking"])

    assert "<GOAL_TEXT>\nPass the AWS SAA exam\n</GOAL_TEXT>" in prompt
    assert '<CURRENT_LEVEL_TAGS>["ec2-basics"]</CURRENT_LEVEL_TAGS>' in prompt
    assert '<PRIORITY>["networking"]</PRIORITY>' in prompt
    assert "between 12 and 18 skill_atoms" in prompt
    assert "primary source" in prompt
    assert detect_prompt_topic(prompt) == "skill_map"


def test_skill_map_prompt_lists_catalog_pattern_ids(monkeypatch) -> None:
    prompt = build_skill_map_prompt("Pass the AWS SAA exam")
    assert f"these ids: {', '.join(PATTERN_IDS)}." in prompt

    monkeypatch.setattr("questgen.services.quest_prompts.PATTERN_IDS", ("read_note_q", "feynman"))
    assert "these ids: read_note_q, feynman." in build_skill_map_prompt("Pass the AWS SAA exam")


def test_daily_prompt_carries_binding_constraints() -> None:
    profile = Profile(time_budget_min_per_day=60, goal_motivation="high", env_constraints=["no_audio"])
    derived = derive_daily(profile)
    checkin = DailyCheckin(available_time_today_delta_min=-10)

    prompt = build_daily_quests_prompt(profile, derived, [_atom(1)], checkin)

    assert "(38 min today)" in prompt
    assert "(20 min)" in prompt
    assert "Never give two consecutive quests the same pattern" in prompt
    assert "silent copying" in prompt
    assert "(0.65)" in prompt
    assert ", ".join(preferred_patterns("high")) in prompt
    assert render_pattern_catalog() in prompt
    assert all(pattern in prompt for pattern in PATTERN_IDS)
    assert '"no_audio"' in prompt
    assert detect_prompt_topic(prompt) == "daily_quests"


def test_daily_prompt_caps_skill_atoms() -> None:
    profile = Profile(time_budget_min_per_day=60)
    atoms = [_atom(index) for index in range(30)]

    prompt = build_daily_quests_prompt(profile, derive_daily(profile), atoms, DailyCheckin())

    assert "x.atom.23" in prompt
    assert "x.atom.24" not in prompt


def test_policy_prompt_serializes_candidate_and_constraints() -> None:
    profile = Profile(time_budget_min_per_day=60)
    constraints = derive_constraints(profile, derive_daily(profile))

    prompt = build_policy_check_prompt([_quest("read_note_q", 20), _quest("build_micro", 30)], constraints)

    assert '"total_minutes_max":48' in prompt
    assert '"minutes":30' in prompt
    assert '"steps"' not in prompt
    assert detect_prompt_topic(prompt) == "policy_check"


def test_deep_dive_prompt_truncates_goal() -> None:
    prompt = build_goal_deep_dive_prompt("g" * 400)

    assert "g" * 240 + "\n</GOAL_TEXT>" in prompt
    assert "g" * 241 not in prompt
    assert detect_prompt_topic(prompt) == "goal_deep_dive"


def test_deep_dive_prompt_without_goal() -> None:
    prompt = build_goal_deep_dive_prompt()

    assert "(the user's goal statement)" in prompt
    assert "goal_evidence" in prompt


def test_unmarked_prompt_topic_is_default() -> None:
    assert detect_prompt_topic("hello") == "default"

"""Tests for local quest list corrections."""
from __future__ import annotations

from collections import Counter
from typing import List

from questgen.services.contracts import Quest
from questgen.services.quest_repair import (
    avoid_consecutive_same_pattern,
    clamp_quests_to_session,
    clamp_to_session,
    decluster_patterns,
    scale_down_to_budget,
    total_minutes,
)


def _quest(pattern: str, minutes: int = 20, title: str | None = None) -> Quest:
    return Quest(
        title=title or f"{pattern} quest",
        pattern=pattern,
        minutes=minutes,
        deliverable="notes",
        criteria=["done"],
        tags=["test"],
    )


def _patterns(quests: List[Quest]) -> List[str]:
    return [quest.pattern for quest in quests]


def test_clamp_snaps_near_session_length() -> None:
    assert clamp_to_session(25, 20) == 20
    assert clamp_to_session(15, 20) == 20
    assert clamp_to_session(26, 20) == 26
    assert clamp_to_session(95, 20) == 90


def test_clamp_is_idempotent() -> None:
    quests = [_quest("read_note_q", 25), _quest("build_micro", 30), _quest("flashcards", 16)]

    once = clamp_quests_to_session(quests, 20)
    twice = clamp_quests_to_session(once, 20)

    assert [quest.minutes for quest in once] == [20, 30, 20]
    assert [quest.minutes for quest in twice] == [quest.minutes for quest in once]
    assert [quest.minutes for quest in quests] == [25, 30, 16]


def test_scale_down_keeps_list_within_budget() -> None:
    quests = [_quest("read_note_q", 50), _quest("build_micro", 40), _quest("flashcards", 40)]

    result = scale_down_to_budget(quests, 100)

    assert result.scaled
    assert result.total_before == 130
    assert [quest.minutes for quest in result.quests] == [38, 31, 31]
    assert total_minutes(result.quests) <= 100
    assert result.overshoot_min == 0


def test_scale_down_rounding_never_exceeds_budget() -> None:
    quests = [_quest("read_note_q", 81), _quest("build_micro", 81), _quest("flashcards", 38)]

    result = scale_down_to_budget(quests, 100)

    assert [quest.minutes for quest in result.quests] == [41, 40, 19]
    assert total_minutes(result.quests) == 100
    assert result.overshoot_min == 0


def test_scale_down_leaves_list_under_budget_alone() -> None:
    quests = [_quest("read_note_q", 20), _quest("build_micro", 20), _quest("flashcards", 20)]

    result = scale_down_to_budget(quests, 60)

    assert not result.scaled
    assert result.quests == quests


def test_scale_down_reports_overshoot_from_floor() -> None:
    quests = [_quest("read_note_q", 10), _quest("build_micro", 10), _quest("flashcards", 10), _quest("feynman", 10)]

    result = scale_down_to_budget(quests, 30)

    assert [quest.minutes for quest in result.quests] == [10, 10, 10, 10]
    assert result.overshoot_min == 10


def test_decluster_moves_later_quest_forward() -> None:
    quests = [_quest("read_note_q", title="A1"), _quest("read_note_q", title="A2"), _quest("build_micro", title="B")]

    result = decluster_patterns(quests)

    assert _patterns(result.quests) == ["read_note_q", "build_micro", "read_note_q"]
    assert [quest.title for quest in result.quests] == ["A1", "B", "A2"]
    assert result.moves == 1
    assert result.unresolved == 0


def test_decluster_moves_trailing_repeat_back() -> None:
    quests = [_quest("build_micro"), _quest("read_note_q"), _quest("read_note_q")]

    result = avoid_consecutive_same_pattern(quests)

    assert _patterns(result) == ["read_note_q", "build_micro", "read_note_q"]


def test_decluster_counts_unresolvable_pairs() -> None:
    quests = [_quest("read_note_q"), _quest("read_note_q"), _quest("read_note_q"), _quest("build_micro")]

    result = decluster_patterns(quests)

    assert _patterns(result.quests) == ["read_note_q", "build_micro", "read_note_q", "read_note_q"]
    assert result.unresolved == 1


def test_decluster_preserves_quest_multiset() -> None:
    quests = [
        _quest("flashcards", 15),
        _quest("flashcards", 25),
        _quest("build_micro", 30),
        _quest("build_micro", 20),
        _quest("feynman", 10),
    ]

    result = decluster_patterns(quests)

    assert Counter((q.pattern, q.minutes) for q in result.quests) == Counter((q.pattern, q.minutes) for q in quests)
    assert all(a.pattern != b.pattern for a, b in zip(result.quests, result.quests[1:]))

"""Deterministic local corrections applied to validated quest lists."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from questgen.services.contracts import Quest

logger = logging.getLogger(__name__)

SNAP_TOLERANCE_MIN = 5
QUEST_MIN_MINUTES = 10
QUEST_MAX_MINUTES = 90


@dataclass
class ScaleDownResult:
    quests: List[Quest]
    limit: int
    total_before: int
    total_after: int

    @property
    def scaled(self) -> bool:
        return self.total_after != self.total_before

    @property
    def overshoot_min(self) -> int:
        """Minutes still above the limit because of the per-quest floor."""
        return max(0, self.total_after - self.limit)


@dataclass
class DeclusterResult:
    quests: List[Quest]
    moves: int
    unresolved: int


def clamp_to_session(minutes: int, session: int) -> int:
    if abs(minutes - session) <= SNAP_TOLERANCE_MIN:
        return session
    return max(QUEST_MIN_MINUTES, min(QUEST_MAX_MINUTES, minutes))


def clamp_quests_to_session(quests: Sequence[Quest], session: int) -> List[Quest]:
    return [quest.model_copy(update={"minutes": clamp_to_session(quest.minutes, session)}) for quest in quests]


def total_minutes(quests: Sequence[Quest]) -> int:
    return sum(quest.minutes for quest in quests)


def scale_down_to_budget(quests: Sequence[Quest], total_minutes_max: int) -> ScaleDownResult:
    """Scale every quest proportionally when the list exceeds ``total_minutes_max``.

    Scaled minutes are floored, then the minutes lost to flooring go back one
    at a time to the quests with the largest fractional parts, so rounding
    alone never pushes the total past the limit. Each quest keeps at least
    ``QUEST_MIN_MINUTES``, so the result can still exceed the limit;
    ``overshoot_min`` reports by how much.
    """
    total = total_minutes(quests)
    if total <= total_minutes_max:
        return ScaleDownResult(quests=list(quests), limit=total_minutes_max, total_before=total, total_after=total)

    scale = total_minutes_max / total
    exact = [quest.minutes * scale for quest in quests]
    minutes = [max(QUEST_MIN_MINUTES, math.floor(value)) for value in exact]
    leftover = total_minutes_max - sum(minutes)
    if leftover > 0:
        # Quests held up by the floor already got more than their share.
        candidates = [index for index, value in enumerate(exact) if value >= QUEST_MIN_MINUTES]
        candidates.sort(key=lambda index: (-(exact[index] - math.floor(exact[index])), index))
        for index in candidates[:leftover]:
            minutes[index] += 1

    scaled = [quest.model_copy(update={"minutes": value}) for quest, value in zip(quests, minutes)]
    result = ScaleDownResult(
        quests=scaled,
        limit=total_minutes_max,
        total_before=total,
        total_after=total_minutes(scaled),
    )
    if result.overshoot_min:
        logger.warning(
            "Scaled quest list still exceeds budget by %s min (limit=%s, total=%s) due to the %s-minute floor",
            result.overshoot_min,
            total_minutes_max,
            result.total_after,
            QUEST_MIN_MINUTES,
        )
    return result


def decluster_patterns(quests: Sequence[Quest]) -> DeclusterResult:
    """Reorder quests so neighbours differ in pattern where that is possible.

    For each quest that repeats its predecessor's pattern, the nearest later
    quest with a different pattern is pulled in front of it. When none exists,
    the quest is moved back into the earliest already-placed gap whose
    neighbours both differ from it. If neither works the pair stays as is.
    Only the order changes.
    """
    ordered = list(quests)
    moves = 0
    unresolved = 0
    for index in range(1, len(ordered)):
        current = ordered[index]
        if current.pattern != ordered[index - 1].pattern:
            continue

        ahead = _nearest_different(ordered, index + 1, current.pattern)
        if ahead is not None:
            ordered.insert(index, ordered.pop(ahead))
            moves += 1
            continue

        slot = _free_slot(ordered[:index], current.pattern)
        if slot is not None:
            ordered.insert(slot, ordered.pop(index))
            moves += 1
            continue

        unresolved += 1
    return DeclusterResult(quests=ordered, moves=moves, unresolved=unresolved)


def avoid_consecutive_same_pattern(quests: Sequence[Quest]) -> List[Quest]:
    return decluster_patterns(quests).quests


def _nearest_different(quests: List[Quest], start: int, pattern: str) -> Optional[int]:
    for position in range(start, len(quests)):
        if quests[position].pattern != pattern:
            return position
    return None


def _free_slot(placed: List[Quest], pattern: str) -> Optional[int]:
    for slot in range(len(placed) + 1):
        before = placed[slot - 1].pattern if slot > 0 else None
        after = placed[slot].pattern if slot < len(placed) else None
        if before != pattern and after != pattern:
            return slot
    return None

"""Catalog of learning-activity patterns a quest can take."""
from __future__ import annotations

from typing import Dict, List, Tuple

PATTERN_DEFINITIONS: Dict[str, str] = {
    "read_note_q": "Read, jot the key points, then write and answer 3 questions of your own on the concepts.",
    "flashcards": "Make flashcards (term / definition / example), self-check 10 minutes later.",
    "build_micro": "Build the smallest finished artifact (short script, paragraph, diagram, one drill) with a clear done condition.",
    "config_verify": "Set up a configuration and prove it with a verification command or test; state the steps and expected result.",
    "debug_explain": "Break something on purpose (or take a broken case), explain why, then restore it; verbalize hypothesis and check.",
    "feynman": "Explain it to a layperson in 2 minutes, find the gaps, then take one action to close them.",
    "past_paper": "Work 3 representative or past exam questions; justify each answer and why the other options fail.",
    "socratic": "Question it in dialogue: position, counter-argument, rebuttal, to harden the reasoning.",
    "shadowing": "Shadow or copy along (speech or code); switch from spoken to silent copying when the environment requires it.",
    "retrospective": "Reflect on today's learning and bullet the single next move for tomorrow.",
}

PATTERN_IDS: Tuple[str, ...] = tuple(PATTERN_DEFINITIONS)

# Patterns to lean on first for each goal-motivation level.
MOTIVATION_PATTERN_PREFERENCES: Dict[str, Tuple[str, ...]] = {
    "low": ("read_note_q", "flashcards", "retrospective"),
    "mid": ("read_note_q", "build_micro", "feynman"),
    "high": ("build_micro", "config_verify", "socratic"),
}


def is_known_pattern(pattern: str) -> bool:
    return pattern in PATTERN_DEFINITIONS


def preferred_patterns(motivation: str) -> List[str]:
    """Return the preferred patterns for a motivation level (``mid`` when unknown)."""
    return list(MOTIVATION_PATTERN_PREFERENCES.get(motivation, MOTIVATION_PATTERN_PREFERENCES["mid"]))


def render_pattern_catalog() -> str:
    """Render the catalog as a bullet list for prompt embedding."""
    return "\n".join(f"- {pattern}: {definition}" for pattern, definition in PATTERN_DEFINITIONS.items())

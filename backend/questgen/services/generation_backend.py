"""Adapters that turn a prompt into backend text.

``GenerationBackend`` is the narrow interface the pipeline depends on. The
live adapter forwards to an OpenAI-compatible chat completion endpoint; the
canned adapter returns fixed, schema-valid payloads chosen from markers in
the prompt, for offline runs and tests. Neither adapter retries.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

import openai
from pydantic import BaseModel

from questgen.core.config import Settings
from questgen.observability.tracing import annotate, trace
from questgen.services.contracts import validate_entity
from questgen.services.errors import BackendError
from questgen.services.json_extraction import extract_first_json

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class GenerationBackend(ABC):
    """Send a prompt, get text back."""

    kind = "abstract"

    @abstractmethod
    def complete(
        self,
        user_text: str,
        *,
        system_text: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the raw completion text for ``user_text``."""

    def complete_structured(
        self,
        user_text: str,
        model: Type[ModelT],
        *,
        system_text: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> ModelT:
        """Complete, extract the first JSON payload and validate it against ``model``."""
        raw = self.complete(user_text, system_text=system_text, temperature=temperature)
        payload = extract_first_json(raw)
        return validate_entity(payload, model)


class OpenAIGenerationBackend(GenerationBackend):
    kind = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.3,
        max_tokens: int = 4000,
        timeout_s: float = 60.0,
        base_url: Optional[str] = None,
        client: Optional[openai.OpenAI] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self._client = client or openai.OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_s,
            max_retries=0,
        )

    def complete(
        self,
        user_text: str,
        *,
        system_text: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system_text:
            messages.append({"role": "system", "content": system_text})
        messages.append({"role": "user", "content": user_text})
        effective_temperature = self.temperature if temperature is None else temperature

        metadata = {"model": self.model, "prompt_chars": len(user_text), "temperature": effective_temperature}
        with trace("generation.complete", metadata=metadata) as span:
            try:
                completion = self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=effective_temperature,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout_s,
                )
            except openai.APITimeoutError as exc:
                raise BackendError(
                    f"Generation backend timed out after {self.timeout_s:.0f}s", status="timeout"
                ) from exc
            except openai.APIConnectionError as exc:
                raise BackendError(f"Generation backend unreachable: {exc}", status="connection") from exc
            except openai.APIStatusError as exc:
                raise BackendError(
                    f"Generation backend returned HTTP {exc.status_code}: {exc.message}",
                    status=exc.status_code,
                ) from exc
            except openai.OpenAIError as exc:
                raise BackendError(f"Generation backend error: {exc}") from exc

            if not completion.choices:
                raise BackendError("Generation backend returned no choices", status="empty_response")
            content = completion.choices[0].message.content or ""
            annotate(span, response_chars=len(content))
        logger.debug("Backend returned %s chars for a %s-char prompt", len(content), len(user_text))
        return content


@dataclass(frozen=True)
class CannedCall:
    system_text: Optional[str]
    user_text: str
    temperature: Optional[float]


class CannedGenerationBackend(GenerationBackend):
    """Deterministic stand-in keyed on prompt markers."""

    kind = "canned"

    def __init__(self, responses: Optional[Dict[str, str]] = None) -> None:
        self._responses = dict(canned_responses())
        self._responses.update(responses or {})
        self.calls: List[CannedCall] = []

    def complete(
        self,
        user_text: str,
        *,
        system_text: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        self.calls.append(CannedCall(system_text=system_text, user_text=user_text, temperature=temperature))
        topic = detect_prompt_topic(user_text)
        logger.debug("Canned backend answering %s prompt", topic)
        return self._responses[topic]


def detect_prompt_topic(prompt: str) -> str:
    """Classify a prompt by the markers the prompt builders embed."""
    if "<QUESTS_CANDIDATE>" in prompt:
        return "policy_check"
    if "<SKILL_MAP_JSON>" in prompt:
        return "daily_quests"
    if "goal_focus" in prompt:
        return "goal_deep_dive"
    if "<GOAL_TEXT>" in prompt:
        return "skill_map"
    return "default"


def create_generation_backend(config: Settings) -> Optional[GenerationBackend]:
    """Build the configured adapter, or ``None`` when the live backend has no key."""
    backend = config.generation_backend.lower()
    if backend == "canned":
        logger.info("Using canned generation backend")
        return CannedGenerationBackend()
    if backend == "openai":
        if not config.openai_api_key:
            logger.warning("OPENAI_API_KEY missing and canned backend disabled; quest generation is unavailable.")
            return None
        logger.info("Using OpenAI generation backend (model=%s)", config.openai_model)
        return OpenAIGenerationBackend(
            api_key=config.openai_api_key,
            model=config.openai_model,
            temperature=config.openai_temperature,
            max_tokens=config.openai_max_tokens,
            timeout_s=config.openai_timeout_s,
            base_url=config.openai_base_url,
        )
    raise ValueError(f"Unsupported generation backend: {config.generation_backend}. Supported: openai, canned")


def canned_responses() -> Dict[str, str]:
    skill_map = json.dumps({"skill_atoms": CANNED_SKILL_ATOMS}, indent=2)
    return {
        "skill_map": f"Here is the result:\n```json\n{skill_map}\n```\nHope that helps!",
        "daily_quests": json.dumps({"quests": CANNED_DAILY_QUESTS, "rationale": CANNED_DAILY_RATIONALE}),
        "policy_check": (
            "Reviewed the candidate list.\n"
            + json.dumps({"quests": CANNED_POLICY_QUESTS, "rationale": CANNED_POLICY_RATIONALE}, indent=2)
        ),
        "goal_deep_dive": json.dumps(CANNED_DEEP_DIVE),
        "default": json.dumps({"quests": CANNED_DAILY_QUESTS}),
    }


def _atom(
    atom_id: str,
    label: str,
    atom_type: str,
    level: str,
    bloom: str,
    prereq: List[str],
    tasks: List[str],
    patterns: List[str],
) -> Dict[str, Any]:
    return {
        "id": atom_id,
        "label": label,
        "type": atom_type,
        "level": level,
        "bloom": bloom,
        "prereq": prereq,
        "representative_tasks": tasks,
        "suggested_patterns": patterns,
    }


CANNED_SKILL_ATOMS: List[Dict[str, Any]] = [
    _atom("mobile.basics.components", "Core UI components", "concept", "intro", "understand", [],
          ["Explain what View and Text render in 3 sentences", "Build a screen with 2 Text nodes inside a View"],
          ["read_note_q", "flashcards"]),
    _atom("mobile.basics.props", "Props and composition", "concept", "basic", "apply", ["mobile.basics.components"],
          ["Write a Button component that takes 2 props", "Compose 3 Buttons into a toolbar"],
          ["build_micro", "feynman"]),
    _atom("mobile.state.local", "Local state", "concept", "basic", "apply", ["mobile.basics.props"],
          ["Implement a counter with useState", "Explain why state updates are asynchronous"],
          ["build_micro", "debug_explain"]),
    _atom("mobile.styles.flexbox", "Flexbox layout", "procedure", "basic", "apply", ["mobile.basics.components"],
          ["Lay out a 3-column row with justifyContent", "Make flashcards for 5 flex properties"],
          ["flashcards", "build_micro"]),
    _atom("mobile.nav.stack", "Stack navigation", "procedure", "basic", "apply", ["mobile.basics.props"],
          ["Configure a 2-screen stack navigator", "Pass one parameter between screens"],
          ["config_verify", "build_micro"]),
    _atom("mobile.data.fetch", "Fetching remote data", "procedure", "intermediate", "apply", ["mobile.state.local"],
          ["Fetch a JSON list and render it", "Show a loading indicator while waiting"],
          ["build_micro", "debug_explain"]),
    _atom("mobile.data.errors", "Error handling for requests", "procedure", "intermediate", "analyze",
          ["mobile.data.fetch"],
          ["Force a 500 response and display a retry button", "List 3 failure modes of a fetch call"],
          ["debug_explain", "socratic"]),
    _atom("mobile.state.context", "Shared state with context", "concept", "intermediate", "analyze",
          ["mobile.state.local"],
          ["Move a theme toggle into a context provider", "Explain when context re-renders consumers"],
          ["feynman", "build_micro"]),
    _atom("mobile.lists.performance", "List rendering performance", "concept", "advanced", "evaluate",
          ["mobile.data.fetch"],
          ["Render 1,000 rows with FlatList and measure frame drops", "Compare keyExtractor strategies"],
          ["debug_explain", "past_paper"]),
    _atom("mobile.testing.units", "Component tests", "procedure", "intermediate", "apply", ["mobile.basics.props"],
          ["Write 2 render tests for the Button component", "Verify the test fails when a prop is removed"],
          ["config_verify", "read_note_q"]),
    _atom("mobile.release.build", "Release builds", "procedure", "advanced", "create", ["mobile.testing.units"],
          ["Produce a signed release build", "Verify store requirements against the official store policy page"],
          ["config_verify", "retrospective"]),
    _atom("mobile.habit.review", "Weekly review habit", "habit", "intro", "remember", [],
          ["Write 3 bullets on what worked this week", "Pick one focus for next week"],
          ["retrospective"]),
]

CANNED_DAILY_QUESTS: List[Dict[str, Any]] = [
    {
        "title": "Core component reading sprint",
        "pattern": "read_note_q",
        "minutes": 25,
        "difficulty": 0.4,
        "deliverable": "One page of notes plus 3 self-made questions",
        "steps": ["Read the View and Text docs", "Note the key points", "Write and answer 3 questions"],
        "criteria": ["Can explain what View and Text render", "All 3 questions answered without notes"],
        "tags": ["components", "basics"],
    },
    {
        "title": "Build a counter screen",
        "pattern": "build_micro",
        "minutes": 30,
        "difficulty": 0.5,
        "deliverable": "A running counter screen",
        "steps": ["Add useState", "Wire increment and decrement buttons"],
        "criteria": ["Counter updates on every tap", "No warnings in the console"],
        "knowledge_check": [{"q": "Why does the screen re-render?", "a": "Because the state setter was called."}],
        "tags": ["state", "practice"],
    },
    {
        "title": "Flexbox property flashcards",
        "pattern": "flashcards",
        "minutes": 20,
        "difficulty": 0.45,
        "deliverable": "Five flashcards covering flex properties",
        "criteria": ["Each card has term, definition and example", "Self-check after 10 minutes scores 4/5"],
        "tags": ["layout"],
    },
]

CANNED_DAILY_RATIONALE = [
    "Moves from reading to building to recall",
    "Keeps every quest near the preferred session length",
]

CANNED_POLICY_QUESTS: List[Dict[str, Any]] = [
    dict(CANNED_DAILY_QUESTS[0]),
    dict(CANNED_DAILY_QUESTS[1]),
    dict(CANNED_DAILY_QUESTS[2], title="Flexbox property flashcards (tightened)"),
]

CANNED_POLICY_RATIONALE = [
    "Constraint check complete",
    "No repeated patterns",
    "Minutes balanced across quests",
]

CANNED_DEEP_DIVE: Dict[str, Any] = {
    "questions": [
        {
            "id": "goal_focus",
            "title": "What are you aiming for right now?",
            "options": [
                {"label": "Know and understand more", "value": "knowledge"},
                {"label": "Be able to do more", "value": "skill"},
                {"label": "Hit a result", "value": "outcome"},
                {"label": "Build a habit", "value": "habit"},
            ],
            "memoEnabled": True,
        },
        {
            "id": "goal_horizon",
            "title": "How long do you want to give it?",
            "options": [
                {"label": "About a month", "value": "1m"},
                {"label": "Roughly three months", "value": "3m"},
                {"label": "Half a year", "value": "6m"},
                {"label": "A year or more", "value": "12m+"},
            ],
            "memoEnabled": True,
        },
        {
            "id": "goal_tradeoff",
            "title": "How do you like to move?",
            "options": [
                {"label": "Quality first", "value": "quality"},
                {"label": "Speed first", "value": "speed"},
                {"label": "Balanced", "value": "balance"},
                {"label": "Experiment", "value": "experiment"},
            ],
            "memoEnabled": True,
        },
        {
            "id": "goal_evidence",
            "title": "How will you know you made it?",
            "options": [
                {"label": "A test or score", "value": "credential_score"},
                {"label": "Something I built", "value": "portfolio_demo"},
                {"label": "A real-world result", "value": "realworld_result"},
                {"label": "A presentation or review", "value": "presentation_review"},
            ],
            "memoEnabled": True,
        },
    ]
}

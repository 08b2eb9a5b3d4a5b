"""Tests for generation backend adapters and the backend factory."""
from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import openai
import pytest

from questgen.core.config import Settings
from questgen.services.contracts import QuestList
from questgen.services.errors import BackendError, ExtractionError, SchemaViolation
from questgen.services.generation_backend import (
    CannedGenerationBackend,
    OpenAIGenerationBackend,
    create_generation_backend,
)

_REQUEST = httpx.Request("POST", "https://api.test/v1/chat/completions")


class _FakeCompletions:
    def __init__(self, content: str | None = "ok", error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _backend(completions: _FakeCompletions) -> OpenAIGenerationBackend:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIGenerationBackend(api_key="sk-test", model="gpt-test", timeout_s=12.0, client=client)


def test_openai_backend_sends_system_and_user_messages() -> None:
    completions = _FakeCompletions(content="hello")
    backend = _backend(completions)

    text = backend.complete("plan my day", system_text="be precise", temperature=0.1)

    assert text == "hello"
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"] == [
        {"role": "system", "content": "be precise"},
        {"role": "user", "content": "plan my day"},
    ]
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 4000
    assert call["timeout"] == 12.0


def test_openai_backend_uses_default_temperature_and_handles_empty_content() -> None:
    completions = _FakeCompletions(content=None)
    backend = _backend(completions)

    assert backend.complete("plan my day") == ""
    assert completions.calls[0]["temperature"] == 0.3
    assert completions.calls[0]["messages"] == [{"role": "user", "content": "plan my day"}]


@pytest.mark.parametrize(
    "error,expected_status",
    [
        (openai.APITimeoutError(request=_REQUEST), "timeout"),
        (openai.APIConnectionError(request=_REQUEST), "connection"),
        (openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None), 429),
        (openai.AuthenticationError("bad key", response=httpx.Response(401, request=_REQUEST), body=None), 401),
    ],
)
def test_openai_backend_maps_transport_errors(error: Exception, expected_status: Any) -> None:
    backend = _backend(_FakeCompletions(error=error))

    with pytest.raises(BackendError) as excinfo:
        backend.complete("plan my day")

    assert excinfo.value.status == expected_status
    assert excinfo.value.is_timeout is (expected_status == "timeout")
    assert isinstance(excinfo.value.__cause__, openai.OpenAIError)


def test_openai_backend_rejects_response_without_choices() -> None:
    completions = _FakeCompletions()
    completions.create = lambda **kwargs: SimpleNamespace(choices=[])
    backend = _backend(completions)

    with pytest.raises(BackendError) as excinfo:
        backend.complete("plan my day")

    assert excinfo.value.status == "empty_response"
    assert excinfo.value.is_timeout is False


def test_canned_backend_records_calls_and_answers_by_topic() -> None:
    backend = CannedGenerationBackend()

    text = backend.complete("<GOAL_TEXT>\nLearn Rust\n</GOAL_TEXT>", system_text="sys")

    assert text.startswith("Here is the result:")
    assert backend.calls[0].system_text == "sys"
    assert backend.calls[0].user_text.startswith("<GOAL_TEXT>")


def test_complete_structured_raises_extraction_error() -> None:
    backend = CannedGenerationBackend(responses={"default": "Sorry, nothing today."})

    with pytest.raises(ExtractionError):
        backend.complete_structured("hello", QuestList)


def test_complete_structured_raises_schema_violation() -> None:
    backend = CannedGenerationBackend(responses={"default": '{"quests": []}'})

    with pytest.raises(SchemaViolation) as excinfo:
        backend.complete_structured("hello", QuestList)

    assert excinfo.value.entity == "QuestList"
    assert excinfo.value.field == "quests"


def test_complete_structured_returns_validated_model() -> None:
    quest_list = CannedGenerationBackend().complete_structured("hello", QuestList)

    assert [quest.pattern for quest in quest_list.quests] == ["read_note_q", "build_micro", "flashcards"]


def test_factory_builds_canned_backend() -> None:
    backend = create_generation_backend(Settings(generation_backend="canned"))

    assert isinstance(backend, CannedGenerationBackend)
    assert backend.kind == "canned"


def test_factory_returns_none_without_api_key() -> None:
    assert create_generation_backend(Settings(generation_backend="openai", openai_api_key=None)) is None


def test_factory_builds_openai_backend_with_key() -> None:
    backend = create_generation_backend(
        Settings(generation_backend="openai", openai_api_key="sk-test", openai_model="gpt-test")
    )

    assert isinstance(backend, OpenAIGenerationBackend)
    assert backend.model == "gpt-test"


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError):
        create_generation_backend(Settings(generation_backend="llama"))

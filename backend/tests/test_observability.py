"""Tests ensuring observability wiring is safe by default and traces carry context."""
from __future__ import annotations

import importlib

import pytest
from fastapi.testclient import TestClient

from questgen.core.config import Settings
from questgen.core.context import pipeline_stage_context, request_id_ctx_var
from questgen.observability import client as client_module
from questgen.observability import tracing


class _DummyTrace:
    def __init__(self, name=None, metadata=None, **kwargs):
        self.name = name
        self.metadata = metadata or {}
        self.error_info = None
        self.ended = False

    def update(self, metadata=None, error_info=None, **kwargs):
        if metadata:
            self.metadata.update(metadata)
        if error_info:
            self.error_info = error_info

    def end(self):
        self.ended = True


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs
        self.traces = []

    def trace(self, **kwargs):
        trace = _DummyTrace(name=kwargs.get("name"), metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def dummy_opik(monkeypatch):
    client_module.reset_opik_client()
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    client = client_module.init_opik(Settings(opik_enabled=True, opik_api_key="test-key", opik_project="questgen-test"))
    yield client
    client_module.reset_opik_client()


def test_app_import_succeeds_when_opik_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)

    import questgen.main as main_module

    reloaded_main = importlib.reload(main_module)

    assert hasattr(reloaded_main, "app")


def test_init_opik_without_key_disables_tracing() -> None:
    client_module.reset_opik_client()
    try:
        assert client_module.init_opik(Settings(opik_enabled=True, opik_api_key=None)) is None
    finally:
        client_module.reset_opik_client()


def test_init_opik_builds_client_for_project(dummy_opik) -> None:
    assert isinstance(dummy_opik, _DummyOpik)
    assert dummy_opik.kwargs["project_name"] == "questgen-test"
    assert client_module.get_opik_client() is dummy_opik


def test_trace_attaches_request_id_and_stage(dummy_opik) -> None:
    token = request_id_ctx_var.set("req-123")
    try:
        with pipeline_stage_context("skill_map"):
            with tracing.trace("quests.skill_map", metadata={"foo": "bar"}):
                pass
    finally:
        request_id_ctx_var.reset(token)

    recorded = dummy_opik.traces[0]
    assert recorded.name == "quests.skill_map"
    assert recorded.metadata == {"foo": "bar", "request_id": "req-123", "stage": "skill_map"}
    assert recorded.ended is True


def test_trace_records_error_and_reraises(dummy_opik) -> None:
    with pytest.raises(RuntimeError):
        with tracing.trace("quests.policy_check"):
            raise RuntimeError("boom")

    recorded = dummy_opik.traces[0]
    assert recorded.error_info == {"exception_type": "RuntimeError", "message": "boom"}
    assert recorded.ended is True


def test_app_serves_requests_with_opik_enabled(dummy_opik) -> None:
    from questgen.main import app

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200

    assert any(trace.name == "http.health_check" for trace in dummy_opik.traces)

"""Request-scoped context shared by logging and tracing."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
pipeline_stage_ctx_var: ContextVar[str | None] = ContextVar("pipeline_stage", default=None)


def get_request_id() -> str | None:
    """Return the current request id if available."""
    return request_id_ctx_var.get()


def get_pipeline_stage() -> str | None:
    """Return the pipeline stage currently executing in this context."""
    return pipeline_stage_ctx_var.get()


@contextmanager
def pipeline_stage_context(stage: str) -> Iterator[None]:
    """Bind ``stage`` for log records emitted inside the block."""
    token = pipeline_stage_ctx_var.set(stage)
    try:
        yield
    finally:
        pipeline_stage_ctx_var.reset(token)

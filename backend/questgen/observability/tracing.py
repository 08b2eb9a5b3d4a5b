"""Tracing utilities wrapping Opik."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from questgen.core.context import get_pipeline_stage, get_request_id
from questgen.observability import client as opik_client

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from opik.api_objects.trace.trace_client import Trace
else:  # pragma: no cover - typing helper
    Trace = object  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _trace_metadata(
    metadata: Optional[Dict[str, Any]],
    user_id: Optional[str],
    request_id: Optional[str],
) -> Dict[str, Any]:
    """Merge caller metadata with the ids bound to the current context."""
    merged = dict(metadata or {})
    context = {
        "user_id": str(user_id) if user_id else None,
        "request_id": request_id or get_request_id(),
        "stage": get_pipeline_stage(),
    }
    for key, value in context.items():
        if value:
            merged.setdefault(key, value)
    return merged


def _open(name: str, metadata: Dict[str, Any]) -> Optional["Trace"]:
    client = opik_client.get_opik_client()
    if not client:
        return None
    try:
        return client.trace(name=name, metadata=metadata or None)
    except Exception as exc:  # pragma: no cover - defensive guard
        logger.debug("Unable to start Opik trace %s: %s", name, exc)
        return None


def _record_error(opik_trace: "Trace", name: str, exc: BaseException) -> None:
    try:
        opik_trace.update(error_info={"exception_type": type(exc).__name__, "message": str(exc)})
    except Exception:  # pragma: no cover
        logger.debug("Failed to attach error info to Opik trace %s", name, exc_info=True)


@contextmanager
def trace(
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Iterator[Optional["Trace"]]:
    """
    Create an Opik trace context manager.

    The current request id and pipeline stage are attached to the metadata
    when present. When Opik is disabled or unavailable the context is a no-op.
    """
    opik_trace = _open(name, _trace_metadata(metadata, user_id, request_id))
    if opik_trace is None:
        yield None
        return

    try:
        yield opik_trace
    except Exception as exc:
        _record_error(opik_trace, name, exc)
        raise
    finally:
        try:
            opik_trace.end()
        except Exception:  # pragma: no cover
            logger.debug("Failed to close Opik trace %s cleanly", name, exc_info=True)


def annotate(span: Optional["Trace"], **metadata: Any) -> None:
    """Best-effort metadata update on an open trace."""
    if not span:
        return
    try:
        span.update(metadata=metadata)
    except Exception:  # pragma: no cover - best-effort
        logger.debug("Failed to annotate Opik trace", exc_info=True)

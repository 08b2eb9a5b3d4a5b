"""Error taxonomy for quest generation.

Every error carries a ``stage`` attribute. It is ``None`` when raised from a
standalone component and is filled in by the pipeline with the stage that was
running (``skill_map``, ``daily_quests``, ``policy_check`` or
``goal_deep_dive``) before the same exception is re-raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class QuestGenerationError(Exception):
    """Base class for all pipeline failures."""

    code = "quest_generation_error"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def context(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "stage": self.stage, "message": self.message}
        payload.update(self.context())
        return payload

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ExtractionError(QuestGenerationError):
    """No parseable structured payload in backend text."""

    code = "extraction_error"

    def __init__(self, message: str, *, excerpt: str = "", stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.excerpt = excerpt

    def context(self) -> Dict[str, Any]:
        return {"excerpt": self.excerpt}


@dataclass(frozen=True)
class FieldViolation:
    field: str
    constraint: str
    actual: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "constraint": self.constraint, "actual": _printable(self.actual)}


class SchemaViolation(QuestGenerationError):
    """Payload parsed but broke a field constraint of ``entity``."""

    code = "schema_violation"

    def __init__(
        self,
        entity: str,
        violations: List[FieldViolation],
        *,
        stage: Optional[str] = None,
    ) -> None:
        first = violations[0] if violations else FieldViolation(field="<root>", constraint="invalid", actual=None)
        message = (
            f"{entity}.{first.field} violates '{first.constraint}' "
            f"(got {_printable(first.actual)!r})"
        )
        if len(violations) > 1:
            message += f" and {len(violations) - 1} more violation(s)"
        super().__init__(message, stage=stage)
        self.entity = entity
        self.violations = violations or [first]
        self.field = first.field
        self.constraint = first.constraint
        self.actual = first.actual

    def context(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "field": self.field,
            "constraint": self.constraint,
            "actual": _printable(self.actual),
            "violations": [violation.to_dict() for violation in self.violations],
        }


class BackendError(QuestGenerationError):
    """Transport, auth or rate-limit failure from the generation backend."""

    code = "backend_error"

    def __init__(self, message: str, *, status: Any = None, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.status = status

    @property
    def is_timeout(self) -> bool:
        return self.status == "timeout"

    def context(self) -> Dict[str, Any]:
        return {"status": self.status}


class NotInitialized(QuestGenerationError):
    """Pipeline invoked without a configured generation backend."""

    code = "not_initialized"

    def __init__(self, message: str = "No generation backend is configured.", *, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)


def _printable(value: Any, limit: int = 200) -> Any:
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    text = value if isinstance(value, str) else repr(value)
    if len(text) > limit:
        return text[:limit] + "..."
    return text

"""Pull the first JSON payload out of free-form backend text."""
from __future__ import annotations

import json
import re
from typing import Any

from questgen.services.errors import ExtractionError

FENCE_PATTERN = re.compile(r"```(?:json)?[ \t]*\r?\n(.*?)\r?\n?```", re.IGNORECASE | re.DOTALL)
EXCERPT_CHARS = 120


def extract_first_json(text: str) -> Any:
    """Return the parsed payload embedded in ``text``.

    The body of the first fenced code block is preferred when one exists.
    From the first ``{`` or ``[`` the candidate runs to the last ``}`` or
    ``]``. No semantic validation happens here.
    """
    fence = FENCE_PATTERN.search(text or "")
    candidate = fence.group(1) if fence else (text or "")

    openings = [index for index in (candidate.find("{"), candidate.find("[")) if index >= 0]
    if not openings:
        raise ExtractionError("No JSON payload found in backend response", excerpt=_excerpt(text))
    start = min(openings)

    end = max(candidate.rfind("}"), candidate.rfind("]")) + 1
    if end <= start:
        raise ExtractionError("JSON payload in backend response is not closed", excerpt=_excerpt(candidate[start:]))

    payload = candidate[start:end].strip()
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ExtractionError(
            f"Backend response payload is not valid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})",
            excerpt=_excerpt(payload),
        ) from exc


def _excerpt(text: str | None) -> str:
    text = (text or "").strip()
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS] + "..."

"""FastAPI dependencies."""
from __future__ import annotations

from fastapi import Request

from questgen.services.quest_pipeline import QuestPipeline


def get_quest_pipeline(request: Request) -> QuestPipeline:
    """Return the pipeline built once at startup."""
    return request.app.state.quest_pipeline

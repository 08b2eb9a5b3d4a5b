"""Main FastAPI application for the quest generation service."""
from fastapi import FastAPI, Request

from questgen.api.routes.quests import router as quests_router
from questgen.core.config import settings
from questgen.core.logging import configure_logging
from questgen.core.middleware import RequestIDMiddleware
from questgen.observability.client import init_opik
from questgen.observability.tracing import trace
from questgen.services.generation_backend import create_generation_backend
from questgen.services.quest_pipeline import QuestPipeline

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(quests_router)
app.state.quest_pipeline = QuestPipeline(create_generation_backend(settings))


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict:
    """Report liveness plus whether a generation backend is configured."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        pipeline: QuestPipeline = request.app.state.quest_pipeline
        return {"status": "ok", **pipeline.diagnostics()}

"""Main FastAPI application for the Blob planning backend."""
from fastapi import FastAPI, Request

from blob.api.routes.goals import router as goals_router
from blob.api.routes.onboarding import router as onboarding_router
from blob.api.routes.schedules import router as schedules_router
from blob.api.routes.system import router as system_router
from blob.api.routes.tasks import router as tasks_router
from blob.api.routes.users import router as users_router
from blob.core.config import settings
from blob.core.errors import register_exception_handlers
from blob.core.logging import configure_logging
from blob.core.middleware import RequestContextMiddleware
from blob.observability.client import flush_opik, init_opik
from blob.observability.tracing import trace

configure_logging(log_level=settings.log_level, debug=settings.debug)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestContextMiddleware)
register_exception_handlers(app)
app.include_router(users_router)
app.include_router(onboarding_router)
app.include_router(goals_router)
app.include_router(tasks_router)
app.include_router(schedules_router)
app.include_router(system_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.on_event("shutdown")
async def shutdown_observability() -> None:
    flush_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}

"""FastAPI application."""

from fastapi import FastAPI

from backend.app.api.errors import install_error_handlers
from backend.app.api.routes.comments import router as comments_router
from backend.app.api.routes.events import router as events_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.presence import router as presence_router
from backend.app.api.routes.sessions import router as sessions_router
from backend.app.api.routes.versions import router as versions_router
from backend.app.config import get_settings
from backend.app.utils.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level, settings.log_format)

app = FastAPI(title="Collaboration API", version="0.1.0")
install_error_handlers(app)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(sessions_router)
app.include_router(presence_router)
app.include_router(events_router)
app.include_router(versions_router)
app.include_router(comments_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Collaboration API", "version": "0.1.0"}

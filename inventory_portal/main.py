"""Inventory Portal: reminder engine FastAPI application.

Hosts the administrator endpoints of the reminder workflow and runs the
periodic reminder cycle for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api import api_router
from .core import async_session_factory, close_db, get_settings, init_db
from .jobs import start_reminder_scheduler, stop_reminder_scheduler
from .schemas import ErrorResponse
from .services import ReminderScheduler

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup - skip init_db in production (tables already exist)
    if settings.environment != "production":
        await init_db()

    app.state.reminder_scheduler = ReminderScheduler(async_session_factory, settings)
    job_scheduler = None
    if settings.reminder_scheduler_enabled:
        job_scheduler = start_reminder_scheduler(app.state.reminder_scheduler, settings)
    else:
        logger.info("Reminder scheduler disabled via settings")

    yield

    # Shutdown
    if job_scheduler is not None:
        await stop_reminder_scheduler(job_scheduler)
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Inventory Portal - Reminder Engine

    - **Reminder cycle**: finds organizations whose inventory validation has
      stalled for a configurable number of business days.
    - **Approval queue**: every reminder waits for an administrator's
      approval before it is emailed.
    - **Audit trail**: every queued, sent and rejected reminder is logged.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "inventory_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )

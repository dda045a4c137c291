import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core import errors
from .core.config import Settings, get_settings
from .core.logging import init_logging, request_context_middleware
from .db.migrate import apply_migrations
from .routers import (
    expense_shares,
    expenses,
    health,
    invites,
    itinerary,
    locations,
    members,
    messages,
    notifications,
    polls,
    trips,
    users,
)
from .services.chat import ChatHub
from .services.scheduler import scheduler_loop

logger = logging.getLogger("trip_planner")


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB, scheduler off). Falls back to the
    cached get_settings().
    """
    settings = settings_override or get_settings()
    if settings.db_path is None:
        settings.init_post_load()
    init_logging(debug=settings.debug)

    # Schema must exist before the first request
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        logger.exception("failed to apply migrations on startup")
        raise

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if settings.scheduler_enabled:
            task = asyncio.create_task(scheduler_loop(settings))
        yield
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("scheduler stopped")

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat_hub = ChatHub()

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(errors.AppError, errors.app_error_handler)
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(sqlite3.IntegrityError, errors.integrity_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers; invite token routes must win over /api/trips/{trip_id}
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(invites.router)
    app.include_router(trips.router)
    app.include_router(members.router)
    app.include_router(expenses.router)
    app.include_router(expense_shares.router)
    app.include_router(polls.router)
    app.include_router(itinerary.router)
    app.include_router(locations.router)
    app.include_router(messages.router)
    app.include_router(messages.chat_router)
    app.include_router(notifications.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version}

    return app


app = create_app()

"""
DepotPlan API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from api.deps import get_db
from core.config import get_settings
from core.exceptions import NotFoundError, PlanningError, StateConflictError, ValidationError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("DepotPlan API starting up", version=settings.app_version)
    yield
    logger.info("DepotPlan API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-warehouse demand planning for paint distribution",
    lifespan=lifespan,
)


@app.exception_handler(PlanningError)
async def planning_error_handler(request: Request, exc: PlanningError):
    """Map the planning error taxonomy onto HTTP status codes."""
    body: dict = {"detail": str(exc)}
    if isinstance(exc, ValidationError):
        status_code = 422
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, StateConflictError):
        status_code = 409
        body["current_status"] = exc.current_status
    else:
        status_code = 400
    logger.info("api.planning_error", path=request.url.path, status_code=status_code, error=str(exc))
    return JSONResponse(status_code=status_code, content=body)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import (
    activity,
    alerts,
    forecasts,
    inventory,
    planning,
    recommendations,
)

app.include_router(planning.router)
app.include_router(recommendations.router)
app.include_router(forecasts.router)
app.include_router(alerts.router)
app.include_router(inventory.router)
app.include_router(activity.router)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a database round trip; 503 when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("api.health_db_unreachable", error=str(exc))
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable"})
    return {"status": "healthy", "database": "ok", "version": settings.app_version}

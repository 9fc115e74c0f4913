"""Main application entry point: the Kroger gateway FastAPI app."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .database import check_database_health, dispose_engine, init_db, list_tables
from .errors import KrogerError, MealPlanError
from .routes import router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def validate_environment():
    """Validate all required environment variables on startup."""
    try:
        settings = get_settings()
        logger.info("Environment variables validated successfully")
        return settings
    except ValidationError as e:
        logger.error("ERROR: Missing or invalid environment variables:")
        logger.error(str(e))
        sys.exit(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    # Startup
    logger.info("Starting Kroger gateway...")

    db_url = os.environ.get("DATABASE_URL", "")
    logger.info(f"DATABASE_URL set: {'YES' if db_url else 'NO'}")

    settings = validate_environment()
    if not settings.kroger_configured:
        logger.warning("Kroger credentials missing; Kroger endpoints will fail until configured")

    init_db()
    logger.info(f"Tables in database: {list_tables()}")

    logger.info("Kroger gateway started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Kroger gateway...")
    dispose_engine()
    logger.info("Kroger gateway shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Kroger Gateway",
    description="Kroger OAuth, product search and cart building for the meal planner",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Responses
# =============================================================================


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(400, f"Invalid request: {location} {message}".strip())


@app.exception_handler(KrogerError)
async def kroger_exception_handler(request: Request, exc: KrogerError):
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(MealPlanError)
async def meal_plan_exception_handler(request: Request, exc: MealPlanError):
    logger.error(f"Meal planner failed on {request.url.path}: {exc}")
    return error_response(exc.status_code, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return error_response(500, "Internal server error")


app.include_router(router)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint.

    Verifies database connection and returns status.
    """
    db_healthy = check_database_health()

    if db_healthy:
        return {
            "status": "healthy",
            "database": "connected",
        }
    else:
        return {
            "status": "unhealthy",
            "database": "disconnected",
        }


@app.get("/", tags=["health"])
async def root():
    """Root endpoint."""
    return {
        "name": "Kroger Gateway",
        "status": "running",
        "version": "1.0.0",
    }

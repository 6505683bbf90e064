"""
CoachLedger HTTP service.

Run locally with:
    uvicorn src.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import financials, health, lessons
from .config.settings import get_settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)

DESCRIPTION = """
Lesson billing and income reporting for independent coaches.

Book private or group lessons, track what each client owes, and pull a
yearly income summary with quarterly tax estimates or a CSV for your
accountant.

Every request carries `X-API-Key`; the coach is named by `X-Coach-Id`.
"""

# (router, prefix, tag)
ROUTERS = (
    (health.router, "/health", "Health"),
    (lessons.router, "/api/v1/lessons", "Lessons"),
    (financials.router, "/api/v1/financials", "Financials"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    store = "in-memory" if settings.snowflake_mock_mode else "snowflake"
    logger.info(
        "CoachLedger API starting",
        extra={"version": settings.api_version, "store": store},
    )

    missing = settings.validate_required_fields()
    if missing:
        # requests will fail at the store until this is fixed; /health/ready reports it
        logger.error("Incomplete configuration", extra={"missing_fields": missing})

    yield

    logger.info("CoachLedger API stopped")


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and answer with a generic 500."""
    logger.error(
        "Unhandled exception",
        extra={"path": request.url.path, "method": request.method, "error": str(exc)},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


def create_app() -> FastAPI:
    """Build the FastAPI application from the current settings."""
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=DESCRIPTION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    for router, prefix, tag in ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])

    app.add_exception_handler(Exception, unhandled_error)

    @app.get("/", include_in_schema=False)
    async def index():
        return {"service": settings.api_title, "version": settings.api_version, "docs": "/docs"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=get_settings().log_level.lower(),
    )

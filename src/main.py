"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.deps import container
from src.api.v1 import analytics, health, issues, projects, review
from src.core.config import settings
from src.core.constants import API_PREFIX, REQUEST_ID_HEADER
from src.core.exceptions import IssueTrackerError
from src.core.logging import LogContext, get_logger, setup_logging
from src.core.security import generate_request_id

# Initialize logging
setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "Starting ReviewGate tracker",
        app_name=settings.app_name,
        env=settings.app_env,
        backend=settings.database.backend,
    )
    await container.startup()

    yield

    logger.info("Shutting down ReviewGate tracker")
    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="ReviewGate Tracker API",
    description="Issue tracking with a mandatory Review gate, an audit log and closure analytics",
    version=APP_VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Tag every log line of a request with its id and echo the id back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    with LogContext(request_id=request_id, method=request.method, path=request.url.path):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Exception handlers
@app.exception_handler(IssueTrackerError)
async def issue_tracker_error_handler(
    request: Request,
    exc: IssueTrackerError,
) -> JSONResponse:
    """Handle typed application errors."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(issues.router, prefix=API_PREFIX, tags=["Issues"])
app.include_router(review.router, prefix=API_PREFIX, tags=["Review"])
app.include_router(analytics.router, prefix=API_PREFIX, tags=["Analytics"])
app.include_router(projects.router, prefix=API_PREFIX, tags=["Projects"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": APP_VERSION,
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "ReviewGate Tracker API",
        "version": APP_VERSION,
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "issues": f"{API_PREFIX}/teams/{{team_id}}/issues",
            "review": f"{API_PREFIX}/teams/{{team_id}}/issues/{{issue_id}}/review",
            "activities": f"{API_PREFIX}/teams/{{team_id}}/issues/{{issue_id}}/activities",
            "aep_summary": f"{API_PREFIX}/teams/{{team_id}}/aep-summary",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )

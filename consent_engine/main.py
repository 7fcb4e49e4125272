"""Consent Engine: Main FastAPI Application.

Consent-based decision workflows (topics, polls and elections) embedded
in chat messages, with a durable record of every outcome.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import close_db, get_settings, init_db
from .schemas import ErrorDetail, ErrorResponse
from .services import (
    ConcurrencyError,
    EngineError,
    InvalidChoiceSetError,
    InvalidInputError,
    InvalidPhaseError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotEligibleError,
    NotFoundError,
    ToolClosedError,
    ToolMismatchError,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Checked in order; subclasses inherit their parent's status
ERROR_STATUS: list[tuple[type[EngineError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (NotEligibleError, status.HTTP_403_FORBIDDEN),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (InvalidInputError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidChoiceSetError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ToolMismatchError, status.HTTP_409_CONFLICT),
    (InvalidPhaseError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ToolClosedError, status.HTTP_409_CONFLICT),
    (ConcurrencyError, status.HTTP_409_CONFLICT),
]


def status_for(exc: EngineError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")

    # Tables are managed by migrations in production
    if settings.environment != "production":
        await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Consent Engine API

    Structured decision workflows embedded in chat messages.

    ### Tools

    - **Topic**: proposition, clarification, consent round, resolution
      (accepted, modified or withdrawn).
    - **Voting**: single, approval or ranked (Borda) polls with an optional
      deadline and anonymous results.
    - **Election**: nomination, discussion, change round and consent round
      filling a role in a team.

    Every finished workflow writes a durable, hashed decision record.

    ### Authentication

    All endpoints require a bearer JWT whose `sub` is the member id and
    `org` the organization id.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    """Map domain errors to their HTTP status and the shared error body."""
    status_code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=exc.code, message=str(exc), details=[]).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests in the shared error body, one detail per field."""
    details = [
        ErrorDetail(
            field=".".join(str(part) for part in err["loc"]),
            message=err["msg"],
            code=err["type"],
        )
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error=InvalidInputError.code,
            message="Request validation failed",
            details=details,
        ).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")

    message = "An unexpected error occurred"
    if settings.debug:
        message = f"{message}: {str(exc)[:200]}"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="internal_error", message=message, details=[]).model_dump(),
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
        "consent_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )

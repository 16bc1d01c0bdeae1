"""Main FastAPI application for Job Copilot.

Entry point for the application. Configures:
- FastAPI app with settings
- CORS middleware
- Exception handlers
- Route registration
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_app_config, get_cors_config, get_settings, setup_logging
from dependencies import get_database, get_model_provider, get_vector_store
from errors import CopilotError
from middleware import RateLimitMiddleware
from responses import ResponseCode, code_for_exception, error_dict, get_http_status
from router import router as api_router

# Setup logging
setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup
    logger.info("Starting Job Copilot...")

    settings = get_settings()
    logger.info("Environment: %s", settings.environment)
    logger.info("LLM Provider: %s (model %s)", settings.llm_provider, settings.llm_model)
    logger.info("Prompt Version: %s", settings.prompt_version)

    database = get_database()
    if settings.database_auto_create:
        await database.create_all()

    if settings.vector_search_enabled:
        logger.info(
            "Vector search enabled (collection %s, embeddings %s)",
            settings.qdrant_collection,
            settings.embedding_model,
        )
    else:
        logger.info("Vector search disabled; answering from structured evidence only")

    logger.info("Job Copilot started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Job Copilot...")
    await get_model_provider().aclose()
    vector_store = get_vector_store()
    if vector_store is not None:
        await vector_store.close()
    await database.dispose()


# Create FastAPI app with lifespan
app_config = get_app_config()
app = FastAPI(lifespan=lifespan, **app_config)

# Add CORS middleware
cors_config = get_cors_config()
app.add_middleware(CORSMiddleware, **cors_config)

# Add rate limiting middleware (protects the chat endpoint)
app.add_middleware(RateLimitMiddleware)


# =============================================================================
# Middleware
# =============================================================================


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests for tracing."""
    request_id = str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(CopilotError)
async def copilot_exception_handler(
    request: Request,
    exc: CopilotError,
) -> JSONResponse:
    """Handle domain errors raised by services."""
    request_id = getattr(request.state, "request_id", None)
    code = code_for_exception(exc)
    status_code = get_http_status(code)

    if status_code >= 500:
        logger.error("[%s] %s: %s", request_id, type(exc).__name__, exc)
        # Internal details stay in the logs
        message = None if code != ResponseCode.UPSTREAM_ERROR else str(exc)
    else:
        logger.info("[%s] %s: %s", request_id, type(exc).__name__, exc)
        message = str(exc) or None

    return JSONResponse(
        status_code=status_code,
        content=error_dict(code=code, custom_message=message, request_id=request_id),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", None)

    # Drop raw inputs; they may hold text JSON cannot encode (lone surrogates)
    errors = [
        {key: value for key, value in error.items() if key not in ("input", "ctx")}
        for error in exc.errors()
    ]
    first_error = errors[0] if errors else {}
    field_name = first_error.get("loc", ["unknown"])[-1]

    error_response = error_dict(
        code=ResponseCode.VALIDATION_ERROR,
        custom_message=f"Validation failed for field '{field_name}'",
        error_details={"validation_errors": jsonable_encoder(errors)},
        request_id=request_id,
    )

    return JSONResponse(status_code=422, content=error_response)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", None)

    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    code_map = {
        401: ResponseCode.UNAUTHENTICATED,
        404: ResponseCode.NOT_FOUND,
        405: ResponseCode.VALIDATION_ERROR,
        429: ResponseCode.LLM_RATE_LIMIT,
    }

    response_code = code_map.get(exc.status_code, ResponseCode.INTERNAL_ERROR)

    error_response = error_dict(
        code=response_code,
        custom_message=str(exc.detail),
        request_id=request_id,
    )

    return JSONResponse(status_code=exc.status_code, content=error_response)


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unhandled exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception("Unhandled exception: %s", exc)

    error_response = error_dict(
        code=ResponseCode.INTERNAL_ERROR,
        custom_message="An unexpected error occurred",
        error_details={"exception_type": type(exc).__name__},
        request_id=request_id,
    )

    return JSONResponse(status_code=500, content=error_response)


# =============================================================================
# Routes
# =============================================================================

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - shows API info."""
    return {
        "name": "Job Copilot",
        "description": "Job-scoped assistant with cited answers",
        "docs": "/api/docs",
        "health": "/api/health",
    }


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

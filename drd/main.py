"""
DRD Approval & Incentive Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from drd.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from drd.api.v1 import router as api_v1_router
from drd.config import get_settings
from drd.database import close_db, engine, init_db
from drd.logging_config import configure_logging, get_logger
from drd.orchestration.errors import WorkflowError
from drd.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)

_HTTP_CODES = {
    status.HTTP_401_UNAUTHORIZED: "not_authenticated",
    status.HTTP_403_FORBIDDEN: "permission_denied",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    DRD Approval & Incentive Service

    Tracks IPR applications and research contributions from filing through
    DRD review, approval and payout, and prices the incentive for each.

    ## Invariants

    1. Status changes only through named transitions, guarded by a conditional update
    2. Review history is append-only
    3. An approved incentive is never silently overwritten
    4. Notification failures never undo a transition
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: CORS is added last so it wraps everything
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> Dict[str, str]:
    """CORS headers for error responses, which can bypass the CORS middleware."""
    origin = request.headers.get("origin") or ""
    allow_origin = origin if origin in settings.cors_origins else settings.cors_origins[0]
    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": "true",
    }
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
    return headers


def _error(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
    **extra: Any,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message, "code": code}
    if details:
        content["details"] = details
    content.update(extra)
    req_id = getattr(request.state, "request_id", None)
    if req_id and status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=status_code, content=content, headers=_cors_headers(request))


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Domain errors carry their own status and machine code."""
    return _error(request, exc.status_code, exc.message, exc.code, exc.details)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    response = _error(request, exc.status_code, message, _HTTP_CODES.get(exc.status_code, "http_error"))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "validation_error",
        errors=errors,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: logged with traceback, detail only shown in debug."""
    logger.exception("Unhandled exception: %s", exc)
    message = str(exc) if settings.debug else "Internal server error"
    return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, message, "internal_error")


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    database = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        database = "unavailable"
    return HealthResponse(version=settings.version, database=database)


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

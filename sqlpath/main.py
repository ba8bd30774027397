"""
sqlpath/main.py
Application entry point: environment, logging, middleware, error mapping
and route registration
"""
import os
import uuid
import logging
from pathlib import Path
from contextlib import asynccontextmanager

# ============================================
# Load .env FIRST, before any sqlpath imports read the environment
# ============================================
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
load_dotenv(dotenv_path=ENV_FILE)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

if not os.getenv("GEMINI_API_KEY"):
    logger.warning("GEMINI_API_KEY not found - content generation and grading will be unavailable")

if not os.getenv("JWT_SECRET_KEY"):
    logger.warning("JWT_SECRET_KEY not set - using the development signing key")

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.errors import RateLimitExceeded

from sqlpath import __version__
from sqlpath.config.feature_flags import feature_flags
from sqlpath.database import init_db, close_db, seed_plan_defaults, AsyncSessionLocal
from sqlpath.errors import (
    ErrorCode,
    APIError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    InvalidStateError,
    PaymentRequiredError,
    RateLimitError,
    ServiceUnavailableError,
    InternalError,
    get_error_summary,
)
from sqlpath.exceptions import (
    SQLPathException,
    ResourceNotFoundError,
    LessonLimitReachedError,
    FeatureNotInPlanError,
    ModuleNotStartedError,
    ContentNotReadyError,
    NotCompletedError,
    ChallengePayloadError,
    ContentServiceError,
    CertificateError,
    InvalidRequestError,
)
from sqlpath.routes import router
from sqlpath.routes.auth import limiter

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    try:
        await init_db()
        async with AsyncSessionLocal() as session:
            await seed_plan_defaults(session)
        logger.info("Database ready")
    except Exception as e:
        logger.error(f"Failed to initialise database: {str(e)}")
        raise

    yield

    logger.info("Shutting down application...")
    await close_db()


app = FastAPI(
    title="SQLPath API",
    description="SQL learning platform: courses, practice track, progress and plans",
    version=__version__,
    docs_url="/docs" if ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# Attach rate limiter to the app
app.state.limiter = limiter

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
origins.extend(origin.strip() for origin in allowed_origins if origin.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


# ============================================
# Error mapping
# ============================================

def to_api_error(exc: SQLPathException) -> APIError:
    """Map a service-layer exception onto the uniform API error body."""
    if isinstance(exc, LessonLimitReachedError):
        return PaymentRequiredError(
            exc.message,
            code=ErrorCode.LESSON_LIMIT_REACHED,
            details={
                "course_id": exc.course_id,
                "module_id": exc.module_id,
                "started_in_course": exc.started_in_course,
                "limit": exc.limit,
                "tier": exc.tier,
            }
        )
    if isinstance(exc, FeatureNotInPlanError):
        return PaymentRequiredError(
            exc.message,
            code=ErrorCode.FEATURE_NOT_IN_PLAN,
            details={"feature": exc.feature, "tier": exc.tier}
        )
    if isinstance(exc, ResourceNotFoundError):
        return NotFoundError(exc.resource, exc.identifier)
    if isinstance(exc, ModuleNotStartedError):
        return ForbiddenError(exc.message, code=ErrorCode.MODULE_NOT_STARTED, details={"module_id": exc.module_id})
    if isinstance(exc, ContentNotReadyError):
        return InvalidStateError(exc.message, code=ErrorCode.CONTENT_NOT_READY)
    if isinstance(exc, NotCompletedError):
        return InvalidStateError(exc.message, code=ErrorCode.NOT_COMPLETED)
    if isinstance(exc, ChallengePayloadError):
        return BadRequestError(exc.message, code=ErrorCode.INVALID_CHALLENGE_PAYLOAD, details={"errors": exc.errors})
    if isinstance(exc, InvalidRequestError):
        return BadRequestError(exc.message)
    if isinstance(exc, ContentServiceError):
        return ServiceUnavailableError(
            exc.message,
            code=ErrorCode.AI_SERVICE_ERROR,
            details={"retryable": exc.retryable}
        )
    if isinstance(exc, CertificateError):
        return ServiceUnavailableError(
            exc.message,
            code=ErrorCode.CERTIFICATE_SERVICE_ERROR,
            details={"step": exc.step}
        )
    return InternalError(exc.message)


@app.exception_handler(SQLPathException)
async def domain_exception_handler(request: Request, exc: SQLPathException):
    api_error = to_api_error(exc)
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return api_error.to_response()


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit hit on {request.url.path}: {exc.detail}")
    return RateLimitError(str(exc.detail)).to_response()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = [
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request validation failed",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": error_details}
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")

    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Error",
            "message": str(exc.detail),
            "code": ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_INPUT
        },
        headers=exc.headers,
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Invalid value on {request.url.path}: {str(exc)}")
    return BadRequestError(str(exc)).to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return InternalError(
        "An unexpected error occurred. Please try again later.",
        log_id=log_id
    ).to_response()


# ============================================
# Routes
# ============================================

@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": ENVIRONMENT,
        "gemini_configured": bool(os.getenv("GEMINI_API_KEY")),
        "features": feature_flags.get_all_flags(),
        "version": __version__
    }


@app.get("/api/errors/health", tags=["Health"])
async def error_handling_health():
    return get_error_summary()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "SQLPath API",
        "version": __version__,
        "docs": "/docs" if ENVIRONMENT == "development" else None
    }


app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("sqlpath.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=ENVIRONMENT == "development")

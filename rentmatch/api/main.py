import logging
from contextlib import asynccontextmanager

from arq import create_pool
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rentmatch.api.deps import limiter
from rentmatch.api.responses import create_error_response, create_success_response
from rentmatch.core.config import get_settings
from rentmatch.core.exceptions import (
    MatchingError,
    MatchNotFoundError,
    PoolTransitionError,
    PropertyNotFoundError,
    RequestNotFoundError,
)
from rentmatch.services.matching.trust import HttpTrustClassifier

settings = get_settings()

logger = logging.getLogger(__name__)

__all__ = ["create_success_response", "create_error_response", "app", "create_app"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

@asynccontextmanager
async def lifespan(app: FastAPI):

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    from rentmatch.workers.main import get_redis_settings

    app.state.redis = None
    try:
        app.state.redis = await create_pool(get_redis_settings())
    except Exception as e:
        logger.warning(f"Redis unavailable, re-scans will not be queued: {e}")

    app.state.trust_classifier = None
    if settings.trust_service_url:
        app.state.trust_classifier = HttpTrustClassifier(
            settings.trust_service_url,
            timeout=settings.trust_service_timeout_seconds,
        )

    logger.info(f"{settings.app_name} {settings.app_version} started")

    yield

    if app.state.trust_classifier is not None:
        await app.state.trust_classifier.close()
    if app.state.redis is not None:
        await app.state.redis.close()

def create_app() -> FastAPI:

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Rental request matching and scoring engine",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.limiter = limiter

    _configure_error_handlers(app)

    _include_routers(app)

    return app

_NOT_FOUND_ERRORS = (RequestNotFoundError, PropertyNotFoundError, MatchNotFoundError)

def _configure_error_handlers(app: FastAPI) -> None:

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with consistent format."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            errors.append({
                "field": field,
                "message": error["msg"],
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response(
                code="VALIDATION_ERROR",
                message="Invalid input data",
                details=errors,
            ),
        )

    @app.exception_handler(MatchingError)
    async def matching_exception_handler(
        request: Request, exc: MatchingError
    ) -> JSONResponse:
        if isinstance(exc, _NOT_FOUND_ERRORS):
            status_code, code = status.HTTP_404_NOT_FOUND, "NOT_FOUND"
        elif isinstance(exc, PoolTransitionError):
            status_code, code = status.HTTP_409_CONFLICT, "INVALID_TRANSITION"
        else:
            status_code, code = status.HTTP_400_BAD_REQUEST, "MATCHING_ERROR"

        return JSONResponse(
            status_code=status_code,
            content=create_error_response(code=code, message=str(exc)),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred" if not settings.debug else str(exc),
            ),
        )

def _include_routers(app: FastAPI) -> None:

    from rentmatch.api.v1.router import api_router

    app.include_router(api_router, prefix=settings.api_prefix)

app = create_app()

@app.get("/health", tags=["Health"])
async def health_check() -> dict:

    return create_success_response(data={"status": "healthy"})

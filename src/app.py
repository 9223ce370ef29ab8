"""AutoHaul API: TMS webhook intake and on-demand order reconciliation."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.v1 import v1_router
from src.config import settings
from src.database.engine import engine
from src.database.session import get_db
from src.exceptions import AppException
from src.middleware.request_id import RequestIdMiddleware
from src.modules.reconciliation.router import limiter
from src.modules.tms.client import close_tms_client
from src.schemas.responses import ErrorBody, ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AutoHaul API starting (environment=%s)", settings.environment)
    yield
    await close_tms_client()
    await engine.dispose()


def error_response(
    request: Request, status_code: int, code: str, message: str, details: list | None = None
) -> JSONResponse:
    """Render the shared error envelope, tagged with the caller's request id."""
    body = ErrorResponse(
        error=ErrorBody(
            code=code,
            message=message,
            details=details or [],
            request_id=getattr(request.state, "request_id", "unknown"),
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _register_exception_handlers(application: FastAPI) -> None:
    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
        return error_response(request, exc.status_code, exc.code, exc.message, exc.details)

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return error_response(request, 422, "VALIDATION_ERROR", "Validation failed", details)

    @application.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return error_response(request, 429, "RATE_LIMITED", str(exc.detail))

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s", request.url.path)
        return error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")


def create_app() -> FastAPI:
    application = FastAPI(
        title="AutoHaul Order Reconciliation API",
        description="Merges TMS order snapshots into local orders and drives order notifications.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )
    # slowapi reads the limiter from app state
    application.state.limiter = limiter
    application.add_middleware(RequestIdMiddleware)
    application.include_router(v1_router)
    _register_exception_handlers(application)

    @application.get("/health")
    async def health_check(session: AsyncSession = Depends(get_db)) -> dict:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "ok"}

    return application


app = create_app()

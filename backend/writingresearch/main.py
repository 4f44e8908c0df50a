from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from writingresearch.api.routers import admin, sessions, system
from writingresearch.auth import AdminAuthenticator
from writingresearch.config import settings
from writingresearch.errors import ConflictError, NotFoundError, PreconditionError, ValidationError, WritingError
from writingresearch.observability import (
    configure_logging,
    normalize_request_id,
    reset_request_id,
    sanitize_for_logging,
    set_request_id,
)
from writingresearch.service import WritingService
from writingresearch.storage import StorageError
from writingresearch.version import APP_VERSION

logger = logging.getLogger("writingresearch.api")

API_PREFIX = "/api"

_ERROR_STATUS: dict[type[WritingError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    PreconditionError: 409,
    ConflictError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("application_startup", extra={"event": "application_startup", "environment": settings.app_env})
    app.state.settings = settings
    app.state.service = WritingService(settings)
    app.state.admin_auth = AdminAuthenticator(settings)
    app.state.ready_cache = {}
    yield
    app.state.service.close()
    logger.info("application_shutdown", extra={"event": "application_shutdown"})


def create_app() -> FastAPI:
    cors_origins = settings.cors_origins_list
    if settings.cors_allow_credentials and any(origin == "*" for origin in cors_origins):
        raise RuntimeError("Invalid CORS_ORIGINS: wildcard '*' is not allowed when credentials are enabled.")

    app = FastAPI(title=settings.app_name, version=APP_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key", settings.request_id_header],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = normalize_request_id(request.headers.get(settings.request_id_header))
        request.state.request_id = request_id
        token = set_request_id(request_id)
        started = time.perf_counter()

        logger.info(
            "request_started",
            extra={
                "event": "request_started",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": sanitize_for_logging(dict(request.query_params)),
            },
        )

        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[settings.request_id_header] = request_id
            logger.info(
                "request_completed",
                extra={
                    "event": "request_completed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
            return response
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.exception(
                "request_failed",
                extra={
                    "event": "request_failed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": elapsed_ms,
                },
            )
            raise
        finally:
            reset_request_id(token)

    @app.exception_handler(WritingError)
    async def writing_error_handler(_: Request, exc: WritingError) -> JSONResponse:
        status_code = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 400)
        content: dict[str, object] = {"detail": exc.message, "error": exc.code}
        if isinstance(exc, PreconditionError):
            content["missing"] = exc.missing
        logger.info(
            "workflow_rejected",
            extra={"event": "workflow_rejected", "error": exc.code, "status_code": status_code},
        )
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(StorageError)
    async def storage_error_handler(_: Request, exc: StorageError) -> JSONResponse:
        logger.error("storage_failed", extra={"event": "storage_failed", "error": str(exc)})
        return JSONResponse(status_code=503, content={"detail": str(exc), "error": "storage_error"})

    app.include_router(system.router)
    app.include_router(sessions.router, prefix=API_PREFIX)
    app.include_router(admin.router, prefix=f"{API_PREFIX}/admin")
    return app


app = create_app()

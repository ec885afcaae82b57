"""
Meeting Roster API Server - REST + SSE for the directory web client.
"""
# ruff: noqa: S104
# S104: Development server binding (guarded by __name__ check)

import logging
import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.admin_router import admin_router
from api.auth import auth_router
from api.directory_router import directory_router
from api.services import Services
from api.sse_router import sse_router
from roster import config
from roster import db as db_module
from roster.errors import (
    AuthError,
    ExtractionError,
    InputQualityError,
    InvalidCredentialsError,
    MissingCredentialsError,
    NotFoundError,
    ReconciliationError,
    RosterError,
    StorageError,
)
from roster.observability import CorrelationIdMiddleware, configure_logging, get_request_id

logger = logging.getLogger(__name__)

# Most specific first.
ERROR_STATUS: list[tuple[type[RosterError], int]] = [
    (ReconciliationError, 503),
    (StorageError, 503),
    (NotFoundError, 404),
    (InputQualityError, 422),
    (MissingCredentialsError, 503),
    (ExtractionError, 502),
    (InvalidCredentialsError, 401),
    (AuthError, 403),
]


def status_for(exc: RosterError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


async def roster_error_handler(request: Request, exc: RosterError) -> JSONResponse:
    """Map the roster error taxonomy onto HTTP responses."""
    status = status_for(exc)
    content = {"detail": str(exc), "error_code": type(exc).__name__}
    request_id = get_request_id()
    if request_id:
        content["request_id"] = request_id
    if isinstance(exc, ReconciliationError) and exc.result is not None:
        content["result"] = exc.result.to_dict()

    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status}: {exc}")

    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse(status_code=status, content=content, headers=headers)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Pass `services` to pin the database path / extractor (tests); otherwise
    they are built from the environment on first request.
    """
    app = FastAPI(
        title="Meeting Roster API",
        description="Attendance sheets in, member directory out",
        version="1.0.0",
    )
    app.state.services = services

    # CORS - ROSTER_CORS_ORIGINS is a comma-separated list, * in development
    cors_origins = (
        ["*"]
        if config.CORS_ORIGINS == "*"
        else [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(RosterError, roster_error_handler)

    app.include_router(auth_router, prefix="/api")
    app.include_router(directory_router, prefix="/api")
    app.include_router(admin_router, prefix="/api/admin")
    app.include_router(sse_router, prefix="/api")

    @app.get("/api/health")
    def health():
        """Liveness plus a quick database integrity check."""
        db_path = services.db_path if services else db_module.get_db_path()
        ok, message = db_module.integrity_check(db_path)
        return {
            "status": "healthy" if ok else "error",
            "db": message,
            "schema_version": db_module.SCHEMA_VERSION,
        }

    return app


app = create_app()


# ==== Main ====


def main():
    """Run the server."""
    configure_logging(config.LOG_LEVEL, config.LOG_JSON)
    port = int(os.environ.get("PORT", 8420))
    host = os.environ.get("HOST", "0.0.0.0")
    logger.info(f"=== Meeting Roster API on {host}:{port} ===")
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()

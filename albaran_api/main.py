import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from starlette.background import BackgroundTask

from .auth.router import router as auth_router
from .config import settings
from .db import Base, engine
from .errors import ServiceError
from .logging import setup_logging, RequestIdMiddleware
from .routes.clients import router as clients_router
from .routes.delivery_notes import router as delivery_notes_router
from .routes.files import router as files_router
from .routes.projects import router as projects_router
from .services.alerts import format_alert, send_slack_alert

# Models must be imported before create_all
from .models import models  # noqa: F401


logger = structlog.get_logger(__name__)


def _error_response(request: Request, status_code: int, code: str, exc: Exception) -> JSONResponse:
    background = None
    if status_code >= 500:
        logger.error("request_failed", method=request.method, path=request.url.path, status=status_code, code=code, error=str(exc))
        background = BackgroundTask(send_slack_alert, format_alert(request.method, request.url.path, status_code, exc))
    return JSONResponse(status_code=status_code, content={"detail": code}, background=background)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        return _error_response(request, exc.status_code, exc.code, exc)

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        return _error_response(request, 500, "DATABASE_ERROR", exc)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        return _error_response(request, 500, "INTERNAL_SERVER_ERROR", exc)

    app.include_router(auth_router)
    app.include_router(clients_router)
    app.include_router(projects_router)
    app.include_router(delivery_notes_router)
    app.include_router(files_router)

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "API de gestión de albaranes"

    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("tables_checked", tables=len(Base.metadata.tables))

    return app


app = create_app()

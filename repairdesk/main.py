import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .context import build_context
from .db_models import TicketDB
from .deps import init_db
from .errors import AppError, PersistenceError, to_body
from .logging_config import ACCESS_LOGGER, configure_logging
from .routes import customers, public, tech, tickets

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(ACCESS_LOGGER)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def _first_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)
    ctx = build_context(settings)

    app = FastAPI(
        title="Repair Desk",
        description="Repair shop ticketing: intake, status tracking, log journal and public lookup.",
        version="1.0.0",
    )
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log_and_headers(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        for key, value in SECURITY_HEADERS.items():
            response.headers.setdefault(key, value)
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000"
        access_logger.info(
            "%s %s %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={"duration_ms": round((time.perf_counter() - started) * 1000, 1)},
        )
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=to_body(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_error(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("storage error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=to_body(PersistenceError()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(tech.router, prefix="/api/tech", tags=["Technicians"])
    app.include_router(public.router, prefix="/api/public", tags=["Public"])
    app.include_router(public.router, prefix="/api/tickets/public", tags=["Public"])
    app.include_router(tickets.router, prefix="/api/tickets", tags=["Tickets"])
    app.include_router(customers.router, prefix="/api/customers", tags=["Customers"])

    if settings.upload_backend == "local":
        app.mount("/uploads", StaticFiles(directory=str(settings.upload_dir), check_dir=False), name="uploads")

    @app.get("/")
    def health():
        with ctx.session_factory() as db:
            count = db.query(TicketDB).count()
        return {"status": "ok", "tickets": count}

    @app.on_event("startup")
    def startup_event():
        if settings.upload_backend == "local":
            settings.upload_dir.mkdir(parents=True, exist_ok=True)
        init_db(ctx)
        logger.info("repair desk started", extra={"environment": settings.environment})

    @app.on_event("shutdown")
    def shutdown_event():
        ctx.close()

    return app


app = create_app()

"""
Main FastAPI application per employee-contacts.

Espone l'API contatti dipendenti (api/routers/employees.py) e l'health check.
Engine e record store vengono creati allo startup e vivono in app.state.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import employees
from core.config import ServiceConfig, get_config
from core.database import check_connection, create_engine_for
from core.employee_store import EmployeeStore
from core.logger import get_correlation_id, set_request_context, setup_colored_logging

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """
    Crea l'applicazione FastAPI.

    Args:
        config: Configurazione (default: singleton da get_config)
    """
    config = config or get_config()
    config.validate_config()

    app = FastAPI(title="Employee Contacts", version=config.service_version)
    app.state.config = config
    app.state.store = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(employees.router)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Propaga o genera il correlation id della richiesta."""
        correlation_id = set_request_context(
            correlation_id=request.headers.get(CORRELATION_HEADER) or None,
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            f"[API] Unhandled error on {request.method} {request.url.path} "
            f"(correlation_id={get_correlation_id()}): {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"errors": [{
                "code": "Server.UnexpectedError",
                "description": "Errore interno del server.",
            }]},
        )

    @app.on_event("startup")
    async def startup_event():
        """Inizializza engine e record store al startup"""
        try:
            engine = create_engine_for(config.database_url, config.db_busy_timeout_sec)
            store = EmployeeStore(engine)
            await store.initialize()
            app.state.store = store
            logger.info(f"[STARTUP] {config.service_name} {config.service_version} ready")
        except Exception as e:
            logger.error(f"[STARTUP] Error during startup: {e}", exc_info=True)
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        store = app.state.store
        if store is not None:
            await store.close()
            app.state.store = None
            logger.info("[SHUTDOWN] Database engine disposed")

    @app.get("/health")
    async def health_check():
        """Health check del servizio con informazioni su database e schema"""
        store = app.state.store
        timestamp = datetime.now(timezone.utc).isoformat()

        if store is None or not store.ready:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "service": config.service_name,
                    "error": "store not initialized",
                    "timestamp": timestamp,
                },
            )

        db_ok = await check_connection(store.engine)
        total = await store.count()
        columns = await store.known_columns()

        healthy = db_ok and not total.is_error and not columns.is_error
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "service": config.service_name,
                "version": config.service_version,
                "timestamp": timestamp,
                "database": "connected" if db_ok else "error",
                "employees": total.value,
                "extra_columns": columns.value,
                "endpoints": {
                    "list": "/api/employee?page=1&page_size=10",
                    "get_by_name": "/api/employee/{name}",
                    "upload": "/api/employee",
                    "update": "/api/employee/{name}",
                },
            },
        )

    return app


setup_colored_logging(get_config().service_name, get_config().log_level)
app = create_app()

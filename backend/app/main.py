# backend/app/main.py

"""
Punto de entrada principal del backend de finanzas.

Aquí definimos:
- La instancia de FastAPI.
- CORS.
- Traducción de errores de negocio (FinanzasError) a JSON.
- Endpoints base: /, /health, /ready.
- Routers de negocio (api/v1): cuentas, movimientos bancarios,
  movimientos de caja, préstamos y pagos.

IMPORTANTE:
- La configuración llega por variables de entorno / .env (core.config).
- El logging se prepara una sola vez en el arranque.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import FinanzasError
from backend.app.core.logging_config import setup_logging
from backend.app.db import models  # noqa: F401  (registra las tablas en Base.metadata)
from backend.app.db.base import Base
from backend.app.db.session import engine, get_db

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 1) Generador de operation_id únicos
# ---------------------------------------------------------------------------
def custom_generate_unique_id(route: APIRoute) -> str:
    """
    Genera un operation_id estable y único para OpenAPI.

    - Patrón: <tag>_<route.name>
    """
    tag_prefix = route.tags[0] if route.tags else "default"
    return f"{tag_prefix}_{route.name}"


# ---------------------------------------------------------------------------
# 2) Arranque (lifespan)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque del backend.

    - Configura logging.
    - Crea tablas si BOOTSTRAP_CREATE_ALL (entornos locales / tests).
    - Comprueba conectividad con la BD principal (engine).
    """
    setup_logging(settings.LOG_LEVEL)
    logger.info("[startup] env=%s", settings.ENV)

    if settings.BOOTSTRAP_CREATE_ALL:
        Base.metadata.create_all(bind=engine)
        logger.info("[startup] tablas creadas/verificadas")

    try:
        with engine.connect() as conn:
            conn.execute(sa_text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("[startup] Error al comprobar la BD")

    yield

    logger.info("[shutdown] cerrando conexiones")
    engine.dispose()


# ---------------------------------------------------------------------------
# 3) Crear la app FastAPI
# ---------------------------------------------------------------------------
app = FastAPI(
    lifespan=lifespan,
    title="Finanzas API",
    version="0.1.0",
    description="Cuentas bancarias, caja integrada y préstamos con cronograma de pagos.",
    generate_unique_id_function=custom_generate_unique_id,
)


# ---------------------------------------------------------------------------
# 4) CORS
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# 5) Errores
# ---------------------------------------------------------------------------
@app.exception_handler(FinanzasError)
async def finanzas_error_handler(request: Request, exc: FinanzasError) -> JSONResponse:
    """
    Errores de negocio -> status_code de la clase + cuerpo legible.

    {"detail": "Saldo insuficiente...", "error": "InsufficientFundsError"}
    """
    if exc.status_code >= 500:
        logger.error("[api] %s %s -> %s", request.method, request.url.path, exc.message)
    else:
        logger.info("[api] %s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("[api] error de BD en %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Error de base de datos", "error": type(exc).__name__},
    )


# ---------------------------------------------------------------------------
# 6) Endpoints básicos
# ---------------------------------------------------------------------------
@app.get("/", tags=["core"])
def root() -> dict:
    """Endpoint raíz de la API."""
    return {"message": "Finanzas backend is running"}


@app.get("/health", tags=["core"])
def health_simple() -> dict:
    """
    Healthcheck simple:
    - servidor vivo (sin tocar BD).
    """
    return {"status": "ok"}


@app.get("/ready", tags=["core"])
def ready(db: Session = Depends(get_db)) -> dict:
    """
    Readiness check:
    - servidor vivo + BD accesible
    """
    try:
        db.execute(sa_text("SELECT 1"))
        return {"status": "ok", "db": "reachable"}
    except SQLAlchemyError as e:
        logger.warning("[ready] BD no accesible: %s", e)
        return {"status": "error", "db": "unreachable", "detail": str(e)}


# ---------------------------------------------------------------------------
# 7) Routers de negocio (v1)
# ---------------------------------------------------------------------------
from backend.app.api.v1 import (  # noqa: E402
    cuentas_router,
    movimientos_bancarios_router,
    movimientos_caja_router,
    pagos_router,
    prestamos_router,
)

API_V1 = "/api/v1"

app.include_router(cuentas_router.router,               prefix=API_V1)
app.include_router(movimientos_bancarios_router.router, prefix=API_V1)
app.include_router(movimientos_caja_router.router,      prefix=API_V1)
app.include_router(prestamos_router.router,             prefix=API_V1)
app.include_router(pagos_router.router,                 prefix=API_V1)

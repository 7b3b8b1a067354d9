# backend/app/core/config.py
"""
Configuración central del backend de finanzas.

Objetivos del diseño:
1) Evitar credenciales "hardcodeadas" en código.
2) Tener UNA fuente de verdad para la BD en runtime (DATABASE_URL).
3) Normalizar la URL de Postgres:
   - driver psycopg (no psycopg2)
   - sslmode=require
   Las URLs sqlite se respetan tal cual (tests y ejecución local).
4) Concentrar los parámetros de negocio que pueden variar por entorno
   (tasa de mora por defecto, días de gracia, día de pago...).
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def _strip_wrapping_quotes(value: str) -> str:
    """
    Elimina comillas envolventes si el usuario las puso en el .env.
    Ej: '"abc"' -> 'abc'
    """
    v = (value or "").strip()
    if len(v) >= 2 and ((v[0] == v[-1] == '"') or (v[0] == v[-1] == "'")):
        return v[1:-1].strip()
    return v


def _ensure_psycopg_driver(url: str) -> str:
    """
    Fuerza a usar psycopg3 en SQLAlchemy:
    - postgresql://...                -> postgresql+psycopg://...
    - postgresql+psycopg2://...       -> postgresql+psycopg://...
    """
    u = url.strip()
    u = re.sub(r"^postgresql\+psycopg2://", "postgresql+psycopg://", u)
    u = re.sub(r"^postgresql://", "postgresql+psycopg://", u)
    return u


def _append_query_param(url: str, key: str, value: str) -> str:
    """
    Añade un query param si no existe ya.
    """
    if re.search(rf"(^|[?&]){re.escape(key)}=", url):
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{key}={value}"


def _csv_to_list(value: str) -> List[str]:
    """
    Convierte 'a,b,c' -> ['a','b','c'] ignorando vacíos.
    """
    v = (value or "").strip()
    if not v:
        return []
    return [x.strip() for x in v.split(",") if x.strip()]


def is_sqlite_url(url: str) -> bool:
    return (url or "").strip().lower().startswith("sqlite")


class Settings(BaseSettings):
    """
    Ajustes de la aplicación.

    Nota:
    - BaseSettings lee variables de entorno y valida tipos.
    - Todo llega como string; Pydantic convierte a int/bool/Decimal.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---- entorno general
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ---- seguridad / JWT (solo se decodifica: el login vive fuera)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # ---- CORS (CSV: "http://a,http://b")
    CORS_ORIGINS: str = ""

    # ---- base de datos
    DATABASE_URL: Optional[str] = None
    DB_USE_NULLPOOL: bool = False

    # ---- reglas de negocio
    # Tasa de mora diaria en % (0.033% diario)
    MORA_TASA_DIARIA_DEFAULT: Decimal = Decimal("0.033")
    # fecha_vencimiento = fecha_programada + DIAS_GRACIA_PAGO
    DIAS_GRACIA_PAGO: int = 30
    DIA_PAGO_DEFAULT: int = 15
    # Una cuenta con movimientos en este rango no se puede eliminar
    DIAS_MOVIMIENTOS_RECIENTES: int = 30
    DIAS_PROXIMOS_VENCER: int = 30
    CODIGO_MAX_REINTENTOS: int = 3

    # ---- arranque
    BOOTSTRAP_CREATE_ALL: bool = False

    @property
    def cors_origins_list(self) -> List[str]:
        return _csv_to_list(self.CORS_ORIGINS)

    def resolve_database_url(self) -> str:
        """
        Devuelve la URL final de BD.

        - sqlite -> sin tocar.
        - postgres -> driver psycopg + sslmode=require.
        - vacía -> error explícito.
        """
        chosen = _strip_wrapping_quotes(self.DATABASE_URL or "")
        if not chosen:
            raise RuntimeError("No hay URL de base de datos. Define DATABASE_URL.")

        if is_sqlite_url(chosen):
            return chosen

        chosen = _ensure_psycopg_driver(chosen)
        chosen = _append_query_param(chosen, "sslmode", "require")
        return chosen


# Instancia global
settings = Settings()

# backend/app/utils/id_utils.py

"""
Utilidades para la generación de IDs y CÓDIGOS.

Objetivo:
- Tener un único sitio donde se definan los patrones de identificadores
  (prefijos, longitud, segmento de fecha, relleno con ceros).
- Evitar duplicar lógica en cada servicio.

Dos familias:

1) IDs internos (clave primaria):
   - generate_random_id: <prefix><aleatorio>, sin consultar la BD.
     La colisión es muy improbable y, si ocurre, la frena la PK.

2) Códigos legibles por usuario (CTA001, PREST002, ING20250101001...):
   - generar_codigo: busca el código más alto del usuario para
     <prefijo>[<yyyymmdd>], incrementa y rellena con ceros.
     Si la consulta o el parseo fallan, NO aborta: devuelve un código
     derivado del timestamp (codigo_fallback).
   - guardar_con_codigo: inserta el registro dentro de un SAVEPOINT.
     La restricción UNIQUE (user_id, codigo) es la que manda: si dos
     altas simultáneas calculan el mismo número, la segunda recibe
     IntegrityError, se regenera el código y se reintenta.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import date
from typing import Callable, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import AlreadyExistsError

logger = logging.getLogger(__name__)

# Alfabetos que reutilizaremos
UPPER_ALNUM = string.ascii_uppercase + string.digits

T = TypeVar("T")


# ============================================================
# IDs internos
# ============================================================

def random_code(length: int = 8, *, alphabet: str = UPPER_ALNUM) -> str:
    """
    Genera un código aleatorio de `length` caracteres.

    Ejemplo:
        random_code(6) -> 'A3Z91B'
    """
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_random_id(prefix: str, *, length: int = 10) -> str:
    """
    ID del estilo <prefix><codigo>.

    Ejemplo:
        generate_random_id("MOVBAN-") -> 'MOVBAN-A1B2C3D4E5'
    """
    return f"{prefix}{random_code(length=length)}"


def generate_cuenta_id() -> str:
    return generate_random_id("CUENTA-")


def generate_movimiento_bancario_id() -> str:
    return generate_random_id("MOVBAN-")


def generate_movimiento_caja_id() -> str:
    return generate_random_id("MOVCAJA-")


def generate_prestamo_id() -> str:
    return generate_random_id("PRESTAMO-")


def generate_pago_id() -> str:
    return generate_random_id("PAGOFIN-")


def generate_transferencia_id() -> str:
    return generate_random_id("TRF-", length=12)


def generar_numero_operacion(prefijo: str) -> str:
    """
    Número de operación por defecto: <prefijo>-<timestamp ms>-<4 aleatorios>.

    Ejemplo:
        generar_numero_operacion("PAY") -> 'PAY-1719843200123-K3P9'
    """
    return f"{prefijo}-{int(time.time() * 1000)}-{random_code(4)}"


# ============================================================
# Códigos secuenciales por usuario
# ============================================================

def segmento_fecha(fecha: Optional[date]) -> str:
    """2025-03-07 -> '20250307'; None -> ''."""
    return fecha.strftime("%Y%m%d") if fecha else ""


def codigo_fallback(prefijo: str, fecha: Optional[date] = None) -> str:
    """
    Código de emergencia: <prefijo>[<fecha>]<6 dígitos del timestamp ms><1 aleatorio>.

    Siempre es más largo que un código secuencial del mismo prefijo, así
    que no interfiere con la búsqueda del máximo.
    """
    ms = int(time.time() * 1000)
    return f"{prefijo}{segmento_fecha(fecha)}{ms % 1_000_000:06d}{secrets.randbelow(10)}"


def siguiente_secuencia(ultimo: Optional[str], base: str, ancho: int) -> str:
    """
    Calcula el siguiente código a partir del último existente.

    - ultimo None            -> <base>000..1
    - ultimo 'PREST007'      -> 'PREST008'
    - sufijo no numérico     -> ValueError
    - secuencia agotada      -> ValueError
    """
    n = 1
    if ultimo:
        sufijo = ultimo[len(base):]
        if not sufijo.isdigit():
            raise ValueError(f"Sufijo no numérico en código {ultimo!r}")
        n = int(sufijo) + 1
    if n >= 10 ** ancho:
        raise ValueError(f"Secuencia agotada para {base!r}")
    return f"{base}{n:0{ancho}d}"


def generar_codigo(
    db: Session,
    modelo,
    prefijo: str,
    user_id: str,
    *,
    fecha: Optional[date] = None,
    ancho: int = 3,
) -> str:
    """
    Devuelve el siguiente código libre de `modelo` para el usuario.

    Parámetros:
    - modelo: clase ORM con columnas `codigo` y `user_id`.
    - prefijo: 'CTA', 'PREST', 'PAGOFIN', 'ING', 'EGR'...
    - fecha: si se indica, añade el segmento yyyymmdd tras el prefijo.
    - ancho: dígitos de la secuencia (3 cuentas/préstamos, 4 pagos).

    Solo se miran códigos de longitud exacta <base>+ancho, de modo que
    los códigos de emergencia (más largos) no rompen el parseo.
    """
    base = f"{prefijo}{segmento_fecha(fecha)}"
    try:
        stmt = (
            select(modelo.codigo)
            .where(
                modelo.user_id == user_id,
                modelo.codigo.like(f"{base}%"),
                func.length(modelo.codigo) == len(base) + ancho,
            )
            .order_by(modelo.codigo.desc())
            .limit(1)
        )
        ultimo = db.execute(stmt).scalar_one_or_none()
        return siguiente_secuencia(ultimo, base, ancho)
    except (SQLAlchemyError, ValueError) as e:
        fallback = codigo_fallback(prefijo, fecha)
        logger.warning(
            "[codigos] secuencia no disponible base=%s user_id=%s (%s); usando %s",
            base, user_id, e, fallback,
        )
        return fallback


def guardar_con_codigo(
    db: Session,
    obj: T,
    regenerar: Callable[[], str],
    *,
    intentos: Optional[int] = None,
) -> T:
    """
    Inserta `obj` (que ya trae `codigo`) dentro de un SAVEPOINT.

    Si la BD rechaza el insert por UNIQUE, se pide un código nuevo con
    `regenerar()` y se reintenta. Tras `intentos` fallos -> AlreadyExistsError.

    No hace commit: el llamante controla la transacción.
    """
    max_intentos = intentos or settings.CODIGO_MAX_REINTENTOS
    for intento in range(1, max_intentos + 1):
        try:
            with db.begin_nested():
                db.add(obj)
                db.flush()
            return obj
        except IntegrityError as e:
            logger.warning(
                "[codigos] conflicto al insertar %s codigo=%s intento=%s/%s: %s",
                type(obj).__name__, getattr(obj, "codigo", None), intento, max_intentos, e.orig,
            )
            obj.codigo = regenerar()

    raise AlreadyExistsError(
        f"No se pudo registrar {type(obj).__name__}: código o número de operación duplicado"
    )

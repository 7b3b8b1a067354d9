# backend/app/utils/common.py

"""
Funciones auxiliares comunes a cuentas, movimientos y préstamos.

Incluye:

- to_decimal(v, default=0):
    Conversión robusta a Decimal (acepta float, int, str, None).

- redondear(v):
    Redondeo monetario a 2 decimales, ROUND_HALF_UP.

- ahora() / hoy():
    Marca de tiempo naive en UTC y fecha local, en un único sitio para
    poder fijarlas en tests.

- ensure_owner(obj, actor, recurso):
    Comprueba que el registro pertenece al actor.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from backend.app.core.errors import NotAuthorizedError, NotFoundError

CENTIMO = Decimal("0.01")
CERO = Decimal("0.00")


# ============================================================
# Conversión numérica
# ============================================================

def to_decimal(value: Any, default: Decimal | int = 0) -> Decimal:
    """
    Convierte un valor a Decimal de forma segura.

    Reglas:
    - None, "" o valores no numéricos -> Decimal(default).
    - float se pasa por str() para no arrastrar el error binario
      (0.1 -> Decimal("0.1"), no Decimal(0.1000000000000000055...)).
    """
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)


def redondear(value: Any) -> Decimal:
    """Redondeo a céntimos, mitad hacia arriba (1066.185 -> 1066.19)."""
    return to_decimal(value).quantize(CENTIMO, rounding=ROUND_HALF_UP)


# ============================================================
# Tiempo
# ============================================================

def ahora() -> datetime:
    """Datetime UTC sin tzinfo (las columnas DateTime son naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hoy() -> date:
    return date.today()


# ============================================================
# Propiedad de registros
# ============================================================

def ensure_owner(obj: Optional[Any], actor_user_id: str, recurso: str) -> Any:
    """
    Devuelve `obj` si existe y pertenece al usuario.

    - obj None           -> NotFoundError("<recurso> no encontrado")
    - obj.user_id != uid -> NotAuthorizedError
    """
    if obj is None:
        raise NotFoundError(f"{recurso} no encontrado")
    if str(obj.user_id) != str(actor_user_id):
        raise NotAuthorizedError(f"No tiene permiso sobre este recurso: {recurso.lower()}")
    return obj

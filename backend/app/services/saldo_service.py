# backend/app/services/saldo_service.py

"""
Primitivas del LIBRO DE CUENTAS: abonar / cargar saldo y activar cuentas.

Reglas de negocio:

- El saldo de una cuenta (saldo_actual) solo cambia aquí.
- Cada cambio es UN único UPDATE condicional que mueve a la vez
  saldo_actual, fecha_ultimo_movimiento y modifiedon:

      UPDATE cuentas_bancarias
         SET saldo_actual = saldo_actual - :monto, ...
       WHERE id = :id AND activa AND saldo_actual >= :monto

  Si el UPDATE no afecta a ninguna fila, se averigua el motivo (cuenta
  inexistente, inactiva o sin fondos) y se lanza el error tipado.
  Así dos cargos concurrentes nunca pueden dejar la cuenta en negativo:
  el segundo encuentra el saldo ya descontado.

- No hacemos commit aquí: el servicio llamante está en una transacción
  y el router hará db.commit() después de todos los cambios.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backend.app.core.errors import (
    AccountInactiveError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from backend.app.db import models
from backend.app.utils.common import ahora, redondear

logger = logging.getLogger(__name__)

_CAMPOS_SALDO = ["saldo_actual", "fecha_ultimo_movimiento", "modifiedon"]


def _monto_positivo(monto) -> Decimal:
    m = redondear(monto)
    if m <= 0:
        raise ValidationError("El monto debe ser mayor que cero")
    return m


def _diagnosticar(db: Session, cuenta_id: str, monto: Decimal) -> None:
    """Explica por qué un UPDATE condicional no afectó a ninguna fila."""
    row = db.execute(
        select(models.CuentaBancaria.activa, models.CuentaBancaria.saldo_actual)
        .where(models.CuentaBancaria.id == cuenta_id)
    ).first()
    if row is None:
        raise NotFoundError("Cuenta bancaria no encontrada")
    if not row.activa:
        raise AccountInactiveError("La cuenta bancaria está inactiva")
    raise InsufficientFundsError(disponible=redondear(row.saldo_actual), solicitado=monto)


def _refrescar(db: Session, cuenta_id: str) -> Decimal:
    """Sincroniza la instancia ORM (si está en sesión) y devuelve el saldo."""
    cuenta = db.get(models.CuentaBancaria, cuenta_id)
    db.refresh(cuenta, attribute_names=_CAMPOS_SALDO)
    return redondear(cuenta.saldo_actual)


def acreditar(db: Session, cuenta_id: str, monto) -> Tuple[Decimal, Decimal]:
    """
    Suma `monto` al saldo de la cuenta.

    Devuelve (saldo_anterior, saldo_posterior).
    """
    m = _monto_positivo(monto)
    db.flush()
    now = ahora()
    res = db.execute(
        update(models.CuentaBancaria)
        .where(
            models.CuentaBancaria.id == cuenta_id,
            models.CuentaBancaria.activa.is_(True),
        )
        .values(
            saldo_actual=func.round(models.CuentaBancaria.saldo_actual + m, 2),
            fecha_ultimo_movimiento=now,
            modifiedon=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        _diagnosticar(db, cuenta_id, m)

    despues = _refrescar(db, cuenta_id)
    logger.debug("[saldos] acreditar cuenta_id=%s monto=%s saldo=%s", cuenta_id, m, despues)
    return despues - m, despues


def debitar(db: Session, cuenta_id: str, monto) -> Tuple[Decimal, Decimal]:
    """
    Resta `monto` del saldo SOLO si hay fondos (saldo_actual >= monto).

    Devuelve (saldo_anterior, saldo_posterior).
    Lanza InsufficientFundsError con ambos importes si no alcanza.
    """
    m = _monto_positivo(monto)
    db.flush()
    now = ahora()
    res = db.execute(
        update(models.CuentaBancaria)
        .where(
            models.CuentaBancaria.id == cuenta_id,
            models.CuentaBancaria.activa.is_(True),
            models.CuentaBancaria.saldo_actual >= m,
        )
        .values(
            saldo_actual=func.round(models.CuentaBancaria.saldo_actual - m, 2),
            fecha_ultimo_movimiento=now,
            modifiedon=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        _diagnosticar(db, cuenta_id, m)

    despues = _refrescar(db, cuenta_id)
    logger.debug("[saldos] debitar cuenta_id=%s monto=%s saldo=%s", cuenta_id, m, despues)
    return despues + m, despues


def cambiar_activa(db: Session, cuenta_id: str, activa: bool) -> models.CuentaBancaria:
    """Activa o desactiva la cuenta (sin tocar el saldo)."""
    cuenta = db.get(models.CuentaBancaria, cuenta_id)
    if cuenta is None:
        raise NotFoundError("Cuenta bancaria no encontrada")
    cuenta.activa = bool(activa)
    cuenta.modifiedon = ahora()
    db.flush()
    return cuenta

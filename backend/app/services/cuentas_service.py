# backend/app/services/cuentas_service.py

"""
Servicio de CUENTAS BANCARIAS.

Reglas de negocio:

- Código CTA### por usuario (generar_codigo + guardar_con_codigo).
- (user_id, numero_cuenta, banco) es único -> AlreadyExistsError.
- Al abrir con saldo_inicial > 0 se deja un movimiento de apertura.
- El saldo NO se edita a mano: se ajusta con un movimiento
  (ajuste_saldo) que pasa por el libro como cualquier otro.
- Una cuenta con saldo, con movimientos recientes o con historial no se
  elimina: se desactiva.

Invariante (ver conciliar_cuenta):

    saldo_actual == saldo_inicial + Σ movimientos con signo
                    (procesados y anulados, sin la apertura)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.constants import (
    PREFIJO_CUENTA,
    SUBCATEGORIA_AJUSTE_SALDO,
    CategoriaBancaria,
    MetodoPagoBancario,
    Moneda,
    TipoCuenta,
    TipoMovimientoBancario,
)
from backend.app.core.errors import AlreadyExistsError, InvalidStateTransitionError, ValidationError
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.services import movimientos_bancarios_service, saldo_service
from backend.app.utils.common import CERO, ahora, ensure_owner, redondear
from backend.app.utils.id_utils import generar_codigo, generate_cuenta_id, guardar_con_codigo
from backend.app.utils.text_utils import clean_text, like_pattern

logger = logging.getLogger(__name__)

Cuenta = models.CuentaBancaria


# ============================================================
# Helpers internos
# ============================================================

def _codigo_cuenta(db: Session, user_id: str) -> str:
    return generar_codigo(db, Cuenta, PREFIJO_CUENTA, user_id, ancho=3)


def _check_duplicado(
    db: Session,
    user_id: str,
    numero_cuenta: str,
    banco: str,
    excluir_id: Optional[str] = None,
) -> None:
    stmt = select(Cuenta.id).where(
        Cuenta.user_id == user_id,
        Cuenta.numero_cuenta == numero_cuenta,
        Cuenta.banco == banco,
    )
    if excluir_id:
        stmt = stmt.where(Cuenta.id != excluir_id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise AlreadyExistsError(f"Ya existe una cuenta {numero_cuenta} en {banco}")


def obtener_cuenta(db: Session, actor: ActorContext, cuenta_id: str) -> models.CuentaBancaria:
    return ensure_owner(db.get(Cuenta, cuenta_id), actor.user_id, "Cuenta bancaria")


# ============================================================
# Alta / edición
# ============================================================

def abrir_cuenta(db: Session, actor: ActorContext, data) -> models.CuentaBancaria:
    """
    Abre una cuenta nueva.

    `data` es un CuentaBancariaCreate. Si saldo_inicial > 0 se registra
    el movimiento de apertura (rastro; no vuelve a sumar al saldo).
    """
    nombre = clean_text(data.nombre)
    banco = clean_text(data.banco)
    numero_cuenta = clean_text(data.numero_cuenta)
    titular = clean_text(data.titular)
    if not (nombre and banco and numero_cuenta and titular):
        raise ValidationError("nombre, banco, numero_cuenta y titular son obligatorios")

    inicial = redondear(data.saldo_inicial or 0)
    if inicial < 0:
        raise ValidationError("El saldo inicial no puede ser negativo")

    _check_duplicado(db, actor.user_id, numero_cuenta, banco)

    now = ahora()
    cuenta = Cuenta(
        id=generate_cuenta_id(),
        codigo=_codigo_cuenta(db, actor.user_id),
        user_id=actor.user_id,
        nombre=nombre.upper(),
        banco=banco,
        tipo_cuenta=TipoCuenta(data.tipo_cuenta),
        numero_cuenta=numero_cuenta,
        titular=titular,
        moneda=Moneda(data.moneda),
        descripcion=clean_text(data.descripcion),
        saldo_inicial=inicial,
        saldo_actual=inicial,
        saldo_minimo=redondear(data.saldo_minimo or 0),
        activa=True,
        fecha_ultimo_movimiento=now if inicial > 0 else None,
        createon=now,
        modifiedon=now,
    )
    guardar_con_codigo(db, cuenta, lambda: _codigo_cuenta(db, actor.user_id))

    movimientos_bancarios_service.registrar_saldo_inicial(db, cuenta)

    logger.info(
        "[cuentas] abierta id=%s codigo=%s user_id=%s saldo_inicial=%s",
        cuenta.id, cuenta.codigo, actor.user_id, inicial,
    )
    return cuenta


def actualizar_cuenta(db: Session, actor: ActorContext, cuenta_id: str, data) -> models.CuentaBancaria:
    """Solo campos descriptivos; el saldo nunca se toca aquí."""
    cuenta = obtener_cuenta(db, actor, cuenta_id)
    cambios = data.model_dump(exclude_unset=True, exclude_none=True)

    banco = clean_text(cambios.get("banco")) or cuenta.banco
    numero = clean_text(cambios.get("numero_cuenta")) or cuenta.numero_cuenta
    if banco != cuenta.banco or numero != cuenta.numero_cuenta:
        _check_duplicado(db, actor.user_id, numero, banco, excluir_id=cuenta.id)

    for campo, valor in cambios.items():
        if isinstance(valor, str):
            valor = clean_text(valor)
        if campo == "nombre" and valor:
            valor = valor.upper()
        if campo == "saldo_minimo":
            valor = redondear(valor)
        setattr(cuenta, campo, valor)

    cuenta.modifiedon = ahora()
    db.flush()
    return cuenta


def cambiar_estado(db: Session, actor: ActorContext, cuenta_id: str, activa: bool) -> models.CuentaBancaria:
    cuenta = obtener_cuenta(db, actor, cuenta_id)
    cuenta = saldo_service.cambiar_activa(db, cuenta.id, activa)
    logger.info("[cuentas] id=%s activa=%s", cuenta.id, cuenta.activa)
    return cuenta


def ajustar_saldo(db: Session, actor: ActorContext, cuenta_id: str, nuevo_saldo, motivo: str) -> models.MovimientoBancario:
    """
    Lleva el saldo a `nuevo_saldo` registrando la diferencia como
    movimiento (ingreso_extra o egreso_extra, subcategoría ajuste_saldo).
    """
    cuenta = obtener_cuenta(db, actor, cuenta_id)
    objetivo = redondear(nuevo_saldo)
    if objetivo < 0:
        raise ValidationError("El saldo objetivo no puede ser negativo")
    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo del ajuste es obligatorio")

    diferencia = objetivo - redondear(cuenta.saldo_actual)
    if diferencia == 0:
        raise ValidationError("El saldo ya es igual al solicitado; no hay nada que ajustar")

    if diferencia > 0:
        tipo, categoria = TipoMovimientoBancario.ingreso, CategoriaBancaria.ingreso_extra
    else:
        tipo, categoria = TipoMovimientoBancario.egreso, CategoriaBancaria.egreso_extra

    mov = movimientos_bancarios_service.registrar_movimiento(
        db,
        actor,
        cuenta_id=cuenta.id,
        tipo=tipo,
        categoria=categoria,
        subcategoria=SUBCATEGORIA_AJUSTE_SALDO,
        monto=abs(diferencia),
        descripcion=f"Ajuste de saldo: {motivo}",
        metodo_pago=MetodoPagoBancario.otro,
    )
    logger.info("[cuentas] ajuste id=%s diferencia=%s movimiento=%s", cuenta.id, diferencia, mov.id)
    return mov


def eliminar_cuenta(db: Session, actor: ActorContext, cuenta_id: str) -> None:
    """
    Borra físicamente la cuenta SOLO si:
    - saldo_actual == 0
    - no hay movimientos en los últimos DIAS_MOVIMIENTOS_RECIENTES días
    - no tiene historial en el libro (ni la referencia ningún pago/caja)

    En cualquier otro caso -> InvalidStateTransitionError (desactivar).
    """
    cuenta = obtener_cuenta(db, actor, cuenta_id)

    if redondear(cuenta.saldo_actual) != 0:
        raise InvalidStateTransitionError(
            f"La cuenta tiene saldo ({cuenta.saldo_actual:.2f}); desactívela en lugar de eliminarla"
        )

    desde = ahora() - timedelta(days=settings.DIAS_MOVIMIENTOS_RECIENTES)
    Mov = models.MovimientoBancario
    recientes = db.execute(
        select(func.count(Mov.id)).where(Mov.cuenta_id == cuenta.id, Mov.fecha >= desde)
    ).scalar_one()
    if recientes:
        raise InvalidStateTransitionError(
            f"La cuenta tiene movimientos en los últimos {settings.DIAS_MOVIMIENTOS_RECIENTES} días; desactívela"
        )

    historial = db.execute(
        select(func.count(Mov.id)).where(or_(Mov.cuenta_id == cuenta.id, Mov.cuenta_destino_id == cuenta.id))
    ).scalar_one()
    caja = db.execute(
        select(func.count(models.MovimientoCaja.id)).where(models.MovimientoCaja.cuenta_bancaria_id == cuenta.id)
    ).scalar_one()
    prestamos = db.execute(
        select(func.count(models.Prestamo.id)).where(
            or_(
                models.Prestamo.cuenta_desembolso_id == cuenta.id,
                models.Prestamo.cuenta_pago_id == cuenta.id,
            )
        )
    ).scalar_one()
    if historial or caja or prestamos:
        raise InvalidStateTransitionError("La cuenta tiene historial de movimientos; desactívela en lugar de eliminarla")

    db.delete(cuenta)
    db.flush()
    logger.info("[cuentas] eliminada id=%s codigo=%s", cuenta.id, cuenta.codigo)


# ============================================================
# Consultas
# ============================================================

def listar_cuentas(
    db: Session,
    actor: ActorContext,
    *,
    tipo_cuenta: Optional[TipoCuenta] = None,
    moneda: Optional[Moneda] = None,
    activa: Optional[bool] = None,
    q: Optional[str] = None,
) -> List[models.CuentaBancaria]:
    stmt = select(Cuenta).where(Cuenta.user_id == actor.user_id)
    if tipo_cuenta:
        stmt = stmt.where(Cuenta.tipo_cuenta == tipo_cuenta)
    if moneda:
        stmt = stmt.where(Cuenta.moneda == moneda)
    if activa is not None:
        stmt = stmt.where(Cuenta.activa.is_(activa))

    pattern = like_pattern(q)
    if pattern:
        stmt = stmt.where(
            or_(
                func.lower(Cuenta.nombre).like(pattern),
                func.lower(Cuenta.banco).like(pattern),
                func.lower(Cuenta.numero_cuenta).like(pattern),
                func.lower(Cuenta.codigo).like(pattern),
            )
        )
    return list(db.execute(stmt.order_by(Cuenta.codigo)).scalars().all())


def estadisticas(db: Session, actor: ActorContext) -> List[Dict]:
    """Cuentas y saldo total agrupados por moneda (sin conversión)."""
    stmt = (
        select(
            Cuenta.moneda,
            func.count(Cuenta.id),
            func.coalesce(func.sum(case((Cuenta.activa.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(Cuenta.saldo_actual), 0),
        )
        .where(Cuenta.user_id == actor.user_id)
        .group_by(Cuenta.moneda)
        .order_by(Cuenta.moneda)
    )
    return [
        {
            "moneda": moneda,
            "cuentas": int(n),
            "cuentas_activas": int(activas or 0),
            "saldo_total": redondear(total),
        }
        for moneda, n, activas, total in db.execute(stmt).all()
    ]


def alertas_saldo_bajo(db: Session, actor: ActorContext) -> List[Dict]:
    stmt = (
        select(Cuenta)
        .where(
            Cuenta.user_id == actor.user_id,
            Cuenta.activa.is_(True),
            Cuenta.saldo_minimo > 0,
            Cuenta.saldo_actual <= Cuenta.saldo_minimo,
        )
        .order_by(Cuenta.codigo)
    )
    return [
        {
            "cuenta_id": c.id,
            "codigo": c.codigo,
            "nombre": c.nombre,
            "moneda": c.moneda,
            "saldo_actual": redondear(c.saldo_actual),
            "saldo_minimo": redondear(c.saldo_minimo),
        }
        for c in db.execute(stmt).scalars().all()
    ]


def conciliar_cuenta(db: Session, actor: ActorContext, cuenta_id: str) -> Dict:
    """
    Recalcula el saldo desde el libro y lo compara con saldo_actual.
    Solo lectura: no corrige nada.
    """
    cuenta = obtener_cuenta(db, actor, cuenta_id)
    suma, n = movimientos_bancarios_service.suma_libro(db, cuenta.id)
    inicial = redondear(cuenta.saldo_inicial)
    calculado = inicial + suma
    actual = redondear(cuenta.saldo_actual)
    diferencia = actual - calculado

    if diferencia != CERO:
        logger.warning(
            "[cuentas] descuadre cuenta_id=%s saldo_actual=%s calculado=%s",
            cuenta.id, actual, calculado,
        )

    return {
        "cuenta_id": cuenta.id,
        "saldo_inicial": inicial,
        "suma_movimientos": suma,
        "saldo_calculado": calculado,
        "saldo_actual": actual,
        "diferencia": diferencia,
        "cuadra": diferencia == CERO,
        "movimientos_considerados": n,
    }

# backend/app/services/prestamos_service.py

"""
Servicio de PRÉSTAMOS (motor de amortización de cuota fija).

Reglas de negocio:

- El préstamo nace APROBADO por el monto solicitado (no hay flujo de
  evaluación). Solo existen dos estados: aprobado / cancelado.
  El desembolso se refleja con fecha_desembolso / cuenta_desembolso_id.
- cuota_mensual = calcular_cuota_mensual(monto, tasa, plazo).
- saldo_pendiente arranca en monto_aprobado y baja con cada pago.
- Al crearlo se deja un ingreso en caja ("Préstamo recibido - PREST###")
  en estado aplicado. Si ese registro falla, el préstamo se crea igual
  (se deja en el log).
- generar_cronograma crea una fila PagoFinanciamiento por cuota, una
  sola vez: si ya existen pagos -> InvalidStateTransitionError.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.constants import (
    PREFIJO_PAGO,
    PREFIJO_PRESTAMO,
    CategoriaCaja,
    EstadoPago,
    EstadoPrestamo,
    MetodoPagoCaja,
    ModuloDestino,
    TipoMovimientoCaja,
    TipoPago,
    TipoPrestamo,
    TipoTasa,
)
from backend.app.core.errors import FinanzasError, InvalidStateTransitionError, ValidationError
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.services import movimientos_caja_service
from backend.app.utils.common import CERO, ahora, ensure_owner, hoy, redondear, to_decimal
from backend.app.utils.id_utils import (
    generar_codigo,
    generate_pago_id,
    generate_prestamo_id,
    guardar_con_codigo,
)
from backend.app.utils.prestamo_utils import add_months, calcular_cuota_mensual, calcular_totales, tabla_amortizacion
from backend.app.utils.text_utils import append_line, clean_text, like_pattern

logger = logging.getLogger(__name__)

Prestamo = models.Prestamo
Pago = models.PagoFinanciamiento


# ============================================================
# Helpers
# ============================================================

def _codigo_prestamo(db: Session, user_id: str) -> str:
    return generar_codigo(db, Prestamo, PREFIJO_PRESTAMO, user_id, ancho=3)


def _codigo_pago(db: Session, user_id: str) -> str:
    return generar_codigo(db, Pago, PREFIJO_PAGO, user_id, ancho=4)


def fecha_base(prestamo: models.Prestamo) -> date:
    """Fecha desde la que se cuentan las cuotas: desembolso o, si no hay, solicitud."""
    return prestamo.fecha_desembolso or prestamo.fecha_solicitud


def obtener_prestamo(db: Session, actor: ActorContext, prestamo_id: str) -> models.Prestamo:
    return ensure_owner(db.get(Prestamo, prestamo_id), actor.user_id, "Préstamo")


def _cuenta_propia(db: Session, actor: ActorContext, cuenta_id: Optional[str], nombre: str) -> Optional[str]:
    if not cuenta_id:
        return None
    cuenta = ensure_owner(db.get(models.CuentaBancaria, cuenta_id), actor.user_id, nombre)
    return cuenta.id


def simular_cuota(monto, tasa_interes, plazo_meses: int) -> Dict:
    """Cuota y totales sin persistir nada."""
    monto = to_decimal(monto)
    if monto <= 0:
        raise ValidationError("El monto debe ser mayor que cero")
    if tasa_interes is None or to_decimal(tasa_interes) < 0:
        raise ValidationError("La tasa de interés no puede ser negativa")
    if plazo_meses <= 0:
        raise ValidationError("El plazo debe ser mayor que cero")

    cuota = redondear(calcular_cuota_mensual(monto, tasa_interes, plazo_meses))
    total = cuota * plazo_meses
    return {
        "cuota_mensual": cuota,
        "total_a_pagar": total,
        "total_intereses": max(CERO, redondear(total - monto)),
    }


# ============================================================
# Alta / cancelación
# ============================================================

def _registrar_ingreso_caja(db: Session, actor: ActorContext, prestamo: models.Prestamo) -> None:
    """Ingreso en caja por el préstamo recibido. Nunca hace fallar el alta."""
    try:
        with db.begin_nested():
            movimientos_caja_service.registrar_movimiento(
                db,
                actor,
                tipo=TipoMovimientoCaja.ingreso,
                monto=prestamo.monto_aprobado,
                concepto=f"Préstamo recibido - {prestamo.codigo}",
                descripcion=f"{prestamo.entidad_financiera} ({prestamo.tipo.value})",
                categoria=CategoriaCaja.prestamo_recibido,
                metodo_pago=MetodoPagoCaja.transferencia,
                estado=movimientos_caja_service.Estado.aplicado,
                modulo_destino=ModuloDestino.prestamos,
                referencia_modulo=prestamo.id,
            )
    except (FinanzasError, SQLAlchemyError):
        logger.exception(
            "[prestamos] no se pudo registrar el ingreso en caja del préstamo id=%s codigo=%s",
            prestamo.id, prestamo.codigo,
        )


def crear_prestamo(db: Session, actor: ActorContext, data) -> models.Prestamo:
    """
    Crea y aprueba un préstamo. `data` es un PrestamoCreate.
    """
    monto = redondear(data.monto_solicitado)
    tasa = to_decimal(data.tasa_interes)
    plazo = int(data.plazo_meses or 0)
    entidad = clean_text(data.entidad_financiera)

    if monto <= 0:
        raise ValidationError("El monto solicitado debe ser mayor que cero")
    if tasa <= 0:
        raise ValidationError("La tasa de interés debe ser mayor que cero")
    if plazo <= 0:
        raise ValidationError("El plazo debe ser mayor que cero")
    if not entidad:
        raise ValidationError("La entidad financiera es obligatoria")

    dia_pago = data.dia_pago or settings.DIA_PAGO_DEFAULT
    if not 1 <= dia_pago <= 31:
        raise ValidationError("El día de pago debe estar entre 1 y 31")

    cuenta_desembolso_id = _cuenta_propia(db, actor, data.cuenta_desembolso_id, "Cuenta de desembolso")
    cuenta_pago_id = _cuenta_propia(db, actor, data.cuenta_pago_id, "Cuenta de pago")

    fecha_solicitud = data.fecha_solicitud or hoy()
    fecha_desembolso = data.fecha_desembolso
    base = fecha_desembolso or fecha_solicitud
    now = ahora()

    prestamo = Prestamo(
        id=generate_prestamo_id(),
        codigo=_codigo_prestamo(db, actor.user_id),
        user_id=actor.user_id,
        tipo=TipoPrestamo(data.tipo),
        entidad_financiera=entidad,
        moneda=data.moneda,
        proposito=clean_text(data.proposito),
        monto_solicitado=monto,
        monto_aprobado=monto,
        tasa_interes=tasa,
        tipo_tasa=TipoTasa(data.tipo_tasa),
        plazo_meses=plazo,
        cuota_mensual=redondear(calcular_cuota_mensual(monto, tasa, plazo)),
        saldo_pendiente=monto,
        estado=EstadoPrestamo.aprobado,
        fecha_solicitud=fecha_solicitud,
        fecha_aprobacion=now,
        fecha_desembolso=fecha_desembolso,
        fecha_proximo_pago=add_months(base, 1, dia_pago),
        dia_pago=dia_pago,
        tasa_mora_diaria=(
            to_decimal(data.tasa_mora_diaria)
            if data.tasa_mora_diaria is not None
            else settings.MORA_TASA_DIARIA_DEFAULT
        ),
        cuenta_desembolso_id=cuenta_desembolso_id,
        cuenta_pago_id=cuenta_pago_id,
        cuotas_pagadas=0,
        cuotas_pendientes=plazo,
        dias_vencidos=0,
        total_intereses_pagados=CERO,
        total_comisiones_pagadas=CERO,
        observaciones=clean_text(data.observaciones),
        createon=now,
        modifiedon=now,
    )
    guardar_con_codigo(db, prestamo, lambda: _codigo_prestamo(db, actor.user_id))

    _registrar_ingreso_caja(db, actor, prestamo)

    logger.info(
        "[prestamos] creado id=%s codigo=%s monto=%s tasa=%s plazo=%s cuota=%s",
        prestamo.id, prestamo.codigo, monto, tasa, plazo, prestamo.cuota_mensual,
    )
    return prestamo


def cancelar_prestamo(db: Session, actor: ActorContext, prestamo_id: str, motivo: str) -> models.Prestamo:
    """
    aprobado -> cancelado. Deja el saldo pendiente en 0 y cancela las
    cuotas que aún no se pagaron (programadas / pendientes).
    """
    prestamo = obtener_prestamo(db, actor, prestamo_id)
    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo de cancelación es obligatorio")
    if prestamo.estado == EstadoPrestamo.cancelado:
        raise InvalidStateTransitionError("El préstamo ya está cancelado")

    now = ahora()
    abiertas = 0
    for pago in prestamo.pagos:
        if pago.estado in (EstadoPago.programado, EstadoPago.pendiente):
            pago.estado = EstadoPago.cancelado
            pago.observaciones = append_line(pago.observaciones, f"Cancelado con el préstamo: {motivo}")
            pago.modifiedon = now
            abiertas += 1

    prestamo.estado = EstadoPrestamo.cancelado
    prestamo.saldo_pendiente = CERO
    prestamo.fecha_proximo_pago = None
    prestamo.observaciones = append_line(prestamo.observaciones, f"CANCELADO: {motivo}")
    prestamo.modifiedon = now
    db.flush()

    logger.info("[prestamos] cancelado id=%s cuotas_canceladas=%s", prestamo.id, abiertas)
    return prestamo


# ============================================================
# Amortización y cronograma
# ============================================================

def tabla_amortizacion_prestamo(db: Session, actor: ActorContext, prestamo_id: str) -> Dict:
    prestamo = obtener_prestamo(db, actor, prestamo_id)
    filas = tabla_amortizacion(
        prestamo.monto_aprobado,
        prestamo.tasa_interes,
        prestamo.plazo_meses,
        fecha_base(prestamo),
        dia_pago=prestamo.dia_pago,
        cuotas_pagadas=prestamo.cuotas_pagadas,
    )
    return {
        "prestamo_id": prestamo.id,
        "cuota_mensual": redondear(prestamo.cuota_mensual),
        "total_intereses": sum((f["interes"] for f in filas), CERO),
        "filas": filas,
    }


def generar_cronograma(db: Session, actor: ActorContext, prestamo_id: str) -> List[models.PagoFinanciamiento]:
    """
    Crea las cuotas (PagoFinanciamiento) a partir de la tabla de amortización.

    - Solo una vez por préstamo.
    - Cada cuota nace 'pendiente', con fecha_vencimiento = fecha
      programada + DIAS_GRACIA_PAGO.
    """
    prestamo = obtener_prestamo(db, actor, prestamo_id)
    if prestamo.estado == EstadoPrestamo.cancelado:
        raise InvalidStateTransitionError("No se puede generar el cronograma de un préstamo cancelado")

    existentes = db.execute(select(func.count(Pago.id)).where(Pago.prestamo_id == prestamo.id)).scalar_one()
    if existentes:
        raise InvalidStateTransitionError(
            f"El préstamo {prestamo.codigo} ya tiene cronograma ({existentes} cuotas)"
        )

    filas = tabla_amortizacion(
        prestamo.monto_aprobado,
        prestamo.tasa_interes,
        prestamo.plazo_meses,
        fecha_base(prestamo),
        dia_pago=prestamo.dia_pago,
    )

    gracia = timedelta(days=settings.DIAS_GRACIA_PAGO)
    pagos: List[models.PagoFinanciamiento] = []
    now = ahora()
    for fila in filas:
        pago = Pago(
            id=generate_pago_id(),
            codigo=_codigo_pago(db, actor.user_id),
            user_id=actor.user_id,
            prestamo_id=prestamo.id,
            numero_cuota=fila["numero_cuota"],
            tipo=TipoPago.cuota_regular,
            estado=EstadoPago.pendiente,
            monto_capital=fila["capital"],
            monto_interes=fila["interes"],
            monto_comision=CERO,
            monto_mora=CERO,
            descuentos=[],
            monto_total=calcular_totales(fila["capital"], fila["interes"], CERO, CERO),
            monto_pagado=CERO,
            moneda=prestamo.moneda,
            fecha_programada=fila["fecha_vencimiento"],
            fecha_vencimiento=fila["fecha_vencimiento"] + gracia,
            saldo_anterior=fila["saldo_anterior"],
            saldo_posterior=fila["saldo_restante"],
            dias_mora=0,
            tasa_mora=prestamo.tasa_mora_diaria,
            createon=now,
            modifiedon=now,
        )
        guardar_con_codigo(db, pago, lambda: _codigo_pago(db, actor.user_id))
        pagos.append(pago)

    prestamo.fecha_proximo_pago = pagos[0].fecha_programada if pagos else None
    prestamo.modifiedon = now
    db.flush()

    logger.info("[prestamos] cronograma id=%s cuotas=%s", prestamo.id, len(pagos))
    return pagos


# ============================================================
# Consultas
# ============================================================

def listar_prestamos(
    db: Session,
    actor: ActorContext,
    *,
    estado: Optional[EstadoPrestamo] = None,
    tipo: Optional[TipoPrestamo] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.Prestamo]:
    stmt = select(Prestamo).where(Prestamo.user_id == actor.user_id)
    if estado:
        stmt = stmt.where(Prestamo.estado == estado)
    if tipo:
        stmt = stmt.where(Prestamo.tipo == tipo)
    if fecha_desde:
        stmt = stmt.where(Prestamo.fecha_solicitud >= fecha_desde)
    if fecha_hasta:
        stmt = stmt.where(Prestamo.fecha_solicitud <= fecha_hasta)

    pattern = like_pattern(q)
    if pattern:
        stmt = stmt.where(
            or_(
                func.lower(Prestamo.entidad_financiera).like(pattern),
                func.lower(Prestamo.codigo).like(pattern),
                func.lower(func.coalesce(Prestamo.proposito, "")).like(pattern),
            )
        )

    stmt = stmt.order_by(Prestamo.createon.desc(), Prestamo.codigo.desc()).limit(limit).offset(offset)
    rows = db.execute(stmt).scalars().all()
    logger.info("[prestamos] listar user_id=%s count=%s", actor.user_id, len(rows))
    return list(rows)


def estadisticas(db: Session, actor: ActorContext) -> Dict:
    aprobado = Prestamo.estado == EstadoPrestamo.aprobado
    stmt = select(
        func.count(Prestamo.id),
        func.coalesce(func.sum(case((aprobado, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Prestamo.estado == EstadoPrestamo.cancelado, 1), else_=0)), 0),
        func.coalesce(func.sum(Prestamo.monto_aprobado), 0),
        func.coalesce(func.sum(case((aprobado, Prestamo.saldo_pendiente), else_=0)), 0),
        func.coalesce(func.sum(Prestamo.total_intereses_pagados), 0),
        func.coalesce(func.sum(case((aprobado, Prestamo.cuota_mensual), else_=0)), 0),
    ).where(Prestamo.user_id == actor.user_id)

    total, aprobados, cancelados, monto, saldo, intereses, cuotas = db.execute(stmt).one()
    return {
        "total_prestamos": int(total or 0),
        "aprobados": int(aprobados or 0),
        "cancelados": int(cancelados or 0),
        "monto_total_aprobado": redondear(monto),
        "saldo_pendiente_total": redondear(saldo),
        "total_intereses_pagados": redondear(intereses),
        "cuota_mensual_total": redondear(cuotas),
    }


def prestamos_vencidos(db: Session, actor: ActorContext, fecha_corte: Optional[date] = None) -> List[models.Prestamo]:
    """Aprobados cuyo próximo pago ya pasó."""
    corte = fecha_corte or hoy()
    stmt = (
        select(Prestamo)
        .where(
            Prestamo.user_id == actor.user_id,
            Prestamo.estado == EstadoPrestamo.aprobado,
            Prestamo.fecha_proximo_pago.is_not(None),
            Prestamo.fecha_proximo_pago < corte,
        )
        .order_by(Prestamo.fecha_proximo_pago)
    )
    return list(db.execute(stmt).scalars().all())


def proximos_a_vencer(
    db: Session,
    actor: ActorContext,
    dias: Optional[int] = None,
    fecha_corte: Optional[date] = None,
) -> List[models.Prestamo]:
    corte = fecha_corte or hoy()
    limite = corte + timedelta(days=dias if dias is not None else settings.DIAS_PROXIMOS_VENCER)
    stmt = (
        select(Prestamo)
        .where(
            Prestamo.user_id == actor.user_id,
            Prestamo.estado == EstadoPrestamo.aprobado,
            Prestamo.fecha_proximo_pago >= corte,
            Prestamo.fecha_proximo_pago <= limite,
        )
        .order_by(Prestamo.fecha_proximo_pago)
    )
    return list(db.execute(stmt).scalars().all())

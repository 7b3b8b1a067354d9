# backend/app/services/pagos_service.py

"""
Servicio de PAGOS DE FINANCIAMIENTO (cuotas de un préstamo).

Reglas de negocio:

- procesar_pago:
    * solo cuotas 'pendiente' de un préstamo no cancelado;
    * si el monto supera el total de la cuota se recorta al total;
    * dias_mora = max(0, fecha_pago - fecha_vencimiento);
    * con cuenta_origen_id se registra el egreso bancario (prestamo_pago)
      en la misma transacción: sin fondos no hay pago;
    * actualiza las estadísticas del préstamo en la misma operación.

- calcular_mora: mora = base · (tasa_diaria / 100) · dias_mora, donde
  base = capital + interés + comisión. La mora anterior NO forma parte
  de la base: recalcular la mora la reemplaza, no la acumula.

- aplicar_descuento: por importe o por % del total vigente; el total se
  recalcula con calcular_totales (nunca negativo).

- procesar_pagos_en_lote: cada pago en su propio SAVEPOINT; un fallo no
  arrastra a los demás.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.constants import (
    CategoriaBancaria,
    EstadoPago,
    EstadoPrestamo,
    MetodoPagoBancario,
    MetodoPagoPrestamo,
    TipoDescuento,
    TipoMovimientoBancario,
)
from backend.app.core.errors import FinanzasError, InvalidStateTransitionError, ValidationError
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.services import movimientos_bancarios_service
from backend.app.utils.common import CERO, ahora, ensure_owner, hoy, redondear, to_decimal
from backend.app.utils.id_utils import generar_numero_operacion
from backend.app.utils.prestamo_utils import calcular_mora as calcular_monto_mora
from backend.app.utils.prestamo_utils import calcular_totales, dias_de_mora
from backend.app.utils.text_utils import append_line, clean_text

logger = logging.getLogger(__name__)

Pago = models.PagoFinanciamiento

_METODO_BANCARIO = {
    MetodoPagoPrestamo.transferencia: MetodoPagoBancario.transferencia,
    MetodoPagoPrestamo.debito_automatico: MetodoPagoBancario.tarjeta_debito,
    MetodoPagoPrestamo.efectivo: MetodoPagoBancario.efectivo,
    MetodoPagoPrestamo.cheque: MetodoPagoBancario.cheque,
    MetodoPagoPrestamo.deposito: MetodoPagoBancario.transferencia,
}


def obtener_pago(db: Session, actor: ActorContext, pago_id: str) -> models.PagoFinanciamiento:
    return ensure_owner(db.get(Pago, pago_id), actor.user_id, "Pago")


def _recalcular_total(pago: models.PagoFinanciamiento) -> None:
    pago.monto_total = calcular_totales(
        pago.monto_capital, pago.monto_interes, pago.monto_comision, pago.monto_mora, pago.descuentos
    )


def _siguiente_cuota(db: Session, prestamo_id: str) -> Optional[models.PagoFinanciamiento]:
    return db.execute(
        select(Pago)
        .where(
            Pago.prestamo_id == prestamo_id,
            Pago.estado.in_([EstadoPago.programado, EstadoPago.pendiente]),
        )
        .order_by(Pago.numero_cuota)
        .limit(1)
    ).scalars().first()


def _actualizar_estadisticas_prestamo(
    db: Session,
    prestamo: models.Prestamo,
    pago: models.PagoFinanciamiento,
    monto_pagado,
) -> None:
    prestamo.cuotas_pagadas = (prestamo.cuotas_pagadas or 0) + 1
    prestamo.cuotas_pendientes = max(0, prestamo.plazo_meses - prestamo.cuotas_pagadas)
    prestamo.saldo_pendiente = max(CERO, redondear(prestamo.saldo_pendiente) - redondear(monto_pagado))
    prestamo.total_intereses_pagados = redondear(prestamo.total_intereses_pagados) + redondear(pago.monto_interes)
    prestamo.total_comisiones_pagadas = redondear(prestamo.total_comisiones_pagadas) + redondear(pago.monto_comision)

    db.flush()
    siguiente = _siguiente_cuota(db, prestamo.id)
    prestamo.fecha_proximo_pago = siguiente.fecha_programada if siguiente else None
    prestamo.dias_vencidos = dias_de_mora(siguiente.fecha_vencimiento, pago.fecha_pago) if siguiente else 0
    prestamo.modifiedon = ahora()


# ============================================================
# applyPayment
# ============================================================

def procesar_pago(
    db: Session,
    actor: ActorContext,
    pago_id: str,
    *,
    monto_pagado,
    metodo_pago: MetodoPagoPrestamo = MetodoPagoPrestamo.transferencia,
    numero_operacion: Optional[str] = None,
    fecha_pago: Optional[date] = None,
    cuenta_origen_id: Optional[str] = None,
    observaciones: Optional[str] = None,
) -> models.PagoFinanciamiento:
    pago = obtener_pago(db, actor, pago_id)
    prestamo = pago.prestamo

    if prestamo.estado == EstadoPrestamo.cancelado:
        raise InvalidStateTransitionError(f"El préstamo {prestamo.codigo} está cancelado")
    if pago.estado != EstadoPago.pendiente:
        raise InvalidStateTransitionError(
            f"Solo se procesan pagos pendientes (estado actual: {pago.estado.value})"
        )

    monto = redondear(monto_pagado)
    if monto <= 0:
        raise ValidationError("El monto pagado debe ser mayor que cero")
    total = redondear(pago.monto_total)
    if monto > total:
        logger.info("[pagos] monto %s recortado al total de la cuota %s (pago_id=%s)", monto, total, pago.id)
        monto = total

    metodo_pago = MetodoPagoPrestamo(metodo_pago)
    fecha_pago = fecha_pago or hoy()
    numero_operacion = clean_text(numero_operacion) or generar_numero_operacion("PAY")

    mov_banco = None
    if cuenta_origen_id and monto > 0:
        mov_banco = movimientos_bancarios_service.registrar_movimiento(
            db,
            actor,
            cuenta_id=cuenta_origen_id,
            tipo=TipoMovimientoBancario.egreso,
            categoria=CategoriaBancaria.prestamo_pago,
            monto=monto,
            descripcion=f"Pago cuota {pago.numero_cuota} - Préstamo {prestamo.codigo}",
            metodo_pago=_METODO_BANCARIO.get(metodo_pago, MetodoPagoBancario.otro),
            numero_operacion=numero_operacion,
            beneficiario=prestamo.entidad_financiera,
        )

    pago.estado = EstadoPago.procesado
    pago.monto_pagado = monto
    pago.fecha_pago = fecha_pago
    pago.metodo_pago = metodo_pago
    pago.numero_operacion = numero_operacion
    pago.cuenta_origen_id = cuenta_origen_id
    pago.movimiento_bancario_id = mov_banco.id if mov_banco else None
    pago.dias_mora = dias_de_mora(pago.fecha_vencimiento, fecha_pago)
    pago.procesado_por = actor.user_id
    if clean_text(observaciones):
        pago.observaciones = append_line(pago.observaciones, clean_text(observaciones))
    pago.modifiedon = ahora()

    _actualizar_estadisticas_prestamo(db, prestamo, pago, monto)
    db.flush()

    logger.info(
        "[pagos] procesado id=%s prestamo=%s cuota=%s monto=%s dias_mora=%s banco=%s",
        pago.id, prestamo.id, pago.numero_cuota, monto, pago.dias_mora, pago.movimiento_bancario_id,
    )
    return pago


def rechazar_pago(db: Session, actor: ActorContext, pago_id: str, motivo: str) -> models.PagoFinanciamiento:
    pago = obtener_pago(db, actor, pago_id)
    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo de rechazo es obligatorio")
    if pago.estado != EstadoPago.pendiente:
        raise InvalidStateTransitionError(
            f"Solo se rechazan pagos pendientes (estado actual: {pago.estado.value})"
        )
    pago.estado = EstadoPago.rechazado
    pago.motivo_rechazo = motivo[:300]
    pago.observaciones = append_line(pago.observaciones, f"RECHAZADO: {motivo}")
    pago.modifiedon = ahora()
    db.flush()
    logger.info("[pagos] rechazado id=%s", pago.id)
    return pago


def cancelar_pago(db: Session, actor: ActorContext, pago_id: str, motivo: str) -> models.PagoFinanciamiento:
    pago = obtener_pago(db, actor, pago_id)
    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo de cancelación es obligatorio")
    if pago.estado == EstadoPago.procesado:
        raise InvalidStateTransitionError("No se puede cancelar un pago ya procesado")
    if pago.estado == EstadoPago.cancelado:
        raise InvalidStateTransitionError("El pago ya está cancelado")
    pago.estado = EstadoPago.cancelado
    pago.observaciones = append_line(pago.observaciones, f"CANCELADO: {motivo}")
    pago.modifiedon = ahora()
    db.flush()
    logger.info("[pagos] cancelado id=%s", pago.id)
    return pago


# ============================================================
# accruePenalty / descuentos
# ============================================================

def calcular_mora(
    db: Session,
    actor: ActorContext,
    pago_id: str,
    tasa_diaria=None,
    fecha_corte: Optional[date] = None,
) -> models.PagoFinanciamiento:
    """
    Calcula (o recalcula) la mora de una cuota abierta a `fecha_corte`.

    Tasa diaria: la indicada, o la de la cuota, o la del préstamo, o
    MORA_TASA_DIARIA_DEFAULT.

    Base: capital + interés + comisión de la cuota, ANTES de descuentos.
    Un descuento ya aplicado no rebaja la mora: se descuenta del total,
    no de lo que genera el atraso.
    """
    pago = obtener_pago(db, actor, pago_id)
    if pago.estado not in (EstadoPago.programado, EstadoPago.pendiente):
        raise InvalidStateTransitionError(
            f"Solo se calcula mora de cuotas abiertas (estado actual: {pago.estado.value})"
        )

    dias = dias_de_mora(pago.fecha_vencimiento, fecha_corte or hoy())
    if dias == 0:
        raise InvalidStateTransitionError("La cuota no tiene días de mora")

    if tasa_diaria is not None:
        tasa = to_decimal(tasa_diaria)
    elif pago.tasa_mora is not None:
        tasa = to_decimal(pago.tasa_mora)
    elif pago.prestamo.tasa_mora_diaria is not None:
        tasa = to_decimal(pago.prestamo.tasa_mora_diaria)
    else:
        tasa = settings.MORA_TASA_DIARIA_DEFAULT
    if tasa < 0:
        raise ValidationError("La tasa de mora no puede ser negativa")

    base = calcular_totales(pago.monto_capital, pago.monto_interes, pago.monto_comision, CERO)
    pago.dias_mora = dias
    pago.tasa_mora = tasa
    pago.monto_mora = calcular_monto_mora(base, tasa, dias)
    _recalcular_total(pago)
    pago.modifiedon = ahora()
    db.flush()

    logger.info(
        "[pagos] mora id=%s dias=%s tasa=%s mora=%s total=%s",
        pago.id, dias, tasa, pago.monto_mora, pago.monto_total,
    )
    return pago


def aplicar_descuento(
    db: Session,
    actor: ActorContext,
    pago_id: str,
    *,
    tipo: TipoDescuento = TipoDescuento.otro,
    monto=None,
    porcentaje=None,
    descripcion: Optional[str] = None,
) -> models.PagoFinanciamiento:
    pago = obtener_pago(db, actor, pago_id)
    if pago.estado in (EstadoPago.procesado, EstadoPago.cancelado):
        raise InvalidStateTransitionError(
            f"No se aplican descuentos a un pago {pago.estado.value}"
        )

    if porcentaje is not None:
        pct = to_decimal(porcentaje)
        if pct <= 0 or pct > 100:
            raise ValidationError("El porcentaje debe estar entre 0 y 100")
        importe = redondear(to_decimal(pago.monto_total) * pct / 100)
    else:
        pct = None
        importe = redondear(monto)
    if importe <= 0:
        raise ValidationError("El descuento debe ser mayor que cero")

    tipo = TipoDescuento(tipo)
    # lista nueva: el cambio en la columna JSON debe detectarse
    pago.descuentos = list(pago.descuentos or []) + [
        {
            "tipo": tipo.value,
            "descripcion": clean_text(descripcion) or tipo.value,
            "monto": str(importe),
            "porcentaje": str(pct) if pct is not None else None,
        }
    ]
    _recalcular_total(pago)
    pago.modifiedon = ahora()
    db.flush()

    logger.info("[pagos] descuento id=%s tipo=%s monto=%s total=%s", pago.id, tipo.value, importe, pago.monto_total)
    return pago


# ============================================================
# Lote
# ============================================================

def procesar_pagos_en_lote(db: Session, actor: ActorContext, items: Iterable) -> Dict:
    """
    `items`: objetos con pago_id + campos de ProcesarPagoIn.

    Devuelve {"exitosos": [PagoFinanciamiento], "fallidos": [{pago_id, error, detalle}]}.
    """
    exitosos: List[models.PagoFinanciamiento] = []
    fallidos: List[Dict] = []

    for item in items:
        try:
            with db.begin_nested():
                pago = procesar_pago(
                    db,
                    actor,
                    item.pago_id,
                    monto_pagado=item.monto_pagado,
                    metodo_pago=item.metodo_pago,
                    numero_operacion=item.numero_operacion,
                    fecha_pago=item.fecha_pago,
                    cuenta_origen_id=item.cuenta_origen_id,
                    observaciones=item.observaciones,
                )
            exitosos.append(pago)
        except FinanzasError as e:
            logger.warning("[pagos] lote: pago_id=%s falló (%s): %s", item.pago_id, type(e).__name__, e.message)
            fallidos.append({"pago_id": item.pago_id, "error": type(e).__name__, "detalle": e.message})

    logger.info("[pagos] lote exitosos=%s fallidos=%s", len(exitosos), len(fallidos))
    return {"exitosos": exitosos, "fallidos": fallidos}


# ============================================================
# Consultas
# ============================================================

def listar_pagos(
    db: Session,
    actor: ActorContext,
    *,
    prestamo_id: Optional[str] = None,
    estado: Optional[EstadoPago] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[models.PagoFinanciamiento]:
    stmt = select(Pago).where(Pago.user_id == actor.user_id)
    if prestamo_id:
        ensure_owner(db.get(models.Prestamo, prestamo_id), actor.user_id, "Préstamo")
        stmt = stmt.where(Pago.prestamo_id == prestamo_id)
    if estado:
        stmt = stmt.where(Pago.estado == estado)
    if fecha_desde:
        stmt = stmt.where(Pago.fecha_programada >= fecha_desde)
    if fecha_hasta:
        stmt = stmt.where(Pago.fecha_programada <= fecha_hasta)
    stmt = stmt.order_by(Pago.fecha_programada, Pago.numero_cuota).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


def estadisticas(db: Session, actor: ActorContext, prestamo_id: Optional[str] = None) -> Dict:
    """
    Totales de cuotas: por estado, programado, pagado, mora e intereses.

    eficiencia_cobranza = pagado / programado · 100 (sin cuotas canceladas).
    """
    filtro = [Pago.user_id == actor.user_id]
    if prestamo_id:
        ensure_owner(db.get(models.Prestamo, prestamo_id), actor.user_id, "Préstamo")
        filtro.append(Pago.prestamo_id == prestamo_id)

    por_estado = {
        estado.value: int(n)
        for estado, n in db.execute(
            select(Pago.estado, func.count(Pago.id)).where(*filtro).group_by(Pago.estado)
        ).all()
    }

    procesado = Pago.estado == EstadoPago.procesado
    stmt = select(
        func.count(Pago.id),
        func.coalesce(func.sum(case((Pago.estado != EstadoPago.cancelado, Pago.monto_total), else_=0)), 0),
        func.coalesce(func.sum(case((procesado, Pago.monto_pagado), else_=0)), 0),
        func.coalesce(func.sum(Pago.monto_mora), 0),
        func.coalesce(func.sum(case((procesado, Pago.monto_interes), else_=0)), 0),
    ).where(*filtro)
    total, programado, pagado, mora, intereses = db.execute(stmt).one()

    por_metodo = {
        metodo.value: {"cantidad": int(n), "monto_total": redondear(m)}
        for metodo, n, m in db.execute(
            select(Pago.metodo_pago, func.count(Pago.id), func.coalesce(func.sum(Pago.monto_pagado), 0))
            .where(*filtro, procesado, Pago.metodo_pago.is_not(None))
            .group_by(Pago.metodo_pago)
        ).all()
    }

    programado = redondear(programado)
    pagado = redondear(pagado)
    return {
        "total_pagos": int(total or 0),
        "por_estado": por_estado,
        "total_programado": programado,
        "total_pagado": pagado,
        "mora_acumulada": redondear(mora),
        "intereses_pagados": redondear(intereses),
        "eficiencia_cobranza": redondear(pagado / programado * 100) if programado > 0 else CERO,
        "por_metodo": por_metodo,
    }

# backend/app/services/movimientos_caja_service.py

"""
Registro de MOVIMIENTOS DE CAJA.

Ciclo de vida (solo hacia delante):

    pendiente -> validado -> aplicado
        \\           \\
         +-----------+--> anulado   (nunca desde 'aplicado')

Reglas de negocio:
- Efectivo exige desglose de billetes/monedas que cuadre con el monto.
- Un movimiento que afecta a una cuenta bancaria SOLO se registra a
  través del orquestador (services/integracion_service.py), que mueve
  primero el banco y entrega aquí el EnlaceBancario con los saldos.
- Anular no borra: cambia el estado y añade "ANULADO: <motivo>" a
  observaciones.

Este módulo no toca saldos bancarios ni hace commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time as dtime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backend.app.core.constants import (
    PREFIJO_EGRESO,
    PREFIJO_INGRESO,
    CategoriaCaja,
    EstadoMovimientoCaja,
    MetodoPagoCaja,
    ModuloDestino,
    TipoMovimientoCaja,
)
from backend.app.core.errors import InvalidStateTransitionError, ValidationError
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.utils.caja_utils import calcular_total_desglose, normalizar_desglose, validar_desglose
from backend.app.utils.common import CERO, ahora, ensure_owner, hoy, redondear
from backend.app.utils.id_utils import generar_codigo, generate_movimiento_caja_id, guardar_con_codigo
from backend.app.utils.text_utils import append_line, clean_text, like_pattern

logger = logging.getLogger(__name__)

Caja = models.MovimientoCaja
Estado = EstadoMovimientoCaja


@dataclass
class EnlaceBancario:
    """Datos del lado bancario ya registrado, para embeber en la caja."""
    cuenta_bancaria_id: str
    movimiento_bancario_id: str
    saldo_banco_anterior: Decimal
    saldo_banco_posterior: Decimal


def _prefijo(tipo: TipoMovimientoCaja) -> str:
    return PREFIJO_INGRESO if TipoMovimientoCaja(tipo) == TipoMovimientoCaja.ingreso else PREFIJO_EGRESO


def _codigo_caja(db: Session, user_id: str, tipo: TipoMovimientoCaja, fecha: datetime) -> str:
    return generar_codigo(db, Caja, _prefijo(tipo), user_id, fecha=fecha.date(), ancho=4)


def obtener_movimiento(db: Session, actor: ActorContext, movimiento_id: str) -> models.MovimientoCaja:
    return ensure_owner(db.get(Caja, movimiento_id), actor.user_id, "Movimiento de caja")


# ============================================================
# Registro
# ============================================================

def registrar_movimiento(
    db: Session,
    actor: ActorContext,
    *,
    tipo: TipoMovimientoCaja,
    monto,
    concepto: str,
    categoria: CategoriaCaja,
    metodo_pago: MetodoPagoCaja,
    descripcion: Optional[str] = None,
    desglose_efectivo: Optional[dict] = None,
    detalles_pago: Optional[str] = None,
    fecha: Optional[datetime] = None,
    afecta_cuenta_bancaria: bool = False,
    enlace: Optional[EnlaceBancario] = None,
    movimiento_id: Optional[str] = None,
    estado: EstadoMovimientoCaja = EstadoMovimientoCaja.pendiente,
    modulo_destino: Optional[ModuloDestino] = None,
    referencia_modulo: Optional[str] = None,
) -> models.MovimientoCaja:
    """
    Guarda un movimiento de caja.

    - movimiento_id: el orquestador lo genera antes para que el movimiento
      bancario pueda apuntar a esta caja.
    - estado: 'pendiente' por defecto; otros módulos (préstamos) registran
      directamente en 'aplicado'.
    """
    tipo = TipoMovimientoCaja(tipo)
    metodo_pago = MetodoPagoCaja(metodo_pago)
    monto = redondear(monto)
    if monto < Decimal("0.01"):
        raise ValidationError("El monto mínimo es 0.01")

    concepto = clean_text(concepto)
    if not concepto:
        raise ValidationError("El concepto es obligatorio")
    if len(concepto) > 200:
        raise ValidationError("El concepto no puede superar los 200 caracteres")

    try:
        categoria = CategoriaCaja(categoria)
    except ValueError:
        raise ValidationError(f"Categoría de caja no válida: {categoria}")

    if afecta_cuenta_bancaria and enlace is None:
        raise ValidationError(
            "Un movimiento que afecta a una cuenta bancaria debe registrarse mediante la integración caja-banco"
        )

    desglose = None
    if metodo_pago == MetodoPagoCaja.efectivo:
        desglose = validar_desglose(monto, desglose_efectivo)

    fecha = fecha or ahora()
    now = ahora()
    mov = Caja(
        id=movimiento_id or generate_movimiento_caja_id(),
        codigo=_codigo_caja(db, actor.user_id, tipo, fecha),
        user_id=actor.user_id,
        usuario_nombre=actor.display_name or None,
        tipo=tipo,
        monto=monto,
        concepto=concepto,
        descripcion=clean_text(descripcion),
        categoria=categoria,
        metodo_pago=metodo_pago,
        desglose_efectivo=desglose,
        detalles_pago=clean_text(detalles_pago),
        estado=EstadoMovimientoCaja(estado),
        fecha=fecha,
        afecta_cuenta_bancaria=bool(afecta_cuenta_bancaria),
        modulo_destino=modulo_destino,
        referencia_modulo=clean_text(referencia_modulo),
        fecha_aplicacion=now if estado == Estado.aplicado else None,
        createon=now,
        modifiedon=now,
    )
    if enlace is not None:
        mov.cuenta_bancaria_id = enlace.cuenta_bancaria_id
        mov.movimiento_bancario_id = enlace.movimiento_bancario_id
        mov.saldo_banco_anterior = enlace.saldo_banco_anterior
        mov.saldo_banco_posterior = enlace.saldo_banco_posterior

    guardar_con_codigo(db, mov, lambda: _codigo_caja(db, actor.user_id, tipo, fecha))
    logger.info(
        "[caja] registrado id=%s codigo=%s tipo=%s monto=%s metodo=%s banco=%s",
        mov.id, mov.codigo, tipo.value, monto, metodo_pago.value, mov.movimiento_bancario_id,
    )
    return mov


# ============================================================
# Transiciones
# ============================================================

def validar(db: Session, actor: ActorContext, movimiento_id: str) -> models.MovimientoCaja:
    mov = obtener_movimiento(db, actor, movimiento_id)
    if mov.estado != Estado.pendiente:
        raise InvalidStateTransitionError(
            f"Solo se validan movimientos pendientes (estado actual: {mov.estado.value})"
        )
    now = ahora()
    mov.estado = Estado.validado
    mov.validado_por = actor.user_id
    mov.fecha_validacion = now
    mov.modifiedon = now
    db.flush()
    logger.info("[caja] validado id=%s por=%s", mov.id, actor.user_id)
    return mov


def aplicar(
    db: Session,
    actor: ActorContext,
    movimiento_id: str,
    modulo_destino: ModuloDestino,
    referencia_modulo: Optional[str] = None,
) -> models.MovimientoCaja:
    mov = obtener_movimiento(db, actor, movimiento_id)
    if mov.estado not in (Estado.pendiente, Estado.validado):
        raise InvalidStateTransitionError(
            f"Solo se aplican movimientos pendientes o validados (estado actual: {mov.estado.value})"
        )
    now = ahora()
    mov.estado = Estado.aplicado
    mov.modulo_destino = ModuloDestino(modulo_destino)
    mov.referencia_modulo = clean_text(referencia_modulo)
    mov.fecha_aplicacion = now
    mov.modifiedon = now
    db.flush()
    logger.info("[caja] aplicado id=%s modulo=%s", mov.id, mov.modulo_destino.value)
    return mov


def anular(
    db: Session,
    actor: ActorContext,
    movimiento_id: str,
    motivo: str,
    *,
    desde_integracion: bool = False,
) -> models.MovimientoCaja:
    """
    Anula el movimiento de caja.

    Si está enlazado a un movimiento bancario, solo el orquestador puede
    anularlo (desde_integracion=True) para revertir también el banco.
    """
    mov = obtener_movimiento(db, actor, movimiento_id)
    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo de anulación es obligatorio")
    if mov.estado == Estado.anulado:
        raise InvalidStateTransitionError("El movimiento ya está anulado")
    if mov.estado == Estado.aplicado:
        raise InvalidStateTransitionError("No se puede anular un movimiento ya aplicado")
    if mov.movimiento_bancario_id and not desde_integracion:
        raise InvalidStateTransitionError(
            "El movimiento está enlazado a un movimiento bancario; anúlelo mediante la integración caja-banco"
        )

    mov.estado = Estado.anulado
    mov.observaciones = append_line(mov.observaciones, f"ANULADO: {motivo}")
    mov.modifiedon = ahora()
    db.flush()
    logger.info("[caja] anulado id=%s", mov.id)
    return mov


# ============================================================
# Consultas
# ============================================================

def _dia(fecha: date):
    return datetime.combine(fecha, dtime.min), datetime.combine(fecha, dtime.max)


def listar_movimientos(
    db: Session,
    actor: ActorContext,
    *,
    tipo: Optional[TipoMovimientoCaja] = None,
    categoria: Optional[CategoriaCaja] = None,
    estado: Optional[EstadoMovimientoCaja] = None,
    metodo_pago: Optional[MetodoPagoCaja] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.MovimientoCaja]:
    stmt = select(Caja).where(Caja.user_id == actor.user_id)
    if tipo:
        stmt = stmt.where(Caja.tipo == tipo)
    if categoria:
        stmt = stmt.where(Caja.categoria == categoria)
    if estado:
        stmt = stmt.where(Caja.estado == estado)
    if metodo_pago:
        stmt = stmt.where(Caja.metodo_pago == metodo_pago)
    if fecha_desde:
        stmt = stmt.where(Caja.fecha >= _dia(fecha_desde)[0])
    if fecha_hasta:
        stmt = stmt.where(Caja.fecha <= _dia(fecha_hasta)[1])

    pattern = like_pattern(q)
    if pattern:
        stmt = stmt.where(
            or_(
                func.lower(Caja.concepto).like(pattern),
                func.lower(func.coalesce(Caja.descripcion, "")).like(pattern),
                func.lower(Caja.codigo).like(pattern),
            )
        )

    stmt = stmt.order_by(Caja.fecha.desc(), Caja.codigo.desc()).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


def _movimientos_del_dia(db: Session, user_id: str, fecha: date) -> List[models.MovimientoCaja]:
    ini, fin = _dia(fecha)
    stmt = select(Caja).where(
        Caja.user_id == user_id,
        Caja.estado != Estado.anulado,
        Caja.fecha >= ini,
        Caja.fecha <= fin,
    )
    return list(db.execute(stmt).scalars().all())


def resumen_dia(db: Session, actor: ActorContext, fecha: Optional[date] = None) -> Dict:
    """Ingresos, egresos y saldo del día, total y por método de pago."""
    fecha = fecha or hoy()
    por_metodo: Dict[MetodoPagoCaja, Dict] = {}
    ingresos = egresos = CERO
    movimientos = _movimientos_del_dia(db, actor.user_id, fecha)

    for m in movimientos:
        r = por_metodo.setdefault(
            m.metodo_pago,
            {"metodo_pago": m.metodo_pago, "ingresos": CERO, "egresos": CERO, "saldo": CERO, "cantidad": 0},
        )
        monto = redondear(m.monto)
        if m.tipo == TipoMovimientoCaja.ingreso:
            r["ingresos"] += monto
            ingresos += monto
        else:
            r["egresos"] += monto
            egresos += monto
        r["saldo"] = r["ingresos"] - r["egresos"]
        r["cantidad"] += 1

    return {
        "fecha": fecha,
        "total_ingresos": ingresos,
        "total_egresos": egresos,
        "saldo": ingresos - egresos,
        "cantidad": len(movimientos),
        "por_metodo": sorted(por_metodo.values(), key=lambda r: r["metodo_pago"].value),
    }


def arqueo(
    db: Session,
    actor: ActorContext,
    fecha: Optional[date] = None,
    conteo: Optional[dict] = None,
) -> Dict:
    """
    Arqueo de caja del día.

    - efectivo_esperado: ingresos - egresos en efectivo (no anulados).
    - desglose_esperado: neto por denominación según los desgloses.
    - Con `conteo` (desglose contado) se informa la diferencia.
    """
    fecha = fecha or hoy()
    esperado = CERO
    neto = normalizar_desglose(None)

    for m in _movimientos_del_dia(db, actor.user_id, fecha):
        if m.metodo_pago != MetodoPagoCaja.efectivo:
            continue
        signo = 1 if m.tipo == TipoMovimientoCaja.ingreso else -1
        esperado += signo * redondear(m.monto)
        d = normalizar_desglose(m.desglose_efectivo)
        for grupo in ("billetes", "monedas"):
            for clave, n in d[grupo].items():
                neto[grupo][clave] += signo * n

    out = {
        "fecha": fecha,
        "efectivo_esperado": esperado,
        "efectivo_contado": None,
        "diferencia": None,
        "cuadra": None,
        "desglose_esperado": neto,
        "desglose_contado": None,
    }
    if conteo is not None:
        contado = calcular_total_desglose(conteo)
        out.update(
            efectivo_contado=contado,
            diferencia=contado - esperado,
            cuadra=contado == esperado,
            desglose_contado=normalizar_desglose(conteo),
        )
        if contado != esperado:
            logger.warning(
                "[caja] arqueo con diferencia user_id=%s fecha=%s esperado=%s contado=%s",
                actor.user_id, fecha, esperado, contado,
            )
    return out

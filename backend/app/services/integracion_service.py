# backend/app/services/integracion_service.py

"""
Integración CAJA <-> BANCO.

Un mismo hecho de negocio ("pago a proveedor con transferencia") puede
quedar reflejado en la caja y en una cuenta bancaria. Este módulo es el
único que escribe en ambos libros a la vez.

Orden de escritura (misma transacción de la sesión):

    1) banco  -> movimiento bancario + saldo de la cuenta
    2) caja   -> movimiento de caja con saldo_banco_anterior/posterior
                 y el id del movimiento bancario

El router hace un único commit al final. Si falla el paso 2 se registra
en el log qué lado se había escrito (con sus ids) y se relanza el error;
al cerrarse la sesión sin commit se deshacen los dos.

Anulación: se anula la caja y, si tiene lado bancario, se anula el
movimiento bancario con su compensación. El saldo se restaura UNA sola
vez, a través del movimiento de compensación.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from backend.app.core.constants import (
    EstadoMovimientoBancario,
    EstadoMovimientoCaja,
    MetodoPagoCaja,
    TipoMovimientoBancario,
    TipoMovimientoCaja,
    mapear_categoria_caja_a_banco,
    mapear_metodo_caja_a_banco,
)
from backend.app.core.errors import (
    AccountInactiveError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    ValidationError,
)
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.services import movimientos_bancarios_service as bancos
from backend.app.services import movimientos_caja_service as caja
from backend.app.utils.caja_utils import validar_desglose
from backend.app.utils.common import ensure_owner, redondear
from backend.app.utils.id_utils import generar_numero_operacion, generate_movimiento_caja_id
from backend.app.utils.text_utils import clean_text

logger = logging.getLogger(__name__)


def _desglose_dict(valor):
    if valor is None:
        return None
    if hasattr(valor, "model_dump"):
        return valor.model_dump()
    return dict(valor)


def _descripcion_bancaria(concepto: str, descripcion) -> str:
    descripcion = clean_text(descripcion)
    texto = f"[CAJA] {concepto}"
    if descripcion:
        texto = f"{texto} - {descripcion}"
    return texto[:300]


# ============================================================
# postIntegrated
# ============================================================

def registrar_movimiento_integrado(db: Session, actor: ActorContext, data) -> Dict:
    """
    Registra un movimiento de caja y, si afecta_cuenta_bancaria, su
    movimiento bancario enlazado.

    `data` es un MovimientoCajaCreate.

    Devuelve:
        {
          "movimiento_caja": MovimientoCaja,
          "movimiento_bancario": MovimientoBancario | None,
          "resumen": {"cuenta_id", "saldo_anterior", "saldo_posterior"} | None,
        }
    """
    tipo = TipoMovimientoCaja(data.tipo)
    desglose = _desglose_dict(data.desglose_efectivo)
    comunes = dict(
        tipo=tipo,
        monto=data.monto,
        concepto=data.concepto,
        categoria=data.categoria,
        metodo_pago=data.metodo_pago,
        descripcion=data.descripcion,
        desglose_efectivo=desglose,
        detalles_pago=data.detalles_pago,
        fecha=data.fecha,
    )

    if not data.afecta_cuenta_bancaria:
        mov_caja = caja.registrar_movimiento(db, actor, **comunes)
        return {"movimiento_caja": mov_caja, "movimiento_bancario": None, "resumen": None}

    if not data.cuenta_bancaria_id:
        raise ValidationError("cuenta_bancaria_id es obligatoria si el movimiento afecta a una cuenta bancaria")

    monto = redondear(data.monto)
    concepto = clean_text(data.concepto)
    if not concepto:
        raise ValidationError("El concepto es obligatorio")
    if MetodoPagoCaja(data.metodo_pago) == MetodoPagoCaja.efectivo:
        # antes de tocar el banco
        validar_desglose(monto, desglose)

    cuenta = ensure_owner(
        db.get(models.CuentaBancaria, data.cuenta_bancaria_id), actor.user_id, "Cuenta bancaria"
    )
    if not cuenta.activa:
        raise AccountInactiveError(f"La cuenta {cuenta.codigo} está inactiva")

    saldo_anterior = redondear(cuenta.saldo_actual)
    if tipo == TipoMovimientoCaja.egreso:
        if monto > saldo_anterior:
            raise InsufficientFundsError(disponible=saldo_anterior, solicitado=monto)
        tipo_banco = TipoMovimientoBancario.egreso
    else:
        tipo_banco = TipoMovimientoBancario.ingreso

    caja_id = generate_movimiento_caja_id()
    numero_operacion = clean_text(data.numero_operacion) or generar_numero_operacion("CAJA")

    # 1) Banco: el UPDATE condicional es el control real de fondos
    mov_banco = bancos.registrar_movimiento(
        db,
        actor,
        cuenta_id=cuenta.id,
        tipo=tipo_banco,
        categoria=mapear_categoria_caja_a_banco(tipo, data.categoria),
        monto=monto,
        descripcion=_descripcion_bancaria(concepto, data.descripcion),
        metodo_pago=mapear_metodo_caja_a_banco(data.metodo_pago),
        numero_operacion=numero_operacion,
        fecha=data.fecha,
        movimiento_caja_id=caja_id,
    )

    # 2) Caja, con la foto del saldo bancario
    try:
        mov_caja = caja.registrar_movimiento(
            db,
            actor,
            **comunes,
            afecta_cuenta_bancaria=True,
            enlace=caja.EnlaceBancario(
                cuenta_bancaria_id=cuenta.id,
                movimiento_bancario_id=mov_banco.id,
                saldo_banco_anterior=mov_banco.saldo_anterior,
                saldo_banco_posterior=mov_banco.saldo_posterior,
            ),
            movimiento_id=caja_id,
        )
    except Exception:
        logger.exception(
            "[integracion] banco registrado (movimiento_bancario_id=%s cuenta_id=%s) "
            "pero falló la caja (movimiento_caja_id=%s); se deshace la operación",
            mov_banco.id, cuenta.id, caja_id,
        )
        raise

    logger.info(
        "[integracion] registrado caja=%s banco=%s cuenta_id=%s saldo %s -> %s",
        mov_caja.id, mov_banco.id, cuenta.id, mov_banco.saldo_anterior, mov_banco.saldo_posterior,
    )
    return {
        "movimiento_caja": mov_caja,
        "movimiento_bancario": mov_banco,
        "resumen": {
            "cuenta_id": cuenta.id,
            "saldo_anterior": mov_banco.saldo_anterior,
            "saldo_posterior": mov_banco.saldo_posterior,
        },
    }


# ============================================================
# reverseIntegrated
# ============================================================

def anular_movimiento_integrado(db: Session, actor: ActorContext, movimiento_caja_id: str, motivo: str) -> Dict:
    """
    Anula un movimiento de caja y, si lo tiene, su lado bancario.

    Devuelve:
        {
          "movimiento_caja": MovimientoCaja (anulado),
          "movimiento_bancario_anulado": MovimientoBancario | None,
          "movimiento_compensacion": MovimientoBancario | None,
        }
    """
    mov_caja = caja.obtener_movimiento(db, actor, movimiento_caja_id)
    if mov_caja.estado == EstadoMovimientoCaja.anulado:
        raise InvalidStateTransitionError("El movimiento de caja ya está anulado")

    mov_banco = None
    if mov_caja.movimiento_bancario_id:
        mov_banco = db.get(models.MovimientoBancario, mov_caja.movimiento_bancario_id)
        if mov_banco is None:
            logger.error(
                "[integracion] caja=%s apunta a movimiento_bancario_id=%s inexistente",
                mov_caja.id, mov_caja.movimiento_bancario_id,
            )
            raise InvalidStateTransitionError(
                "El movimiento bancario enlazado no existe; revise la conciliación caja-banco"
            )

    caja.anular(db, actor, mov_caja.id, motivo, desde_integracion=True)

    if mov_banco is None:
        return {"movimiento_caja": mov_caja, "movimiento_bancario_anulado": None, "movimiento_compensacion": None}

    if mov_banco.estado == EstadoMovimientoBancario.anulado:
        logger.warning(
            "[integracion] caja=%s anulada; el movimiento bancario %s ya estaba anulado",
            mov_caja.id, mov_banco.id,
        )
        return {"movimiento_caja": mov_caja, "movimiento_bancario_anulado": mov_banco, "movimiento_compensacion": None}

    try:
        compensacion = bancos.anular_movimiento(db, actor, mov_banco.id, motivo, desde_caja=True)
    except Exception:
        logger.exception(
            "[integracion] caja anulada (movimiento_caja_id=%s) pero falló la anulación bancaria "
            "(movimiento_bancario_id=%s cuenta_id=%s); se deshace la operación",
            mov_caja.id, mov_banco.id, mov_banco.cuenta_id,
        )
        raise

    logger.info(
        "[integracion] anulado caja=%s banco=%s compensacion=%s",
        mov_caja.id, mov_banco.id, compensacion.id,
    )
    return {
        "movimiento_caja": mov_caja,
        "movimiento_bancario_anulado": mov_banco,
        "movimiento_compensacion": compensacion,
    }


# ============================================================
# Conciliación y resumen
# ============================================================

def conciliar_integracion(db: Session, actor: ActorContext) -> Dict:
    """
    Busca descuadres entre caja y banco (solo lectura):

    - caja_sin_enlace: afecta_cuenta_bancaria sin movimiento bancario.
    - enlace_roto: la caja apunta a un movimiento bancario que no existe.
    - banco_sin_caja: movimiento bancario originado en caja cuya caja no
      existe o no apunta de vuelta.
    - estado_inconsistente: uno de los dos lados anulado y el otro no.
    """
    Caja = models.MovimientoCaja
    Mov = models.MovimientoBancario
    incidencias: List[Dict] = []

    cajas = db.execute(
        select(Caja).where(
            Caja.user_id == actor.user_id,
            (Caja.afecta_cuenta_bancaria.is_(True)) | (Caja.movimiento_bancario_id.is_not(None)),
        )
    ).scalars().all()

    for c in cajas:
        if not c.movimiento_bancario_id:
            incidencias.append({
                "tipo": "caja_sin_enlace",
                "movimiento_caja_id": c.id,
                "movimiento_bancario_id": None,
                "detalle": f"{c.codigo} afecta a banco pero no tiene movimiento bancario",
            })
            continue
        b = db.get(Mov, c.movimiento_bancario_id)
        if b is None:
            incidencias.append({
                "tipo": "enlace_roto",
                "movimiento_caja_id": c.id,
                "movimiento_bancario_id": c.movimiento_bancario_id,
                "detalle": f"{c.codigo} apunta a un movimiento bancario inexistente",
            })
            continue
        caja_anulada = c.estado == EstadoMovimientoCaja.anulado
        banco_anulado = b.estado == EstadoMovimientoBancario.anulado
        if caja_anulada != banco_anulado:
            incidencias.append({
                "tipo": "estado_inconsistente",
                "movimiento_caja_id": c.id,
                "movimiento_bancario_id": b.id,
                "detalle": f"caja {c.codigo} = {c.estado.value}, banco {b.codigo} = {b.estado.value}",
            })

    bancarios = db.execute(
        select(Mov).where(
            Mov.user_id == actor.user_id,
            Mov.movimiento_caja_id.is_not(None),
            Mov.movimiento_relacionado_id.is_(None),
        )
    ).scalars().all()

    for b in bancarios:
        c = db.get(Caja, b.movimiento_caja_id)
        if c is None or c.movimiento_bancario_id != b.id:
            incidencias.append({
                "tipo": "banco_sin_caja",
                "movimiento_caja_id": b.movimiento_caja_id,
                "movimiento_bancario_id": b.id,
                "detalle": f"{b.codigo} no tiene un movimiento de caja que lo referencie",
            })

    if incidencias:
        logger.warning("[integracion] conciliación user_id=%s incidencias=%s", actor.user_id, len(incidencias))

    return {
        "revisados_caja": len(cajas),
        "revisados_banco": len(bancarios),
        "incidencias": incidencias,
        "cuadra": not incidencias,
    }


def resumen_integracion(db: Session, actor: ActorContext) -> Dict:
    """Totales de movimientos de caja integrados con banco vs solo caja (sin anulados)."""
    Caja = models.MovimientoCaja

    def _suma(integrado: bool, tipo: TipoMovimientoCaja):
        cond = (Caja.movimiento_bancario_id.is_not(None)) if integrado else (Caja.movimiento_bancario_id.is_(None))
        return func.coalesce(func.sum(case((cond & (Caja.tipo == tipo), Caja.monto), else_=0)), 0)

    stmt = select(
        func.coalesce(func.sum(case((Caja.movimiento_bancario_id.is_not(None), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Caja.movimiento_bancario_id.is_(None), 1), else_=0)), 0),
        _suma(True, TipoMovimientoCaja.ingreso),
        _suma(True, TipoMovimientoCaja.egreso),
        _suma(False, TipoMovimientoCaja.ingreso),
        _suma(False, TipoMovimientoCaja.egreso),
    ).where(
        Caja.user_id == actor.user_id,
        Caja.estado != EstadoMovimientoCaja.anulado,
    )
    integrados, solo_caja, ii, ie, ci, ce = db.execute(stmt).one()
    return {
        "integrados": int(integrados or 0),
        "solo_caja": int(solo_caja or 0),
        "total_integrado_ingresos": redondear(ii),
        "total_integrado_egresos": redondear(ie),
        "total_solo_caja_ingresos": redondear(ci),
        "total_solo_caja_egresos": redondear(ce),
    }

# backend/app/services/movimientos_bancarios_service.py

"""
Registro de MOVIMIENTOS BANCARIOS (libro de la cuenta).

Objetivo:
- Único punto por el que se mueve dinero en una cuenta bancaria.
- El libro es "append-mostly": nada se borra ni se edita en importe;
  anular = movimiento de compensación + original marcado 'anulado'.

Incluye:

- registrar_movimiento(db, actor, ...):
    valida cuenta (existe, es del actor, está activa), aplica el saldo
    con las primitivas de saldo_service (UPDATE condicional) y guarda
    el movimiento con saldo_anterior / saldo_posterior congelados.

- registrar_ingreso / registrar_egreso / registrar_transferencia.

- anular_movimiento(db, actor, movimiento_id, motivo):
    crea el movimiento inverso por el MISMO camino (registrar_movimiento),
    así el saldo se deshace una sola vez y con control de fondos.

- Consultas: listar, obtener, resumen por categoría, estadísticas.

No hacemos commit aquí: el router (o el servicio orquestador) decide.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time as dtime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from backend.app.core.constants import (
    PREFIJO_EGRESO,
    PREFIJO_INGRESO,
    PREFIJO_TRANSF_ENTRADA,
    PREFIJO_TRANSF_SALIDA,
    SUBCATEGORIA_SALDO_INICIAL,
    TIPOS_ABONO,
    CategoriaBancaria,
    EstadoMovimientoBancario,
    MetodoPagoBancario,
    TipoMovimientoBancario,
)
from backend.app.core.errors import (
    AccountInactiveError,
    AlreadyExistsError,
    InvalidStateTransitionError,
    ValidationError,
)
from backend.app.core.security import ActorContext
from backend.app.db import models
from backend.app.services import saldo_service
from backend.app.utils.common import CERO, ahora, ensure_owner, redondear
from backend.app.utils.id_utils import (
    generar_codigo,
    generar_numero_operacion,
    generate_movimiento_bancario_id,
    generate_transferencia_id,
    guardar_con_codigo,
)
from backend.app.utils.text_utils import append_line, clean_text, like_pattern

logger = logging.getLogger(__name__)

Mov = models.MovimientoBancario
Estado = EstadoMovimientoBancario

_PREFIJOS = {
    TipoMovimientoBancario.ingreso: PREFIJO_INGRESO,
    TipoMovimientoBancario.egreso: PREFIJO_EGRESO,
    TipoMovimientoBancario.transferencia_entrada: PREFIJO_TRANSF_ENTRADA,
    TipoMovimientoBancario.transferencia_salida: PREFIJO_TRANSF_SALIDA,
}


# ============================================================
# Helpers
# ============================================================

def existe_numero_operacion(db: Session, numero_operacion: str) -> bool:
    return db.execute(
        select(Mov.id).where(Mov.numero_operacion == numero_operacion).limit(1)
    ).first() is not None


def _codigo_movimiento(db: Session, user_id: str, tipo: TipoMovimientoBancario, fecha: datetime) -> str:
    return generar_codigo(db, Mov, _PREFIJOS[tipo], user_id, fecha=fecha.date(), ancho=3)


def _categoria(valor) -> CategoriaBancaria:
    try:
        return CategoriaBancaria(valor)
    except ValueError:
        raise ValidationError(f"Categoría bancaria no válida: {valor}")


def obtener_movimiento(db: Session, actor: ActorContext, movimiento_id: str) -> models.MovimientoBancario:
    return ensure_owner(db.get(Mov, movimiento_id), actor.user_id, "Movimiento bancario")


# ============================================================
# Registro (post)
# ============================================================

def registrar_movimiento(
    db: Session,
    actor: ActorContext,
    *,
    cuenta_id: str,
    tipo: TipoMovimientoBancario,
    categoria: CategoriaBancaria,
    monto,
    descripcion: str,
    subcategoria: Optional[str] = None,
    metodo_pago: MetodoPagoBancario = MetodoPagoBancario.transferencia,
    numero_operacion: Optional[str] = None,
    beneficiario: Optional[str] = None,
    fecha: Optional[datetime] = None,
    cuenta_destino_id: Optional[str] = None,
    transferencia_id: Optional[str] = None,
    movimiento_caja_id: Optional[str] = None,
    movimiento_relacionado_id: Optional[str] = None,
    observaciones: Optional[str] = None,
) -> models.MovimientoBancario:
    """
    Registra un movimiento procesado y mueve el saldo de la cuenta.

    Pasos:
    1. Validar monto (> 0), categoría, descripción y número de operación.
    2. Cuenta: existe -> es del actor -> está activa.
    3. Abonar / cargar con UPDATE condicional (saldo_service).
    4. Guardar el movimiento con el saldo antes/después de ese UPDATE.
    """
    tipo = TipoMovimientoBancario(tipo)
    categoria = _categoria(categoria)
    monto = redondear(monto)
    if monto <= 0:
        raise ValidationError("El monto debe ser mayor que cero")

    descripcion = clean_text(descripcion)
    if not descripcion:
        raise ValidationError("La descripción es obligatoria")

    cuenta = ensure_owner(db.get(models.CuentaBancaria, cuenta_id), actor.user_id, "Cuenta bancaria")
    if not cuenta.activa:
        raise AccountInactiveError(f"La cuenta {cuenta.codigo} está inactiva")

    numero_operacion = clean_text(numero_operacion) or generar_numero_operacion(_PREFIJOS[tipo])
    if existe_numero_operacion(db, numero_operacion):
        raise AlreadyExistsError(f"Ya existe un movimiento con número de operación {numero_operacion}")

    fecha = fecha or ahora()

    if tipo in TIPOS_ABONO:
        saldo_anterior, saldo_posterior = saldo_service.acreditar(db, cuenta.id, monto)
    else:
        saldo_anterior, saldo_posterior = saldo_service.debitar(db, cuenta.id, monto)

    now = ahora()
    mov = Mov(
        id=generate_movimiento_bancario_id(),
        codigo=_codigo_movimiento(db, actor.user_id, tipo, fecha),
        user_id=actor.user_id,
        cuenta_id=cuenta.id,
        cuenta_destino_id=cuenta_destino_id,
        tipo=tipo,
        categoria=categoria,
        subcategoria=clean_text(subcategoria),
        monto=monto,
        moneda=cuenta.moneda,
        descripcion=descripcion[:300],
        beneficiario=clean_text(beneficiario),
        metodo_pago=MetodoPagoBancario(metodo_pago),
        numero_operacion=numero_operacion,
        fecha=fecha,
        saldo_anterior=saldo_anterior,
        saldo_posterior=saldo_posterior,
        estado=Estado.procesado,
        es_saldo_inicial=False,
        movimiento_caja_id=movimiento_caja_id,
        movimiento_relacionado_id=movimiento_relacionado_id,
        transferencia_id=transferencia_id,
        observaciones=clean_text(observaciones),
        createon=now,
        modifiedon=now,
    )
    guardar_con_codigo(db, mov, lambda: _codigo_movimiento(db, actor.user_id, tipo, fecha))

    logger.info(
        "[movimientos_bancarios] registrado id=%s codigo=%s cuenta_id=%s tipo=%s monto=%s saldo %s -> %s",
        mov.id, mov.codigo, cuenta.id, tipo.value, monto, saldo_anterior, saldo_posterior,
    )
    return mov


def registrar_saldo_inicial(db: Session, cuenta: models.CuentaBancaria) -> Optional[models.MovimientoBancario]:
    """
    Movimiento de apertura de una cuenta con saldo_inicial > 0.

    Es solo rastro: el saldo ya nace con ese valor, así que NO pasa por
    saldo_service y queda fuera de la conciliación (es_saldo_inicial).
    """
    inicial = redondear(cuenta.saldo_inicial)
    if inicial <= 0:
        return None

    fecha = ahora()
    mov = Mov(
        id=generate_movimiento_bancario_id(),
        codigo=_codigo_movimiento(db, cuenta.user_id, TipoMovimientoBancario.ingreso, fecha),
        user_id=cuenta.user_id,
        cuenta_id=cuenta.id,
        tipo=TipoMovimientoBancario.ingreso,
        categoria=CategoriaBancaria.ingreso_extra,
        subcategoria=SUBCATEGORIA_SALDO_INICIAL,
        monto=inicial,
        moneda=cuenta.moneda,
        descripcion=f"Saldo inicial de la cuenta {cuenta.nombre}"[:300],
        metodo_pago=MetodoPagoBancario.otro,
        numero_operacion=f"INICIAL-{cuenta.id}",
        fecha=fecha,
        saldo_anterior=CERO,
        saldo_posterior=inicial,
        estado=Estado.procesado,
        es_saldo_inicial=True,
        createon=fecha,
        modifiedon=fecha,
    )
    return guardar_con_codigo(
        db, mov, lambda: _codigo_movimiento(db, cuenta.user_id, TipoMovimientoBancario.ingreso, fecha)
    )


def registrar_ingreso(db: Session, actor: ActorContext, **kwargs) -> models.MovimientoBancario:
    return registrar_movimiento(db, actor, tipo=TipoMovimientoBancario.ingreso, **kwargs)


def registrar_egreso(db: Session, actor: ActorContext, **kwargs) -> models.MovimientoBancario:
    return registrar_movimiento(db, actor, tipo=TipoMovimientoBancario.egreso, **kwargs)


def registrar_transferencia(
    db: Session,
    actor: ActorContext,
    *,
    cuenta_origen_id: str,
    cuenta_destino_id: str,
    monto,
    descripcion: str,
    categoria: CategoriaBancaria = CategoriaBancaria.transferencia_entre_cuentas,
    numero_operacion: Optional[str] = None,
    fecha: Optional[datetime] = None,
) -> Tuple[models.MovimientoBancario, models.MovimientoBancario]:
    """
    Transferencia entre dos cuentas del actor.

    - Misma moneda en ambas cuentas (no hay conversión).
    - Primero la salida (puede fallar por fondos), luego la entrada.
    - Ambas patas comparten transferencia_id; cada una apunta a la otra
      cuenta en cuenta_destino_id (contra-cuenta).
    """
    if cuenta_origen_id == cuenta_destino_id:
        raise ValidationError("La cuenta de origen y la de destino no pueden ser la misma")

    origen = ensure_owner(db.get(models.CuentaBancaria, cuenta_origen_id), actor.user_id, "Cuenta de origen")
    destino = ensure_owner(db.get(models.CuentaBancaria, cuenta_destino_id), actor.user_id, "Cuenta de destino")
    if origen.moneda != destino.moneda:
        raise ValidationError(
            f"Las cuentas tienen monedas distintas ({origen.moneda.value} / {destino.moneda.value})"
        )

    transferencia_id = generate_transferencia_id()
    base = clean_text(numero_operacion) or transferencia_id
    fecha = fecha or ahora()

    salida = registrar_movimiento(
        db,
        actor,
        cuenta_id=origen.id,
        tipo=TipoMovimientoBancario.transferencia_salida,
        categoria=categoria,
        monto=monto,
        descripcion=f"{descripcion} (a {destino.codigo})",
        numero_operacion=f"{base}-S",
        fecha=fecha,
        cuenta_destino_id=destino.id,
        transferencia_id=transferencia_id,
    )
    entrada = registrar_movimiento(
        db,
        actor,
        cuenta_id=destino.id,
        tipo=TipoMovimientoBancario.transferencia_entrada,
        categoria=categoria,
        monto=monto,
        descripcion=f"{descripcion} (desde {origen.codigo})",
        numero_operacion=f"{base}-E",
        fecha=fecha,
        cuenta_destino_id=origen.id,
        transferencia_id=transferencia_id,
    )
    logger.info(
        "[movimientos_bancarios] transferencia %s %s -> %s monto=%s",
        transferencia_id, origen.id, destino.id, salida.monto,
    )
    return salida, entrada


# ============================================================
# Anulación (reverse)
# ============================================================

def anular_movimiento(
    db: Session,
    actor: ActorContext,
    movimiento_id: str,
    motivo: str,
    *,
    desde_caja: bool = False,
    _con_pareja: bool = True,
) -> models.MovimientoBancario:
    """
    Anula un movimiento PROCESADO con un movimiento de compensación.

    Reglas:
    - Solo desde estado 'procesado'.
    - Una compensación no se anula (su original ya está anulado).
    - El movimiento de apertura (saldo inicial) no se anula: se usa un
      ajuste de saldo.
    - Un movimiento generado desde caja solo se anula desde caja
      (desde_caja=True), para que ambos lados queden coherentes.
    - Si es una pata de transferencia, se anula también la otra pata.

    El compensatorio es de tipo contrario (ingreso <-> egreso) y pasa por
    registrar_movimiento: si era un ingreso ya gastado, falla por fondos.

    Devuelve el movimiento de compensación.
    """
    mov = obtener_movimiento(db, actor, movimiento_id)

    motivo = clean_text(motivo)
    if not motivo:
        raise ValidationError("El motivo de anulación es obligatorio")
    if mov.estado != Estado.procesado:
        raise InvalidStateTransitionError(
            f"Solo se pueden anular movimientos procesados (estado actual: {mov.estado.value})"
        )
    if mov.es_saldo_inicial:
        raise InvalidStateTransitionError(
            "El movimiento de saldo inicial no se puede anular; use un ajuste de saldo"
        )
    if mov.movimiento_relacionado_id:
        raise InvalidStateTransitionError(
            "Un movimiento de compensación no se puede anular; registre un movimiento nuevo"
        )
    if mov.movimiento_caja_id and not desde_caja:
        raise InvalidStateTransitionError(
            "Este movimiento proviene de caja; anúlelo desde el movimiento de caja"
        )

    tipo_inverso = (
        TipoMovimientoBancario.egreso
        if TipoMovimientoBancario(mov.tipo) in TIPOS_ABONO
        else TipoMovimientoBancario.ingreso
    )

    compensacion = registrar_movimiento(
        db,
        actor,
        cuenta_id=mov.cuenta_id,
        tipo=tipo_inverso,
        categoria=mov.categoria,
        monto=mov.monto,
        descripcion=f"Cancelación de {mov.codigo}: {mov.descripcion}",
        subcategoria="anulacion",
        metodo_pago=mov.metodo_pago,
        numero_operacion=f"CANCEL-{mov.numero_operacion}",
        movimiento_relacionado_id=mov.id,
        movimiento_caja_id=mov.movimiento_caja_id,
        observaciones=f"Motivo: {motivo}",
    )

    now = ahora()
    mov.estado = Estado.anulado
    mov.motivo_cancelacion = motivo[:300]
    mov.fecha_cancelacion = now
    mov.cancelado_por = actor.user_id
    mov.observaciones = append_line(mov.observaciones, f"ANULADO por {actor.display_name or actor.user_id}: {motivo}")
    mov.modifiedon = now
    db.flush()

    logger.info(
        "[movimientos_bancarios] anulado id=%s compensacion=%s cuenta_id=%s",
        mov.id, compensacion.id, mov.cuenta_id,
    )

    if _con_pareja and mov.transferencia_id:
        pareja = db.execute(
            select(Mov).where(
                Mov.transferencia_id == mov.transferencia_id,
                Mov.id != mov.id,
                Mov.movimiento_relacionado_id.is_(None),
                Mov.estado == Estado.procesado,
            )
        ).scalars().first()
        if pareja is not None:
            anular_movimiento(db, actor, pareja.id, motivo, desde_caja=desde_caja, _con_pareja=False)

    return compensacion


def actualizar_movimiento(
    db: Session,
    actor: ActorContext,
    movimiento_id: str,
    *,
    descripcion: Optional[str] = None,
    beneficiario: Optional[str] = None,
    observaciones: Optional[str] = None,
) -> models.MovimientoBancario:
    """Solo textos: importe, cuenta, tipo y saldos son inmutables."""
    mov = obtener_movimiento(db, actor, movimiento_id)
    if mov.estado == Estado.anulado:
        raise InvalidStateTransitionError("No se puede editar un movimiento anulado")

    if descripcion is not None:
        d = clean_text(descripcion)
        if not d:
            raise ValidationError("La descripción no puede quedar vacía")
        mov.descripcion = d[:300]
    if beneficiario is not None:
        mov.beneficiario = clean_text(beneficiario)
    if observaciones is not None:
        mov.observaciones = clean_text(observaciones)
    mov.modifiedon = ahora()
    db.flush()
    return mov


# ============================================================
# Consultas
# ============================================================

def _rango(stmt, desde: Optional[date], hasta: Optional[date]):
    if desde:
        stmt = stmt.where(Mov.fecha >= datetime.combine(desde, dtime.min))
    if hasta:
        stmt = stmt.where(Mov.fecha <= datetime.combine(hasta, dtime.max))
    return stmt


def listar_movimientos(
    db: Session,
    actor: ActorContext,
    *,
    cuenta_id: Optional[str] = None,
    tipo: Optional[TipoMovimientoBancario] = None,
    categoria: Optional[CategoriaBancaria] = None,
    estado: Optional[EstadoMovimientoBancario] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.MovimientoBancario]:
    stmt = select(Mov).where(Mov.user_id == actor.user_id)
    if cuenta_id:
        stmt = stmt.where(Mov.cuenta_id == cuenta_id)
    if tipo:
        stmt = stmt.where(Mov.tipo == tipo)
    if categoria:
        stmt = stmt.where(Mov.categoria == categoria)
    if estado:
        stmt = stmt.where(Mov.estado == estado)
    stmt = _rango(stmt, fecha_desde, fecha_hasta)

    pattern = like_pattern(q)
    if pattern:
        stmt = stmt.where(
            or_(
                func.lower(Mov.descripcion).like(pattern),
                func.lower(Mov.numero_operacion).like(pattern),
                func.lower(Mov.codigo).like(pattern),
                func.lower(func.coalesce(Mov.beneficiario, "")).like(pattern),
            )
        )

    stmt = stmt.order_by(Mov.fecha.desc(), Mov.codigo.desc()).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


def _filtro_efectivos(stmt):
    # Sin apertura y sin pares anulados (original anulado + su compensación)
    return stmt.where(
        Mov.estado == Estado.procesado,
        Mov.es_saldo_inicial.is_(False),
        Mov.movimiento_relacionado_id.is_(None),
    )


def resumen_por_categoria(
    db: Session,
    actor: ActorContext,
    *,
    cuenta_id: Optional[str] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
) -> List[dict]:
    stmt = select(
        Mov.tipo,
        Mov.categoria,
        func.count(Mov.id),
        func.coalesce(func.sum(Mov.monto), 0),
    ).where(Mov.user_id == actor.user_id)
    if cuenta_id:
        stmt = stmt.where(Mov.cuenta_id == cuenta_id)
    stmt = _filtro_efectivos(_rango(stmt, fecha_desde, fecha_hasta))
    stmt = stmt.group_by(Mov.tipo, Mov.categoria).order_by(Mov.tipo, Mov.categoria)

    return [
        {"tipo": tipo, "categoria": categoria, "cantidad": int(n), "total": redondear(total)}
        for tipo, categoria, n, total in db.execute(stmt).all()
    ]


def estadisticas(
    db: Session,
    actor: ActorContext,
    *,
    cuenta_id: Optional[str] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
) -> dict:
    def _total(tipo: TipoMovimientoBancario):
        return func.coalesce(func.sum(case((Mov.tipo == tipo, Mov.monto), else_=0)), 0)

    stmt = select(
        func.count(Mov.id),
        _total(TipoMovimientoBancario.ingreso),
        _total(TipoMovimientoBancario.egreso),
        _total(TipoMovimientoBancario.transferencia_entrada),
        _total(TipoMovimientoBancario.transferencia_salida),
    ).where(Mov.user_id == actor.user_id)
    if cuenta_id:
        stmt = stmt.where(Mov.cuenta_id == cuenta_id)
    stmt = _filtro_efectivos(_rango(stmt, fecha_desde, fecha_hasta))

    n, ing, egr, te, ts = db.execute(stmt).one()
    ing, egr, te, ts = (redondear(x) for x in (ing, egr, te, ts))
    return {
        "cantidad": int(n or 0),
        "total_ingresos": ing,
        "total_egresos": egr,
        "total_transferencias_entrada": te,
        "total_transferencias_salida": ts,
        "neto": ing + te - egr - ts,
    }


def suma_libro(db: Session, cuenta_id: str) -> Tuple[Decimal, int]:
    """
    Suma con signo de todos los movimientos que movieron saldo
    (procesados y anulados, sin la apertura). Un original anulado y su
    compensación se cancelan entre sí.

    Devuelve (suma, cantidad).
    """
    abono = Mov.tipo.in_(list(TIPOS_ABONO))
    stmt = select(
        func.coalesce(func.sum(case((abono, Mov.monto), else_=-Mov.monto)), 0),
        func.count(Mov.id),
    ).where(
        Mov.cuenta_id == cuenta_id,
        Mov.es_saldo_inicial.is_(False),
        Mov.estado.in_([Estado.procesado, Estado.anulado]),
    )
    total, n = db.execute(stmt).one()
    return redondear(total), int(n or 0)

# backend/app/api/v1/movimientos_caja_router.py

"""
API v1 - MOVIMIENTOS DE CAJA (con integración bancaria)

Endpoints:
- GET  /api/v1/movimientos-caja                    -> listar
- GET  /api/v1/movimientos-caja/resumen-dia        -> ingresos / egresos del día por método
- POST /api/v1/movimientos-caja/arqueo             -> arqueo de efectivo (esperado vs contado)
- GET  /api/v1/movimientos-caja/integracion/conciliacion -> descuadres caja <-> banco
- GET  /api/v1/movimientos-caja/integracion/resumen      -> integrados vs solo caja
- GET  /api/v1/movimientos-caja/{id}               -> obtener
- POST /api/v1/movimientos-caja                    -> registrar (integrado si afecta banco)
- POST /api/v1/movimientos-caja/{id}/validar       -> pendiente -> validado
- POST /api/v1/movimientos-caja/{id}/aplicar       -> -> aplicado (módulo destino)
- POST /api/v1/movimientos-caja/{id}/anular        -> anula caja y, si lo hay, el lado bancario
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.app.core.constants import CategoriaCaja, EstadoMovimientoCaja, MetodoPagoCaja, TipoMovimientoCaja
from backend.app.core.security import ActorContext, get_actor
from backend.app.db.session import get_db
from backend.app.schemas.movimientos_caja import (
    AnulacionCajaIn,
    AnulacionIntegradaOut,
    AplicarIn,
    ArqueoIn,
    ArqueoOut,
    ConciliacionIntegracionOut,
    MovimientoCajaCreate,
    MovimientoCajaOut,
    MovimientoIntegradoOut,
    ResumenDiaOut,
    ResumenIntegracionOut,
)
from backend.app.services import integracion_service
from backend.app.services import movimientos_caja_service as service


router = APIRouter(prefix="/movimientos-caja", tags=["movimientos-caja"])


@router.get("", response_model=List[MovimientoCajaOut])
def listar_movimientos_caja(
    tipo: Optional[TipoMovimientoCaja] = Query(None),
    categoria: Optional[CategoriaCaja] = Query(None),
    estado: Optional[EstadoMovimientoCaja] = Query(None),
    metodo_pago: Optional[MetodoPagoCaja] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    q: Optional[str] = Query(None, description="Busca en concepto, descripción y código"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.listar_movimientos(
        db,
        actor,
        tipo=tipo,
        categoria=categoria,
        estado=estado,
        metodo_pago=metodo_pago,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        q=q,
        limit=limit,
        offset=offset,
    )


@router.get("/resumen-dia", response_model=ResumenDiaOut)
def resumen_dia(
    fecha: Optional[date] = Query(None, description="Por defecto, hoy"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.resumen_dia(db, actor, fecha)


@router.post("/arqueo", response_model=ArqueoOut)
def arqueo_caja(
    arqueo_in: ArqueoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    conteo = arqueo_in.conteo.model_dump() if arqueo_in.conteo else None
    return service.arqueo(db, actor, arqueo_in.fecha, conteo)


@router.get("/integracion/conciliacion", response_model=ConciliacionIntegracionOut)
def conciliar_integracion(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return integracion_service.conciliar_integracion(db, actor)


@router.get("/integracion/resumen", response_model=ResumenIntegracionOut)
def resumen_integracion(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return integracion_service.resumen_integracion(db, actor)


@router.get("/{movimiento_id}", response_model=MovimientoCajaOut)
def obtener_movimiento_caja(
    movimiento_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.obtener_movimiento(db, actor, movimiento_id)


@router.post("", response_model=MovimientoIntegradoOut, status_code=status.HTTP_201_CREATED)
def registrar_movimiento_caja(
    mov_in: MovimientoCajaCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Registra un movimiento de caja.

    Si afecta_cuenta_bancaria = True:
    - 404/403 si la cuenta no existe o no es del usuario.
    - 409 si la cuenta está inactiva o no tiene saldo para un egreso.
    - Se devuelven ambos movimientos y el saldo antes/después.
    """
    res = integracion_service.registrar_movimiento_integrado(db, actor, mov_in)
    db.commit()
    db.refresh(res["movimiento_caja"])
    if res["movimiento_bancario"] is not None:
        db.refresh(res["movimiento_bancario"])
    return res


@router.post("/{movimiento_id}/validar", response_model=MovimientoCajaOut)
def validar_movimiento_caja(
    movimiento_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    mov = service.validar(db, actor, movimiento_id)
    db.commit()
    db.refresh(mov)
    return mov


@router.post("/{movimiento_id}/aplicar", response_model=MovimientoCajaOut)
def aplicar_movimiento_caja(
    movimiento_id: str,
    aplicar_in: AplicarIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    mov = service.aplicar(db, actor, movimiento_id, aplicar_in.modulo_destino, aplicar_in.referencia_modulo)
    db.commit()
    db.refresh(mov)
    return mov


@router.post("/{movimiento_id}/anular", response_model=AnulacionIntegradaOut)
def anular_movimiento_caja(
    movimiento_id: str,
    anulacion_in: AnulacionCajaIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    res = integracion_service.anular_movimiento_integrado(db, actor, movimiento_id, anulacion_in.motivo)
    db.commit()
    for clave in ("movimiento_caja", "movimiento_bancario_anulado", "movimiento_compensacion"):
        if res[clave] is not None:
            db.refresh(res[clave])
    return res

# backend/app/api/v1/pagos_router.py

"""
API v1 - PAGOS DE FINANCIAMIENTO (cuotas de préstamos)

Incluye:
- Listado y estadísticas de cuotas.
- Procesar / rechazar / cancelar una cuota.
- Recalcular mora y aplicar descuentos.
- Procesamiento en lote (cada cuota se confirma o falla por separado).
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.core.constants import EstadoPago
from backend.app.core.security import ActorContext, get_actor
from backend.app.db.session import get_db
from backend.app.schemas.pagos import (
    DescuentoIn,
    EstadisticasPagosOut,
    MoraIn,
    MotivoIn,
    PagoLoteIn,
    PagoLoteOut,
    PagoOut,
    ProcesarPagoIn,
)
from backend.app.services import pagos_service as service


router = APIRouter(prefix="/pagos", tags=["pagos"])


@router.get("", response_model=List[PagoOut])
def listar_pagos(
    prestamo_id: Optional[str] = Query(None),
    estado: Optional[EstadoPago] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.listar_pagos(
        db,
        actor,
        prestamo_id=prestamo_id,
        estado=estado,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        limit=limit,
        offset=offset,
    )


@router.get("/estadisticas", response_model=EstadisticasPagosOut)
def estadisticas_pagos(
    prestamo_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.estadisticas(db, actor, prestamo_id)


@router.post("/lote", response_model=PagoLoteOut)
def procesar_lote(
    lote_in: PagoLoteIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Procesa varias cuotas. Las que fallan se informan en `fallidos`
    sin deshacer las que sí se aplicaron.
    """
    res = service.procesar_pagos_en_lote(db, actor, lote_in.pagos)
    db.commit()
    for pago in res["exitosos"]:
        db.refresh(pago)
    return res


@router.get("/{pago_id}", response_model=PagoOut)
def obtener_pago(
    pago_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.obtener_pago(db, actor, pago_id)


@router.post("/{pago_id}/procesar", response_model=PagoOut)
def procesar_pago(
    pago_id: str,
    pago_in: ProcesarPagoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    pago = service.procesar_pago(db, actor, pago_id, **pago_in.model_dump())
    db.commit()
    db.refresh(pago)
    return pago


@router.post("/{pago_id}/rechazar", response_model=PagoOut)
def rechazar_pago(
    pago_id: str,
    motivo_in: MotivoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    pago = service.rechazar_pago(db, actor, pago_id, motivo_in.motivo)
    db.commit()
    db.refresh(pago)
    return pago


@router.post("/{pago_id}/cancelar", response_model=PagoOut)
def cancelar_pago(
    pago_id: str,
    motivo_in: MotivoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    pago = service.cancelar_pago(db, actor, pago_id, motivo_in.motivo)
    db.commit()
    db.refresh(pago)
    return pago


@router.post("/{pago_id}/mora", response_model=PagoOut)
def calcular_mora(
    pago_id: str,
    mora_in: MoraIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    pago = service.calcular_mora(db, actor, pago_id, mora_in.tasa_diaria, mora_in.fecha_corte)
    db.commit()
    db.refresh(pago)
    return pago


@router.post("/{pago_id}/descuento", response_model=PagoOut)
def aplicar_descuento(
    pago_id: str,
    descuento_in: DescuentoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    pago = service.aplicar_descuento(db, actor, pago_id, **descuento_in.model_dump())
    db.commit()
    db.refresh(pago)
    return pago

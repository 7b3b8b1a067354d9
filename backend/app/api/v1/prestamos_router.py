# backend/app/api/v1/prestamos_router.py

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.app.core.constants import EstadoPrestamo, TipoPrestamo
from backend.app.core.security import ActorContext, get_actor
from backend.app.db.session import get_db
from backend.app.schemas.pagos import PagoOut
from backend.app.schemas.prestamos import (
    CancelarPrestamoIn,
    CuotaSimulacionIn,
    CuotaSimulacionOut,
    EstadisticasPrestamosOut,
    PrestamoCreate,
    PrestamoOut,
    TablaAmortizacionOut,
)
from backend.app.services import prestamos_service as service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prestamos", tags=["prestamos"])


# =======================================================
# Consultas
# =======================================================

@router.get("", response_model=List[PrestamoOut])
def listar_prestamos(
    q: Optional[str] = Query(None, description="Entidad, código o propósito (contiene)"),
    estado: Optional[EstadoPrestamo] = Query(None),
    tipo: Optional[TipoPrestamo] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Lista préstamos del usuario autenticado, con filtros opcionales:
      - q: entidad / código / propósito contiene (case-insensitive)
      - estado: aprobado / cancelado
      - fecha_desde / fecha_hasta: sobre fecha_solicitud
    """
    return service.listar_prestamos(
        db,
        actor,
        estado=estado,
        tipo=tipo,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        q=q,
        limit=limit,
        offset=offset,
    )


@router.get("/estadisticas", response_model=EstadisticasPrestamosOut)
def estadisticas_prestamos(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.estadisticas(db, actor)


@router.get("/vencidos", response_model=List[PrestamoOut])
def prestamos_vencidos(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.prestamos_vencidos(db, actor)


@router.get("/proximos-vencer", response_model=List[PrestamoOut])
def proximos_a_vencer(
    dias: Optional[int] = Query(None, ge=1, le=365),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.proximos_a_vencer(db, actor, dias)


@router.post("/simular", response_model=CuotaSimulacionOut)
def simular_cuota(payload: CuotaSimulacionIn):
    """Cuota fija y totales para un monto/tasa/plazo, sin guardar nada."""
    return service.simular_cuota(payload.monto, payload.tasa_interes, payload.plazo_meses)


@router.get("/{prestamo_id}", response_model=PrestamoOut)
def obtener_prestamo(
    prestamo_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Recupera un préstamo por ID (solo si pertenece al usuario)."""
    return service.obtener_prestamo(db, actor, prestamo_id)


@router.get("/{prestamo_id}/amortizacion", response_model=TablaAmortizacionOut)
def tabla_amortizacion(
    prestamo_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.tabla_amortizacion_prestamo(db, actor, prestamo_id)


# =======================================================
# Escritura
# =======================================================

@router.post("", response_model=PrestamoOut, status_code=status.HTTP_201_CREATED)
def crear_prestamo(
    payload: PrestamoCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Crea un préstamo (queda aprobado por el monto solicitado) y registra
    el ingreso en caja.
    """
    obj = service.crear_prestamo(db, actor, payload)
    db.commit()
    db.refresh(obj)
    return obj


@router.post("/{prestamo_id}/cancelar", response_model=PrestamoOut)
def cancelar_prestamo(
    prestamo_id: str,
    payload: CancelarPrestamoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    obj = service.cancelar_prestamo(db, actor, prestamo_id, payload.motivo)
    db.commit()
    db.refresh(obj)
    return obj


@router.post(
    "/{prestamo_id}/cronograma",
    response_model=List[PagoOut],
    status_code=status.HTTP_201_CREATED,
)
def generar_cronograma(
    prestamo_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Genera las cuotas del préstamo. Solo una vez: si ya existen -> 409.
    """
    pagos = service.generar_cronograma(db, actor, prestamo_id)
    db.commit()
    logger.info("[prestamos] cronograma generado prestamo_id=%s cuotas=%s", prestamo_id, len(pagos))
    return pagos

# backend/app/api/v1/movimientos_bancarios_router.py

"""
API v1 - MOVIMIENTOS BANCARIOS

Endpoints:
- GET   /api/v1/movimientos-bancarios                 -> listar (filtros + paginación)
- GET   /api/v1/movimientos-bancarios/resumen         -> totales por tipo y categoría
- GET   /api/v1/movimientos-bancarios/estadisticas    -> ingresos, egresos, neto
- GET   /api/v1/movimientos-bancarios/{id}            -> obtener
- POST  /api/v1/movimientos-bancarios/ingreso         -> registrar ingreso
- POST  /api/v1/movimientos-bancarios/egreso          -> registrar egreso
- POST  /api/v1/movimientos-bancarios/transferencia   -> transferencia entre cuentas propias
- POST  /api/v1/movimientos-bancarios/{id}/anular     -> anular con movimiento de compensación
- PATCH /api/v1/movimientos-bancarios/{id}            -> editar textos

Los movimientos nacidos en caja se anulan desde /movimientos-caja.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.app.core.constants import (
    CategoriaBancaria,
    EstadoMovimientoBancario,
    TipoMovimientoBancario,
)
from backend.app.core.security import ActorContext, get_actor
from backend.app.db.session import get_db
from backend.app.schemas.movimientos_bancarios import (
    AnulacionIn,
    EstadisticasMovimientosOut,
    MovimientoBancarioIn,
    MovimientoBancarioOut,
    MovimientoBancarioUpdate,
    ResumenCategoriaOut,
    TransferenciaIn,
    TransferenciaOut,
)
from backend.app.services import movimientos_bancarios_service as service


router = APIRouter(prefix="/movimientos-bancarios", tags=["movimientos-bancarios"])


@router.get("", response_model=List[MovimientoBancarioOut])
def listar_movimientos(
    cuenta_id: Optional[str] = Query(None),
    tipo: Optional[TipoMovimientoBancario] = Query(None),
    categoria: Optional[CategoriaBancaria] = Query(None),
    estado: Optional[EstadoMovimientoBancario] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    q: Optional[str] = Query(None, description="Busca en descripción, nº operación, código y beneficiario"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.listar_movimientos(
        db,
        actor,
        cuenta_id=cuenta_id,
        tipo=tipo,
        categoria=categoria,
        estado=estado,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        q=q,
        limit=limit,
        offset=offset,
    )


@router.get("/resumen", response_model=List[ResumenCategoriaOut])
def resumen_por_categoria(
    cuenta_id: Optional[str] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.resumen_por_categoria(
        db, actor, cuenta_id=cuenta_id, fecha_desde=fecha_desde, fecha_hasta=fecha_hasta
    )


@router.get("/estadisticas", response_model=EstadisticasMovimientosOut)
def estadisticas_movimientos(
    cuenta_id: Optional[str] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.estadisticas(db, actor, cuenta_id=cuenta_id, fecha_desde=fecha_desde, fecha_hasta=fecha_hasta)


@router.get("/{movimiento_id}", response_model=MovimientoBancarioOut)
def obtener_movimiento(
    movimiento_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return service.obtener_movimiento(db, actor, movimiento_id)


def _registrar(db: Session, actor: ActorContext, tipo: TipoMovimientoBancario, mov_in: MovimientoBancarioIn):
    mov = service.registrar_movimiento(db, actor, tipo=tipo, **mov_in.model_dump())
    db.commit()
    db.refresh(mov)
    return mov


@router.post("/ingreso", response_model=MovimientoBancarioOut, status_code=status.HTTP_201_CREATED)
def registrar_ingreso(
    mov_in: MovimientoBancarioIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return _registrar(db, actor, TipoMovimientoBancario.ingreso, mov_in)


@router.post("/egreso", response_model=MovimientoBancarioOut, status_code=status.HTTP_201_CREATED)
def registrar_egreso(
    mov_in: MovimientoBancarioIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """Falla con 409 si el monto supera el saldo disponible."""
    return _registrar(db, actor, TipoMovimientoBancario.egreso, mov_in)


@router.post("/transferencia", response_model=TransferenciaOut, status_code=status.HTTP_201_CREATED)
def registrar_transferencia(
    transf_in: TransferenciaIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    salida, entrada = service.registrar_transferencia(db, actor, **transf_in.model_dump())
    db.commit()
    db.refresh(salida)
    db.refresh(entrada)
    return {"transferencia_id": salida.transferencia_id, "salida": salida, "entrada": entrada}


@router.post("/{movimiento_id}/anular", response_model=MovimientoBancarioOut)
def anular_movimiento(
    movimiento_id: str,
    anulacion_in: AnulacionIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Anula un movimiento procesado.

    Devuelve el movimiento de compensación; el original queda 'anulado'.
    """
    compensacion = service.anular_movimiento(db, actor, movimiento_id, anulacion_in.motivo)
    db.commit()
    db.refresh(compensacion)
    return compensacion


@router.patch("/{movimiento_id}", response_model=MovimientoBancarioOut)
def actualizar_movimiento(
    movimiento_id: str,
    mov_in: MovimientoBancarioUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    mov = service.actualizar_movimiento(db, actor, movimiento_id, **mov_in.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(mov)
    return mov

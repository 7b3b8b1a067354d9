# backend/app/api/v1/cuentas_router.py

"""
API v1 - CUENTAS BANCARIAS

Responsabilidad:
- Gestionar las cuentas bancarias del usuario y su saldo.
- El saldo solo cambia con movimientos (o con un ajuste, que también es
  un movimiento). Aquí no se edita nunca directamente.

Endpoints:
- GET    /api/v1/cuentas                      -> listar cuentas (filtros tipo/moneda/activa/q)
- GET    /api/v1/cuentas/estadisticas         -> cuentas y saldo total por moneda
- GET    /api/v1/cuentas/alertas              -> cuentas con saldo <= saldo_minimo
- GET    /api/v1/cuentas/{id}                 -> obtener una cuenta
- GET    /api/v1/cuentas/{id}/conciliacion    -> recalcular saldo desde el libro
- POST   /api/v1/cuentas                      -> abrir una cuenta
- PUT    /api/v1/cuentas/{id}                 -> actualizar datos descriptivos
- PATCH  /api/v1/cuentas/{id}/estado          -> activar / desactivar
- POST   /api/v1/cuentas/{id}/ajuste          -> ajustar saldo (movimiento de ajuste)
- DELETE /api/v1/cuentas/{id}                 -> eliminar (solo sin saldo ni historial)
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.app.core.constants import Moneda, TipoCuenta
from backend.app.core.security import ActorContext, get_actor
from backend.app.db.session import get_db
from backend.app.schemas.cuentas import (
    AjusteSaldoIn,
    AlertaSaldoOut,
    ConciliacionCuentaOut,
    CuentaBancariaCreate,
    CuentaBancariaOut,
    CuentaBancariaUpdate,
    CuentaEstadoIn,
    EstadisticasMonedaOut,
)
from backend.app.schemas.movimientos_bancarios import MovimientoBancarioOut
from backend.app.services import cuentas_service


router = APIRouter(
    prefix="/cuentas",
    tags=["cuentas"],
)


@router.get(
    "",
    response_model=List[CuentaBancariaOut],
    summary="Listar cuentas bancarias",
)
def list_cuentas_bancarias(
    tipo_cuenta: Optional[TipoCuenta] = Query(None),
    moneda: Optional[Moneda] = Query(None),
    activa: Optional[bool] = Query(None),
    q: Optional[str] = Query(None, description="Busca en nombre, banco, número o código"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return cuentas_service.listar_cuentas(
        db, actor, tipo_cuenta=tipo_cuenta, moneda=moneda, activa=activa, q=q
    )


@router.get(
    "/estadisticas",
    response_model=List[EstadisticasMonedaOut],
    summary="Cuentas y saldo total por moneda",
)
def estadisticas_cuentas(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return cuentas_service.estadisticas(db, actor)


@router.get(
    "/alertas",
    response_model=List[AlertaSaldoOut],
    summary="Cuentas activas con saldo por debajo del mínimo",
)
def alertas_saldo(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return cuentas_service.alertas_saldo_bajo(db, actor)


@router.get(
    "/{cuenta_id}",
    response_model=CuentaBancariaOut,
    summary="Obtener una cuenta bancaria por ID",
)
def get_cuenta_bancaria(
    cuenta_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return cuentas_service.obtener_cuenta(db, actor, cuenta_id)


@router.get(
    "/{cuenta_id}/conciliacion",
    response_model=ConciliacionCuentaOut,
    summary="Recalcular el saldo desde el libro de movimientos",
)
def conciliar_cuenta(
    cuenta_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return cuentas_service.conciliar_cuenta(db, actor, cuenta_id)


@router.post(
    "",
    response_model=CuentaBancariaOut,
    status_code=status.HTTP_201_CREATED,
    summary="Abrir una cuenta bancaria",
)
def create_cuenta_bancaria(
    cuenta_in: CuentaBancariaCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Abre una cuenta nueva.

    Reglas de negocio:
    - El código CTA### se genera por usuario.
    - (banco, numero_cuenta) no puede repetirse -> 409.
    - Con saldo_inicial > 0 se registra el movimiento de apertura.
    """
    obj = cuentas_service.abrir_cuenta(db, actor, cuenta_in)
    db.commit()
    db.refresh(obj)
    return obj


@router.put(
    "/{cuenta_id}",
    response_model=CuentaBancariaOut,
    summary="Actualizar datos de una cuenta",
)
def update_cuenta_bancaria(
    cuenta_id: str,
    cuenta_in: CuentaBancariaUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    obj = cuentas_service.actualizar_cuenta(db, actor, cuenta_id, cuenta_in)
    db.commit()
    db.refresh(obj)
    return obj


@router.patch(
    "/{cuenta_id}/estado",
    response_model=CuentaBancariaOut,
    summary="Activar o desactivar una cuenta",
)
def cambiar_estado_cuenta(
    cuenta_id: str,
    estado_in: CuentaEstadoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    obj = cuentas_service.cambiar_estado(db, actor, cuenta_id, estado_in.activa)
    db.commit()
    db.refresh(obj)
    return obj


@router.post(
    "/{cuenta_id}/ajuste",
    response_model=MovimientoBancarioOut,
    status_code=status.HTTP_201_CREATED,
    summary="Ajustar el saldo con un movimiento",
)
def ajustar_saldo(
    cuenta_id: str,
    ajuste_in: AjusteSaldoIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    mov = cuentas_service.ajustar_saldo(db, actor, cuenta_id, ajuste_in.nuevo_saldo, ajuste_in.motivo)
    db.commit()
    db.refresh(mov)
    return mov


@router.delete(
    "/{cuenta_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Eliminar una cuenta bancaria",
)
def delete_cuenta_bancaria(
    cuenta_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Elimina una cuenta sin saldo, sin movimientos recientes y sin
    historial. En cualquier otro caso -> 409 (desactívela).
    """
    cuentas_service.eliminar_cuenta(db, actor, cuenta_id)
    db.commit()
    return None

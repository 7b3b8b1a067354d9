# backend/app/schemas/movimientos_bancarios.py

"""
Schemas Pydantic para MOVIMIENTOS BANCARIOS.

Notas de negocio:
- Un movimiento registrado es inmutable en importe, cuenta y tipo.
  Solo se pueden editar textos (descripción, beneficiario, observaciones).
- saldo_anterior / saldo_posterior son la foto del saldo en el momento
  del registro; nunca se recalculan.
- Anular = crear un movimiento de compensación; el original queda en
  estado 'anulado' con motivo, fecha y usuario.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.core.constants import (
    CategoriaBancaria,
    EstadoMovimientoBancario,
    MetodoPagoBancario,
    Moneda,
    TipoMovimientoBancario,
)


class MovimientoBancarioIn(BaseModel):
    """
    Ingreso o egreso simple sobre una cuenta.

    - numero_operacion: si no se envía, se genera (ING-/EGR-<timestamp>-<sufijo>).
    """
    cuenta_id: str
    categoria: CategoriaBancaria
    monto: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    descripcion: str = Field(..., min_length=1, max_length=300)
    subcategoria: Optional[str] = Field(None, max_length=60)
    metodo_pago: MetodoPagoBancario = MetodoPagoBancario.transferencia
    numero_operacion: Optional[str] = Field(None, max_length=80)
    beneficiario: Optional[str] = Field(None, max_length=150)
    fecha: Optional[datetime] = None
    observaciones: Optional[str] = None


class TransferenciaIn(BaseModel):
    cuenta_origen_id: str
    cuenta_destino_id: str
    monto: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    descripcion: str = Field(..., min_length=1, max_length=300)
    categoria: CategoriaBancaria = CategoriaBancaria.transferencia_entre_cuentas
    numero_operacion: Optional[str] = Field(None, max_length=70)
    fecha: Optional[datetime] = None


class AnulacionIn(BaseModel):
    motivo: str = Field(..., min_length=1, max_length=300)


class MovimientoBancarioUpdate(BaseModel):
    descripcion: Optional[str] = Field(None, min_length=1, max_length=300)
    beneficiario: Optional[str] = Field(None, max_length=150)
    observaciones: Optional[str] = None


class MovimientoBancarioOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    codigo: str
    user_id: str
    cuenta_id: str
    cuenta_destino_id: Optional[str] = None
    tipo: TipoMovimientoBancario
    categoria: CategoriaBancaria
    subcategoria: Optional[str] = None
    monto: Decimal
    moneda: Moneda
    descripcion: str
    beneficiario: Optional[str] = None
    metodo_pago: MetodoPagoBancario
    numero_operacion: str
    fecha: datetime
    saldo_anterior: Decimal
    saldo_posterior: Decimal
    estado: EstadoMovimientoBancario
    es_saldo_inicial: bool = False
    movimiento_caja_id: Optional[str] = None
    movimiento_relacionado_id: Optional[str] = None
    transferencia_id: Optional[str] = None
    motivo_cancelacion: Optional[str] = None
    fecha_cancelacion: Optional[datetime] = None
    cancelado_por: Optional[str] = None
    observaciones: Optional[str] = None


class TransferenciaOut(BaseModel):
    transferencia_id: str
    salida: MovimientoBancarioOut
    entrada: MovimientoBancarioOut


class ResumenCategoriaOut(BaseModel):
    tipo: TipoMovimientoBancario
    categoria: CategoriaBancaria
    cantidad: int
    total: Decimal


class EstadisticasMovimientosOut(BaseModel):
    cantidad: int
    total_ingresos: Decimal
    total_egresos: Decimal
    total_transferencias_entrada: Decimal
    total_transferencias_salida: Decimal
    neto: Decimal

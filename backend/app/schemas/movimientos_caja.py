# backend/app/schemas/movimientos_caja.py

"""
Schemas Pydantic para MOVIMIENTOS DE CAJA.

Notas de negocio:
- Si metodo_pago = 'efectivo' hay que enviar el desglose de billetes y
  monedas y su total debe coincidir con el monto (tolerancia 0.01).
- detalles_pago es texto libre (alias de tarjeta, banco...). El número de
  operación bancario va en numero_operacion; si no se envía se genera
  CAJA-<timestamp>-<sufijo>.
- Si afecta_cuenta_bancaria = True, cuenta_bancaria_id es obligatoria y
  el registro pasa por el orquestador de integración: primero se mueve
  el banco y después se guarda la caja con los saldos del banco.
- Estados: pendiente -> validado -> aplicado, o anulado desde cualquier
  estado que no sea 'aplicado'.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backend.app.core.constants import (
    CategoriaCaja,
    EstadoMovimientoCaja,
    MetodoPagoCaja,
    ModuloDestino,
    TipoMovimientoCaja,
)
from backend.app.schemas.movimientos_bancarios import MovimientoBancarioOut


class DesgloseEfectivo(BaseModel):
    billetes: Dict[str, int] = Field(default_factory=dict)
    monedas: Dict[str, int] = Field(default_factory=dict)


class MovimientoCajaCreate(BaseModel):
    tipo: TipoMovimientoCaja
    monto: Decimal = Field(..., ge=Decimal("0.01"), max_digits=14, decimal_places=2)
    concepto: str = Field(..., min_length=1, max_length=200)
    descripcion: Optional[str] = Field(None, max_length=500)
    categoria: CategoriaCaja
    metodo_pago: MetodoPagoCaja
    desglose_efectivo: Optional[DesgloseEfectivo] = None
    detalles_pago: Optional[str] = Field(None, max_length=120)
    numero_operacion: Optional[str] = Field(None, max_length=80)
    afecta_cuenta_bancaria: bool = False
    cuenta_bancaria_id: Optional[str] = None
    fecha: Optional[datetime] = None

    @model_validator(mode="after")
    def _cuenta_si_afecta_banco(self):
        if self.afecta_cuenta_bancaria and not self.cuenta_bancaria_id:
            raise ValueError("cuenta_bancaria_id es obligatoria si afecta_cuenta_bancaria es True")
        return self


class AplicarIn(BaseModel):
    modulo_destino: ModuloDestino
    referencia_modulo: Optional[str] = Field(None, max_length=80)


class AnulacionCajaIn(BaseModel):
    motivo: str = Field(..., min_length=1, max_length=300)


class ArqueoIn(BaseModel):
    fecha: Optional[date] = None
    conteo: Optional[DesgloseEfectivo] = None


class MovimientoCajaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    codigo: str
    user_id: str
    usuario_nombre: Optional[str] = None
    tipo: TipoMovimientoCaja
    monto: Decimal
    concepto: str
    descripcion: Optional[str] = None
    categoria: CategoriaCaja
    metodo_pago: MetodoPagoCaja
    desglose_efectivo: Optional[dict] = None
    detalles_pago: Optional[str] = None
    estado: EstadoMovimientoCaja
    fecha: datetime
    afecta_cuenta_bancaria: bool = False
    cuenta_bancaria_id: Optional[str] = None
    movimiento_bancario_id: Optional[str] = None
    saldo_banco_anterior: Optional[Decimal] = None
    saldo_banco_posterior: Optional[Decimal] = None
    validado_por: Optional[str] = None
    fecha_validacion: Optional[datetime] = None
    modulo_destino: Optional[ModuloDestino] = None
    referencia_modulo: Optional[str] = None
    fecha_aplicacion: Optional[datetime] = None
    observaciones: Optional[str] = None


class ResumenSaldoBancoOut(BaseModel):
    cuenta_id: str
    saldo_anterior: Decimal
    saldo_posterior: Decimal


class MovimientoIntegradoOut(BaseModel):
    """Resultado del registro integrado caja + banco."""
    movimiento_caja: MovimientoCajaOut
    movimiento_bancario: Optional[MovimientoBancarioOut] = None
    resumen: Optional[ResumenSaldoBancoOut] = None


class AnulacionIntegradaOut(BaseModel):
    movimiento_caja: MovimientoCajaOut
    movimiento_bancario_anulado: Optional[MovimientoBancarioOut] = None
    movimiento_compensacion: Optional[MovimientoBancarioOut] = None


class ResumenMetodoOut(BaseModel):
    metodo_pago: MetodoPagoCaja
    ingresos: Decimal
    egresos: Decimal
    saldo: Decimal
    cantidad: int


class ResumenDiaOut(BaseModel):
    fecha: date
    total_ingresos: Decimal
    total_egresos: Decimal
    saldo: Decimal
    cantidad: int
    por_metodo: List[ResumenMetodoOut]


class ArqueoOut(BaseModel):
    fecha: date
    efectivo_esperado: Decimal
    efectivo_contado: Optional[Decimal] = None
    diferencia: Optional[Decimal] = None
    cuadra: Optional[bool] = None
    desglose_esperado: dict
    desglose_contado: Optional[dict] = None


class IncidenciaConciliacionOut(BaseModel):
    tipo: str
    movimiento_caja_id: Optional[str] = None
    movimiento_bancario_id: Optional[str] = None
    detalle: str


class ConciliacionIntegracionOut(BaseModel):
    revisados_caja: int
    revisados_banco: int
    incidencias: List[IncidenciaConciliacionOut]
    cuadra: bool


class ResumenIntegracionOut(BaseModel):
    integrados: int
    solo_caja: int
    total_integrado_ingresos: Decimal
    total_integrado_egresos: Decimal
    total_solo_caja_ingresos: Decimal
    total_solo_caja_egresos: Decimal

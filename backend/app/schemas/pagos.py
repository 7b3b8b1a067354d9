from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backend.app.core.constants import EstadoPago, MetodoPagoPrestamo, Moneda, TipoDescuento, TipoPago


# ============================
# Pydantic: PAGOS DE FINANCIAMIENTO
# ============================

class ProcesarPagoIn(BaseModel):
    """
    Aplica el pago de una cuota pendiente.

    - monto_pagado: si supera el total de la cuota se recorta al total.
    - cuenta_origen_id: si se indica, se carga el importe en esa cuenta
      bancaria (egreso prestamo_pago) dentro de la misma operación.
    - numero_operacion: si no se envía se genera PAY-<timestamp>-<sufijo>.
    """
    monto_pagado: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    metodo_pago: MetodoPagoPrestamo = MetodoPagoPrestamo.transferencia
    numero_operacion: str | None = Field(None, max_length=80)
    fecha_pago: date | None = None
    cuenta_origen_id: str | None = None
    observaciones: str | None = None


class MotivoIn(BaseModel):
    motivo: str = Field(..., min_length=1, max_length=300)


class MoraIn(BaseModel):
    tasa_diaria: Decimal | None = Field(None, ge=0, max_digits=7, decimal_places=4)
    fecha_corte: date | None = None


class DescuentoIn(BaseModel):
    """Descuento por importe fijo (monto) o por porcentaje del total."""
    tipo: TipoDescuento = TipoDescuento.otro
    descripcion: str | None = Field(None, max_length=200)
    monto: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    porcentaje: Decimal | None = Field(None, gt=0, le=100, max_digits=5, decimal_places=2)

    @model_validator(mode="after")
    def _monto_o_porcentaje(self):
        if (self.monto is None) == (self.porcentaje is None):
            raise ValueError("Indique monto o porcentaje (solo uno)")
        return self


class PagoLoteItem(ProcesarPagoIn):
    pago_id: str


class PagoLoteIn(BaseModel):
    pagos: List[PagoLoteItem] = Field(..., min_length=1)


class PagoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    codigo: str
    user_id: str
    prestamo_id: str
    numero_cuota: int
    tipo: TipoPago
    estado: EstadoPago

    monto_capital: Decimal
    monto_interes: Decimal
    monto_comision: Decimal
    monto_mora: Decimal
    descuentos: list = Field(default_factory=list)
    monto_total: Decimal
    monto_pagado: Decimal
    moneda: Moneda

    fecha_programada: date
    fecha_vencimiento: date
    fecha_pago: date | None = None

    metodo_pago: MetodoPagoPrestamo | None = None
    numero_operacion: str | None = None
    cuenta_origen_id: str | None = None
    movimiento_bancario_id: str | None = None

    saldo_anterior: Decimal
    saldo_posterior: Decimal
    dias_mora: int
    tasa_mora: Decimal | None = None

    procesado_por: str | None = None
    motivo_rechazo: str | None = None
    observaciones: str | None = None
    createon: datetime | None = None
    modifiedon: datetime | None = None


class PagoLoteFalloOut(BaseModel):
    pago_id: str
    error: str
    detalle: str


class PagoLoteOut(BaseModel):
    exitosos: List[PagoOut]
    fallidos: List[PagoLoteFalloOut]


class EstadisticasPagosOut(BaseModel):
    total_pagos: int
    por_estado: dict
    total_programado: Decimal
    total_pagado: Decimal
    mora_acumulada: Decimal
    intereses_pagados: Decimal
    eficiencia_cobranza: Decimal
    por_metodo: dict

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field, ConfigDict

from backend.app.core.constants import EstadoPrestamo, Moneda, TipoPrestamo, TipoTasa


# ============================
# Pydantic: PRESTAMO
# ============================

class PrestamoBase(BaseModel):
    """
    Campos básicos de un préstamo recibido de una entidad financiera.

    - tasa_interes: tasa ANUAL en % (12 -> 12% anual).
    - dia_pago: día del mes en que vence cada cuota (1..31; en meses
      cortos se usa el último día).
    """
    tipo: TipoPrestamo
    entidad_financiera: str = Field(..., min_length=1, max_length=150)
    moneda: Moneda = Moneda.PEN
    proposito: str | None = Field(None, max_length=300)

    monto_solicitado: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    tasa_interes: Decimal = Field(..., gt=0, max_digits=7, decimal_places=4)
    tipo_tasa: TipoTasa = TipoTasa.fija
    plazo_meses: int = Field(..., gt=0, le=600)

    dia_pago: int | None = Field(None, ge=1, le=31)
    tasa_mora_diaria: Decimal | None = Field(None, ge=0, max_digits=7, decimal_places=4)

    cuenta_desembolso_id: str | None = None
    cuenta_pago_id: str | None = None
    observaciones: str | None = None


class PrestamoCreate(PrestamoBase):
    """
    Para creación:
    - El servidor genera id, código (PREST001...), cuota_mensual y
      saldo_pendiente. El préstamo nace aprobado por el monto solicitado.
    - fecha_desembolso (opcional) es la base del cronograma; si no se
      envía se usa fecha_solicitud.
    """
    fecha_solicitud: date | None = None
    fecha_desembolso: date | None = None


class CancelarPrestamoIn(BaseModel):
    motivo: str = Field(..., min_length=1, max_length=300)


class PrestamoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    codigo: str
    user_id: str
    tipo: TipoPrestamo
    entidad_financiera: str
    moneda: Moneda
    proposito: str | None = None

    monto_solicitado: Decimal
    monto_aprobado: Decimal
    tasa_interes: Decimal
    tipo_tasa: TipoTasa
    plazo_meses: int
    cuota_mensual: Decimal
    saldo_pendiente: Decimal
    estado: EstadoPrestamo

    fecha_solicitud: date
    fecha_aprobacion: datetime | None = None
    fecha_desembolso: date | None = None
    fecha_proximo_pago: date | None = None
    dia_pago: int
    tasa_mora_diaria: Decimal | None = None

    cuenta_desembolso_id: str | None = None
    cuenta_pago_id: str | None = None

    cuotas_pagadas: int
    cuotas_pendientes: int
    dias_vencidos: int
    total_intereses_pagados: Decimal
    total_comisiones_pagadas: Decimal

    observaciones: str | None = None
    createon: datetime | None = None
    modifiedon: datetime | None = None


# ============================
# Cálculos (sin persistir)
# ============================

class CuotaSimulacionIn(BaseModel):
    monto: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    tasa_interes: Decimal = Field(..., ge=0, max_digits=7, decimal_places=4)
    plazo_meses: int = Field(..., gt=0, le=600)


class CuotaSimulacionOut(BaseModel):
    cuota_mensual: Decimal
    total_a_pagar: Decimal
    total_intereses: Decimal


class FilaAmortizacionOut(BaseModel):
    numero_cuota: int
    fecha_vencimiento: date
    cuota: Decimal
    interes: Decimal
    capital: Decimal
    saldo_anterior: Decimal
    saldo_restante: Decimal
    pagada: bool


class TablaAmortizacionOut(BaseModel):
    prestamo_id: str
    cuota_mensual: Decimal
    total_intereses: Decimal
    filas: List[FilaAmortizacionOut]


class EstadisticasPrestamosOut(BaseModel):
    total_prestamos: int
    aprobados: int
    cancelados: int
    monto_total_aprobado: Decimal
    saldo_pendiente_total: Decimal
    total_intereses_pagados: Decimal
    cuota_mensual_total: Decimal

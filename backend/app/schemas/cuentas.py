# backend/app/schemas/cuentas.py

"""
Schemas Pydantic para CUENTAS BANCARIAS.

Objetivo:
- Separar claramente qué se envía al crear, actualizar y leer una cuenta.
- Documentar el comportamiento para poder hacer un manual funcional.

Notas de negocio:
- El código (CTA001, CTA002...) se genera en el backend por usuario.
- saldo_actual NO se puede enviar: arranca igual a saldo_inicial y solo
  cambia con movimientos o con un ajuste explícito (AjusteSaldoIn).
- (banco, numero_cuenta) no puede repetirse para el mismo usuario.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.core.constants import Moneda, TipoCuenta


class CuentaBancariaBase(BaseModel):
    """
    Campos descriptivos de la cuenta.

    - nombre: alias interno ('CUENTA PRINCIPAL', 'CAJA CHICA'...).
    - banco / numero_cuenta: identifican la cuenta real.
    - saldo_minimo: umbral de alerta de saldo bajo.
    """
    nombre: str = Field(..., min_length=1, max_length=100)
    banco: str = Field(..., min_length=1, max_length=100)
    tipo_cuenta: TipoCuenta
    numero_cuenta: str = Field(..., min_length=1, max_length=50)
    titular: str = Field(..., min_length=1, max_length=100)
    moneda: Moneda = Moneda.PEN
    descripcion: Optional[str] = Field(None, max_length=300)
    saldo_minimo: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)


class CuentaBancariaCreate(CuentaBancariaBase):
    """
    Datos para abrir una cuenta.

    Si saldo_inicial > 0 se registra un movimiento de apertura
    (ingreso_extra / saldo_inicial) como rastro en el libro.
    """
    saldo_inicial: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)


class CuentaBancariaUpdate(BaseModel):
    """
    Campos opcionales para actualizar una cuenta.
    Solo se modifican los que se envíen con valor distinto de None.
    """
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    banco: Optional[str] = Field(None, min_length=1, max_length=100)
    tipo_cuenta: Optional[TipoCuenta] = None
    numero_cuenta: Optional[str] = Field(None, min_length=1, max_length=50)
    titular: Optional[str] = Field(None, min_length=1, max_length=100)
    descripcion: Optional[str] = Field(None, max_length=300)
    saldo_minimo: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)


class CuentaEstadoIn(BaseModel):
    activa: bool


class AjusteSaldoIn(BaseModel):
    """Ajuste manual del saldo (queda registrado como movimiento)."""
    nuevo_saldo: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    motivo: str = Field(..., min_length=1, max_length=300)


class CuentaBancariaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    codigo: str
    user_id: str
    nombre: str
    banco: str
    tipo_cuenta: TipoCuenta
    numero_cuenta: str
    titular: str
    moneda: Moneda
    descripcion: Optional[str] = None
    saldo_inicial: Decimal
    saldo_actual: Decimal
    saldo_minimo: Decimal
    activa: bool
    fecha_ultimo_movimiento: Optional[datetime] = None
    createon: Optional[datetime] = None
    modifiedon: Optional[datetime] = None


class ConciliacionCuentaOut(BaseModel):
    """Resultado de recalcular el saldo desde el libro."""
    cuenta_id: str
    saldo_inicial: Decimal
    suma_movimientos: Decimal
    saldo_calculado: Decimal
    saldo_actual: Decimal
    diferencia: Decimal
    cuadra: bool
    movimientos_considerados: int


class EstadisticasMonedaOut(BaseModel):
    moneda: Moneda
    cuentas: int
    cuentas_activas: int
    saldo_total: Decimal


class AlertaSaldoOut(BaseModel):
    cuenta_id: str
    codigo: str
    nombre: str
    moneda: Moneda
    saldo_actual: Decimal
    saldo_minimo: Decimal

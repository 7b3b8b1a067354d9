# backend/app/core/constants.py

"""
Vocabularios de negocio del módulo de finanzas.

Aquí concentramos todos los valores cerrados que usan modelos, schemas
y servicios:
- tipos / estados de cuentas, movimientos, préstamos y pagos
- categorías de CAJA y categorías BANCARIAS
- traducción categoría de caja -> categoría bancaria
- denominaciones de efectivo (soles)

Todos son `str, Enum` para que se persistan como texto y Pydantic los
acepte directamente desde JSON.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Dict


# ============================
# Cuentas bancarias
# ============================

class TipoCuenta(str, enum.Enum):
    ahorro = "ahorro"
    corriente = "corriente"
    plazo_fijo = "plazo_fijo"
    inversion = "inversion"
    efectivo = "efectivo"


class Moneda(str, enum.Enum):
    PEN = "PEN"
    USD = "USD"
    EUR = "EUR"


# ============================
# Movimientos bancarios
# ============================

class TipoMovimientoBancario(str, enum.Enum):
    ingreso = "ingreso"
    egreso = "egreso"
    transferencia_entrada = "transferencia_entrada"
    transferencia_salida = "transferencia_salida"


# Tipos que suman al saldo de la cuenta
TIPOS_ABONO = {TipoMovimientoBancario.ingreso, TipoMovimientoBancario.transferencia_entrada}


class EstadoMovimientoBancario(str, enum.Enum):
    pendiente = "pendiente"
    procesado = "procesado"
    anulado = "anulado"


class CategoriaBancaria(str, enum.Enum):
    # ingresos
    venta_directa = "venta_directa"
    cobro_cliente = "cobro_cliente"
    prestamo_recibido = "prestamo_recibido"
    inversion_retorno = "inversion_retorno"
    ingreso_extra = "ingreso_extra"
    devolucion_proveedor = "devolucion_proveedor"
    interes_ganado = "interes_ganado"
    # egresos
    pago_proveedor = "pago_proveedor"
    pago_personal = "pago_personal"
    gasto_operativo = "gasto_operativo"
    servicio_basico = "servicio_basico"
    alquiler = "alquiler"
    transporte = "transporte"
    marketing = "marketing"
    impuestos = "impuestos"
    prestamo_pago = "prestamo_pago"
    inversion_realizada = "inversion_realizada"
    egreso_extra = "egreso_extra"
    comision_bancaria = "comision_bancaria"
    # transferencias
    transferencia_entre_cuentas = "transferencia_entre_cuentas"
    transferencia_terceros = "transferencia_terceros"


class MetodoPagoBancario(str, enum.Enum):
    efectivo = "efectivo"
    transferencia = "transferencia"
    cheque = "cheque"
    tarjeta_debito = "tarjeta_debito"
    tarjeta_credito = "tarjeta_credito"
    yape = "yape"
    plin = "plin"
    otro = "otro"


SUBCATEGORIA_SALDO_INICIAL = "saldo_inicial"
SUBCATEGORIA_AJUSTE_SALDO = "ajuste_saldo"


# ============================
# Movimientos de caja
# ============================

class TipoMovimientoCaja(str, enum.Enum):
    ingreso = "ingreso"
    egreso = "egreso"


class EstadoMovimientoCaja(str, enum.Enum):
    pendiente = "pendiente"
    validado = "validado"
    aplicado = "aplicado"
    anulado = "anulado"


class MetodoPagoCaja(str, enum.Enum):
    efectivo = "efectivo"
    yape = "yape"
    plin = "plin"
    transferencia = "transferencia"
    tarjeta = "tarjeta"


class CategoriaCaja(str, enum.Enum):
    # ingresos
    venta_producto = "venta_producto"
    venta_servicio = "venta_servicio"
    cobro_cliente = "cobro_cliente"
    prestamo_recibido = "prestamo_recibido"
    devolucion = "devolucion"
    otros_ingresos = "otros_ingresos"
    # egresos
    compra_materia_prima = "compra_materia_prima"
    pago_proveedor = "pago_proveedor"
    pago_servicio = "pago_servicio"
    gasto_operativo = "gasto_operativo"
    pago_prestamo = "pago_prestamo"
    gasto_personal = "gasto_personal"
    impuestos = "impuestos"
    otros_egresos = "otros_egresos"


class ModuloDestino(str, enum.Enum):
    ventas = "ventas"
    compras = "compras"
    gastos = "gastos"
    prestamos = "prestamos"
    personal = "personal"
    general = "general"


# Denominaciones de efectivo: clave del desglose -> valor facial
BILLETES: Dict[str, Decimal] = {
    "b200": Decimal("200"),
    "b100": Decimal("100"),
    "b50": Decimal("50"),
    "b20": Decimal("20"),
    "b10": Decimal("10"),
}
MONEDAS: Dict[str, Decimal] = {
    "m5": Decimal("5"),
    "m2": Decimal("2"),
    "m1": Decimal("1"),
    "c50": Decimal("0.50"),
    "c20": Decimal("0.20"),
    "c10": Decimal("0.10"),
}


# ============================
# Caja -> Banco
# ============================

_CATEGORIA_INGRESO_CAJA_A_BANCO: Dict[CategoriaCaja, CategoriaBancaria] = {
    CategoriaCaja.venta_producto: CategoriaBancaria.venta_directa,
    CategoriaCaja.venta_servicio: CategoriaBancaria.venta_directa,
    CategoriaCaja.cobro_cliente: CategoriaBancaria.cobro_cliente,
    CategoriaCaja.prestamo_recibido: CategoriaBancaria.prestamo_recibido,
    CategoriaCaja.devolucion: CategoriaBancaria.devolucion_proveedor,
    CategoriaCaja.otros_ingresos: CategoriaBancaria.ingreso_extra,
}

_CATEGORIA_EGRESO_CAJA_A_BANCO: Dict[CategoriaCaja, CategoriaBancaria] = {
    CategoriaCaja.compra_materia_prima: CategoriaBancaria.pago_proveedor,
    CategoriaCaja.pago_proveedor: CategoriaBancaria.pago_proveedor,
    CategoriaCaja.pago_servicio: CategoriaBancaria.servicio_basico,
    CategoriaCaja.gasto_operativo: CategoriaBancaria.gasto_operativo,
    CategoriaCaja.pago_prestamo: CategoriaBancaria.prestamo_pago,
    CategoriaCaja.gasto_personal: CategoriaBancaria.pago_personal,
    CategoriaCaja.impuestos: CategoriaBancaria.impuestos,
    CategoriaCaja.otros_egresos: CategoriaBancaria.egreso_extra,
}


def mapear_categoria_caja_a_banco(
    tipo: TipoMovimientoCaja,
    categoria: CategoriaCaja | str | None,
) -> CategoriaBancaria:
    """
    Traduce una categoría de caja a la categoría bancaria equivalente.

    - ingreso sin traducción -> ingreso_extra
    - egreso sin traducción  -> egreso_extra

    Nunca lanza: una categoría desconocida (o de la otra dirección) cae
    en el cajón "extra" de su dirección.
    """
    try:
        cat = CategoriaCaja(categoria) if categoria is not None else None
    except ValueError:
        cat = None

    if TipoMovimientoCaja(tipo) == TipoMovimientoCaja.ingreso:
        return _CATEGORIA_INGRESO_CAJA_A_BANCO.get(cat, CategoriaBancaria.ingreso_extra)
    return _CATEGORIA_EGRESO_CAJA_A_BANCO.get(cat, CategoriaBancaria.egreso_extra)


_METODO_CAJA_A_BANCO: Dict[MetodoPagoCaja, MetodoPagoBancario] = {
    MetodoPagoCaja.efectivo: MetodoPagoBancario.efectivo,
    MetodoPagoCaja.yape: MetodoPagoBancario.yape,
    MetodoPagoCaja.plin: MetodoPagoBancario.plin,
    MetodoPagoCaja.transferencia: MetodoPagoBancario.transferencia,
    MetodoPagoCaja.tarjeta: MetodoPagoBancario.tarjeta_debito,
}


def mapear_metodo_caja_a_banco(metodo: MetodoPagoCaja | str) -> MetodoPagoBancario:
    """Método de pago de caja -> método bancario ('otro' si no hay traducción)."""
    try:
        return _METODO_CAJA_A_BANCO.get(MetodoPagoCaja(metodo), MetodoPagoBancario.otro)
    except ValueError:
        return MetodoPagoBancario.otro


# ============================
# Préstamos
# ============================

class TipoPrestamo(str, enum.Enum):
    personal = "personal"
    hipotecario = "hipotecario"
    vehicular = "vehicular"
    comercial = "comercial"
    microempresa = "microempresa"
    capital_trabajo = "capital_trabajo"
    inversion = "inversion"


class EstadoPrestamo(str, enum.Enum):
    aprobado = "aprobado"
    cancelado = "cancelado"


class TipoTasa(str, enum.Enum):
    fija = "fija"
    variable = "variable"


# ============================
# Pagos de financiamiento
# ============================

class TipoPago(str, enum.Enum):
    cuota_regular = "cuota_regular"
    pago_parcial = "pago_parcial"
    pago_total = "pago_total"
    pago_interes = "pago_interes"
    comision = "comision"
    mora = "mora"


class EstadoPago(str, enum.Enum):
    programado = "programado"
    pendiente = "pendiente"
    procesado = "procesado"
    rechazado = "rechazado"
    cancelado = "cancelado"


class MetodoPagoPrestamo(str, enum.Enum):
    transferencia = "transferencia"
    debito_automatico = "debito_automatico"
    efectivo = "efectivo"
    cheque = "cheque"
    deposito = "deposito"


class TipoDescuento(str, enum.Enum):
    pronto_pago = "pronto_pago"
    cliente_frecuente = "cliente_frecuente"
    promocion = "promocion"
    otro = "otro"


# ============================
# Prefijos de códigos
# ============================

PREFIJO_CUENTA = "CTA"
PREFIJO_PRESTAMO = "PREST"
PREFIJO_PAGO = "PAGOFIN"
PREFIJO_INGRESO = "ING"
PREFIJO_EGRESO = "EGR"
PREFIJO_TRANSF_ENTRADA = "TRE"
PREFIJO_TRANSF_SALIDA = "TRS"

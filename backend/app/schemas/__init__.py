# backend/app/schemas/__init__.py
"""
Paquete de schemas Pydantic del backend de finanzas.

Exponemos los schemas de entrada más usados; el resto se importa
directamente desde su módulo (cuentas, movimientos_bancarios,
movimientos_caja, prestamos, pagos).
"""

from .cuentas import CuentaBancariaCreate, CuentaBancariaOut, CuentaBancariaUpdate
from .movimientos_bancarios import MovimientoBancarioIn, MovimientoBancarioOut, TransferenciaIn
from .movimientos_caja import MovimientoCajaCreate, MovimientoCajaOut
from .pagos import PagoOut, ProcesarPagoIn
from .prestamos import PrestamoCreate, PrestamoOut

__all__ = [
    "CuentaBancariaCreate",
    "CuentaBancariaOut",
    "CuentaBancariaUpdate",
    "MovimientoBancarioIn",
    "MovimientoBancarioOut",
    "TransferenciaIn",
    "MovimientoCajaCreate",
    "MovimientoCajaOut",
    "PagoOut",
    "ProcesarPagoIn",
    "PrestamoCreate",
    "PrestamoOut",
]

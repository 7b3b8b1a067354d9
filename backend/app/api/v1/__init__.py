from . import (
    cuentas_router,
    movimientos_bancarios_router,
    movimientos_caja_router,
    prestamos_router,
    pagos_router,
)

__all__ = [
    "cuentas_router",
    "movimientos_bancarios_router",
    "movimientos_caja_router",
    "prestamos_router",
    "pagos_router",
]

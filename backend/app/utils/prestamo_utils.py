# backend/app/utils/prestamo_utils.py
"""
Utilidades de negocio para PRÉSTAMOS.

Aquí centralizamos la matemática del préstamo de cuota fija (sistema
francés), sin tocar la BD:

- add_months: avanza meses fijando el día de pago.
- calcular_cuota_mensual: cuota constante P·i(1+i)^n / ((1+i)^n − 1).
- tabla_amortizacion: desglose cuota a cuota (interés, capital, saldo).
- calcular_totales: monto total de un pago (capital + interés + comisión
  + mora − descuentos, nunca negativo).
- calcular_mora / dias_de_mora: penalidad por atraso.

Los servicios (services/prestamos_service.py, services/pagos_service.py)
se limitan a:
  - Validar inputs y estados
  - Llamar a estas funciones
  - Crear / actualizar modelos SQLAlchemy
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from backend.app.utils.common import CERO, redondear, to_decimal


# ============================
# Fechas
# ============================

def add_months(d: date, months: int, dia: Optional[int] = None) -> date:
    """
    Suma `months` meses a `d` y fija el día del mes.

    - dia None -> se conserva el día de `d`.
    - Si el mes destino es más corto, se usa su último día
      (31 ene + 1 mes, día 31 -> 28/29 feb).
    """
    y = d.year + (d.month - 1 + months) // 12
    m = (d.month - 1 + months) % 12 + 1
    ultimo = calendar.monthrange(y, m)[1]
    dd = min(dia if dia else d.day, ultimo)
    return date(y, m, dd)


# ============================
# Cuota y tabla
# ============================

def tasa_mensual(tasa_anual_pct: Decimal) -> Decimal:
    """12% anual -> 0.01 mensual."""
    return to_decimal(tasa_anual_pct) / Decimal(100) / Decimal(12)


def calcular_cuota_mensual(principal, tasa_anual_pct, plazo_meses: int) -> Decimal:
    """
    Cuota fija mensual.

    - tasa 0 -> principal / plazo (sin redondear).
    - tasa > 0 -> fórmula de anualidad redondeada a céntimos (HALF_UP).

    Ejemplo: 12000, 12%, 12 meses -> 1066.19
    """
    principal = to_decimal(principal)
    if plazo_meses <= 0:
        raise ValueError("El plazo debe ser mayor que cero")

    i = tasa_mensual(tasa_anual_pct)
    if i == 0:
        return principal / Decimal(plazo_meses)

    pow_ = (Decimal(1) + i) ** plazo_meses
    return redondear(principal * (i * pow_) / (pow_ - 1))


def tabla_amortizacion(
    principal,
    tasa_anual_pct,
    plazo_meses: int,
    fecha_base: date,
    dia_pago: Optional[int] = None,
    cuotas_pagadas: int = 0,
) -> List[dict]:
    """
    Genera la tabla de amortización de cuota fija.

    Para n = 1..plazo:
      interes   = saldo · i           (redondeado a céntimos)
      capital   = cuota − interes
      saldo    -= capital

    El saldo se arrastra redondeado. La última cuota absorbe el
    redondeo: capital = saldo pendiente, así la tabla cierra en 0 y la
    suma de capital es exactamente el principal.

    Devuelve una lista de dicts:
      - numero_cuota (int)
      - fecha_vencimiento (date): fecha_base + n meses, en el día de pago
      - cuota, interes, capital, saldo_anterior, saldo_restante (Decimal)
      - pagada (bool): n <= cuotas_pagadas
    """
    principal = redondear(principal)
    cuota = redondear(calcular_cuota_mensual(principal, tasa_anual_pct, plazo_meses))
    i = tasa_mensual(tasa_anual_pct)

    saldo = principal
    filas: List[dict] = []
    for n in range(1, plazo_meses + 1):
        saldo_anterior = saldo
        interes = redondear(saldo * i)
        capital = cuota - interes
        # Ajuste de última cuota para dejar saldo a cero
        if n == plazo_meses or capital > saldo:
            capital = saldo
        saldo = saldo - capital

        filas.append(
            {
                "numero_cuota": n,
                "fecha_vencimiento": add_months(fecha_base, n, dia_pago),
                "cuota": capital + interes,
                "interes": interes,
                "capital": capital,
                "saldo_anterior": saldo_anterior,
                "saldo_restante": saldo,
                "pagada": n <= cuotas_pagadas,
            }
        )
    return filas


# ============================
# Totales de un pago
# ============================

def total_descuentos(descuentos: Optional[Iterable[dict]]) -> Decimal:
    """Suma los `monto` de la lista de descuentos (ignora entradas vacías)."""
    return sum((to_decimal(d.get("monto")) for d in (descuentos or [])), CERO)


def calcular_totales(capital, interes, comision, mora, descuentos=None) -> Decimal:
    """
    monto_total = max(0, capital + interes + comision + mora − descuentos)
    """
    bruto = to_decimal(capital) + to_decimal(interes) + to_decimal(comision) + to_decimal(mora)
    neto = bruto - total_descuentos(descuentos)
    return redondear(max(CERO, neto))


# ============================
# Mora
# ============================

def dias_de_mora(fecha_vencimiento: date, fecha_referencia: date) -> int:
    """Días de atraso; 0 si aún no ha vencido."""
    return max(0, (fecha_referencia - fecha_vencimiento).days)


def calcular_mora(monto_total, tasa_diaria_pct, dias: int) -> Decimal:
    """
    mora = monto_total · (tasa_diaria/100) · dias, redondeada a céntimos.
    """
    if dias <= 0:
        return CERO
    return redondear(to_decimal(monto_total) * (to_decimal(tasa_diaria_pct) / Decimal(100)) * Decimal(dias))

# backend/app/utils/caja_utils.py

"""
Desglose de efectivo (billetes y monedas) de la caja.

Formato del desglose:

    {
        "billetes": {"b200": 0, "b100": 1, "b50": 0, "b20": 2, "b10": 0},
        "monedas":  {"m5": 1, "m2": 0, "m1": 0, "c50": 1, "c20": 0, "c10": 0},
    }

Las claves ausentes cuentan como 0. Cantidades negativas o claves
desconocidas se rechazan.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

from backend.app.core.constants import BILLETES, MONEDAS
from backend.app.core.errors import ValidationError
from backend.app.utils.common import CERO, CENTIMO, redondear, to_decimal


def _cantidades(grupo: Optional[dict], valores: Dict[str, Decimal], nombre: str) -> Dict[str, int]:
    grupo = grupo or {}
    desconocidas = set(grupo) - set(valores)
    if desconocidas:
        raise ValidationError(f"Denominaciones desconocidas en {nombre}: {', '.join(sorted(desconocidas))}")

    out: Dict[str, int] = {}
    for clave in valores:
        try:
            n = int(grupo.get(clave) or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Cantidad inválida para {clave}")
        if n < 0:
            raise ValidationError(f"Cantidad negativa para {clave}")
        out[clave] = n
    return out


def normalizar_desglose(desglose: Optional[dict]) -> dict:
    """Devuelve el desglose con todas las denominaciones presentes."""
    desglose = desglose or {}
    return {
        "billetes": _cantidades(desglose.get("billetes"), BILLETES, "billetes"),
        "monedas": _cantidades(desglose.get("monedas"), MONEDAS, "monedas"),
    }


def calcular_total_desglose(desglose: Optional[dict]) -> Decimal:
    """Suma el valor facial de billetes y monedas."""
    d = normalizar_desglose(desglose)
    total = CERO
    for clave, n in d["billetes"].items():
        total += BILLETES[clave] * n
    for clave, n in d["monedas"].items():
        total += MONEDAS[clave] * n
    return redondear(total)


def validar_desglose(monto, desglose: Optional[dict]) -> dict:
    """
    Comprueba que el desglose cuadra con el monto (tolerancia 0.01).

    Devuelve el desglose normalizado para persistirlo.
    """
    if not desglose:
        raise ValidationError("Para pagos en efectivo es obligatorio el desglose de billetes y monedas")

    total = calcular_total_desglose(desglose)
    if abs(total - to_decimal(monto)) > CENTIMO:
        raise ValidationError(
            f"El desglose de efectivo ({total:.2f}) no coincide con el monto ({to_decimal(monto):.2f})"
        )
    return normalizar_desglose(desglose)

"""Tests for the fixed-installment amortization math."""

from datetime import date
from decimal import Decimal

import pytest

from backend.app.utils.prestamo_utils import (
    add_months,
    calcular_cuota_mensual,
    calcular_mora,
    calcular_totales,
    dias_de_mora,
    tabla_amortizacion,
)


class TestCuotaMensual:
    def test_reference_installment(self) -> None:
        assert calcular_cuota_mensual(Decimal("12000"), Decimal("12"), 12) == Decimal("1066.19")

    def test_zero_rate_is_principal_over_term(self) -> None:
        assert calcular_cuota_mensual(Decimal("1000"), Decimal("0"), 4) == Decimal("250")

    def test_invalid_term(self) -> None:
        with pytest.raises(ValueError):
            calcular_cuota_mensual(Decimal("1000"), Decimal("10"), 0)


class TestTablaAmortizacion:
    @pytest.fixture
    def filas(self) -> list:
        return tabla_amortizacion(Decimal("12000"), Decimal("12"), 12, date(2025, 1, 10), dia_pago=15)

    def test_one_row_per_installment(self, filas) -> None:
        assert [f["numero_cuota"] for f in filas] == list(range(1, 13))

    def test_first_row(self, filas) -> None:
        primera = filas[0]
        assert primera["interes"] == Decimal("120.00")
        assert primera["capital"] == Decimal("946.19")
        assert primera["saldo_anterior"] == Decimal("12000.00")
        assert primera["fecha_vencimiento"] == date(2025, 2, 15)

    def test_final_balance_is_zero(self, filas) -> None:
        assert filas[-1]["saldo_restante"] == Decimal("0.00")

    def test_capital_adds_up_to_principal(self, filas) -> None:
        assert sum(f["capital"] for f in filas) == Decimal("12000.00")

    @pytest.mark.parametrize(
        "principal, tasa, plazo",
        [
            ("100000", "9.5", 240),
            ("50000", "18", 60),
            ("250000", "7", 360),
            ("1000", "0", 3),
            ("3500.55", "24.9", 7),
        ],
    )
    def test_long_schedules_close_at_zero(self, principal, tasa, plazo) -> None:
        filas = tabla_amortizacion(Decimal(principal), Decimal(tasa), plazo, date(2025, 1, 10))

        assert len(filas) == plazo
        assert filas[-1]["saldo_restante"] == Decimal("0.00")
        assert sum(f["capital"] for f in filas) == Decimal(principal)
        ultima = filas[-1]
        assert ultima["capital"] == ultima["saldo_anterior"]
        assert ultima["cuota"] == ultima["capital"] + ultima["interes"]
        assert all(f["capital"] >= 0 for f in filas)

    def test_rows_chain_balances(self, filas) -> None:
        for anterior, siguiente in zip(filas, filas[1:]):
            assert siguiente["saldo_anterior"] == anterior["saldo_restante"]
            assert anterior["saldo_anterior"] - anterior["capital"] == anterior["saldo_restante"]

    def test_interest_decreases(self, filas) -> None:
        intereses = [f["interes"] for f in filas]
        assert intereses == sorted(intereses, reverse=True)

    def test_paid_flag(self) -> None:
        filas = tabla_amortizacion(Decimal("1200"), Decimal("0"), 3, date(2025, 1, 1), cuotas_pagadas=2)
        assert [f["pagada"] for f in filas] == [True, True, False]
        assert all(f["interes"] == Decimal("0.00") for f in filas)
        assert filas[-1]["saldo_restante"] == Decimal("0.00")


class TestAddMonths:
    def test_clamps_to_month_end(self) -> None:
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_fixed_payment_day_across_year(self) -> None:
        assert add_months(date(2025, 11, 15), 3, 10) == date(2026, 2, 10)


class TestTotalesYMora:
    def test_total_never_negative(self) -> None:
        assert calcular_totales(100, 10, 0, 5, [{"monto": "200"}]) == Decimal("0.00")

    def test_total_with_discount(self) -> None:
        total = calcular_totales(Decimal("946.19"), Decimal("120.00"), 0, 0, [{"monto": "16.19"}])
        assert total == Decimal("1050.00")

    def test_dias_de_mora(self) -> None:
        assert dias_de_mora(date(2025, 1, 10), date(2025, 1, 5)) == 0
        assert dias_de_mora(date(2025, 1, 10), date(2025, 1, 20)) == 10

    def test_mora(self) -> None:
        assert calcular_mora(Decimal("1000"), Decimal("0.033"), 10) == Decimal("3.30")
        assert calcular_mora(Decimal("1000"), Decimal("0.033"), 0) == Decimal("0.00")

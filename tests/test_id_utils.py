"""Tests for ids and per-user sequential codes."""

from datetime import date

import pytest

from backend.app.db import models
from backend.app.utils.id_utils import (
    codigo_fallback,
    generar_codigo,
    generate_cuenta_id,
    guardar_con_codigo,
    segmento_fecha,
    siguiente_secuencia,
)


class TestSiguienteSecuencia:
    def test_first_code(self) -> None:
        assert siguiente_secuencia(None, "CTA", 3) == "CTA001"

    def test_increments_and_pads(self) -> None:
        assert siguiente_secuencia("PREST007", "PREST", 3) == "PREST008"
        assert siguiente_secuencia("PAGOFIN0099", "PAGOFIN", 4) == "PAGOFIN0100"

    def test_non_numeric_suffix(self) -> None:
        with pytest.raises(ValueError):
            siguiente_secuencia("CTAX01", "CTA", 3)

    def test_exhausted(self) -> None:
        with pytest.raises(ValueError):
            siguiente_secuencia("CTA999", "CTA", 3)


class TestFallback:
    def test_fallback_is_longer_than_sequence(self) -> None:
        code = codigo_fallback("ING", date(2025, 3, 7))
        assert code.startswith("ING20250307")
        assert len(code) > len("ING20250307") + 4

    def test_segmento_fecha(self) -> None:
        assert segmento_fecha(date(2025, 3, 7)) == "20250307"
        assert segmento_fecha(None) == ""

    def test_ids_have_prefix(self) -> None:
        assert generate_cuenta_id().startswith("CUENTA-")
        assert generate_cuenta_id() != generate_cuenta_id()


class TestGenerarCodigo:
    def test_next_code_is_per_user(self, db, actor, otro_actor, cuenta) -> None:
        assert cuenta.codigo == "CTA001"
        assert generar_codigo(db, models.CuentaBancaria, "CTA", actor.user_id) == "CTA002"
        assert generar_codigo(db, models.CuentaBancaria, "CTA", otro_actor.user_id) == "CTA001"

    def test_fallback_codes_do_not_break_sequence(self, db, actor, cuenta) -> None:
        cuenta.codigo = codigo_fallback("CTA")
        db.flush()
        assert generar_codigo(db, models.CuentaBancaria, "CTA", actor.user_id) == "CTA001"

    def test_guardar_con_codigo_retries_on_conflict(self, db, actor, cuenta) -> None:
        duplicada = models.CuentaBancaria(
            id=generate_cuenta_id(),
            codigo=cuenta.codigo,
            user_id=actor.user_id,
            nombre="OTRA",
            banco="BBVA",
            tipo_cuenta=cuenta.tipo_cuenta,
            numero_cuenta="999-9999",
            titular="Empresa SAC",
            moneda=cuenta.moneda,
        )
        guardar_con_codigo(db, duplicada, lambda: "CTA002")
        assert duplicada.codigo == "CTA002"
        assert db.get(models.CuentaBancaria, duplicada.id) is not None

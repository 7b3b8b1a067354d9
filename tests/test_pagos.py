"""Tests for loan installment payments."""

from datetime import date
from decimal import Decimal

import pytest

from backend.app.core.constants import (
    CategoriaBancaria,
    EstadoPago,
    MetodoPagoPrestamo,
    TipoDescuento,
    TipoPrestamo,
)
from backend.app.core.errors import InsufficientFundsError, InvalidStateTransitionError, ValidationError
from backend.app.db import models
from backend.app.schemas.pagos import PagoLoteItem
from backend.app.schemas.prestamos import PrestamoCreate
from backend.app.services import pagos_service, prestamos_service
from backend.app.utils.common import redondear


@pytest.fixture
def prestamo(db, actor):
    obj = prestamos_service.crear_prestamo(
        db,
        actor,
        PrestamoCreate(
            tipo=TipoPrestamo.personal,
            entidad_financiera="Banco X",
            monto_solicitado=Decimal("12000"),
            tasa_interes=Decimal("12"),
            plazo_meses=12,
            fecha_solicitud=date(2025, 1, 10),
            dia_pago=15,
        ),
    )
    db.flush()
    return obj


@pytest.fixture
def cuotas(db, actor, prestamo):
    return prestamos_service.generar_cronograma(db, actor, prestamo.id)


def _procesar(db, actor, pago, monto="1066.19", **kwargs):
    kwargs.setdefault("fecha_pago", date(2025, 2, 15))
    return pagos_service.procesar_pago(db, actor, pago.id, monto_pagado=Decimal(monto), **kwargs)


class TestProcesarPago:
    def test_overpayment_is_clamped_and_loan_updated(self, db, actor, prestamo, cuotas) -> None:
        pago = _procesar(db, actor, cuotas[0], "2000")

        assert pago.estado == EstadoPago.procesado
        assert pago.monto_pagado == Decimal("1066.19")
        assert pago.dias_mora == 0
        assert pago.procesado_por == actor.user_id
        assert pago.numero_operacion.startswith("PAY-")

        assert prestamo.cuotas_pagadas == 1
        assert prestamo.cuotas_pendientes == 11
        assert prestamo.saldo_pendiente == Decimal("10933.81")
        assert prestamo.total_intereses_pagados == Decimal("120.00")
        assert prestamo.fecha_proximo_pago == date(2025, 3, 15)

    def test_cannot_process_twice(self, db, actor, cuotas) -> None:
        _procesar(db, actor, cuotas[0])
        with pytest.raises(InvalidStateTransitionError):
            _procesar(db, actor, cuotas[0])

    def test_late_payment_records_days(self, db, actor, cuotas) -> None:
        pago = _procesar(db, actor, cuotas[0], fecha_pago=date(2025, 3, 27))
        assert pago.dias_mora == 10

    def test_bank_account_without_funds(self, db, actor, cuotas, cuenta) -> None:
        with pytest.raises(InsufficientFundsError):
            _procesar(db, actor, cuotas[0], cuenta_origen_id=cuenta.id)
        assert cuotas[0].estado == EstadoPago.pendiente

    def test_bank_account_is_charged(self, db, actor, cuotas, crear_cuenta) -> None:
        cuenta = crear_cuenta(actor, saldo_inicial="5000.00")
        pago = _procesar(db, actor, cuotas[0], cuenta_origen_id=cuenta.id, numero_operacion="OP-778")

        assert cuenta.saldo_actual == Decimal("3933.81")
        assert pago.cuenta_origen_id == cuenta.id
        mov = db.get(models.MovimientoBancario, pago.movimiento_bancario_id)
        assert mov.monto == Decimal("1066.19")
        assert mov.categoria == CategoriaBancaria.prestamo_pago
        assert mov.descripcion == "Pago cuota 1 - Préstamo PREST001"
        assert mov.numero_operacion == "OP-778"
        assert mov.beneficiario == "Banco X"

    def test_cancelled_loan(self, db, actor, prestamo, cuotas) -> None:
        prestamos_service.cancelar_prestamo(db, actor, prestamo.id, "Refinanciado")
        with pytest.raises(InvalidStateTransitionError):
            _procesar(db, actor, cuotas[1])


class TestMora:
    def test_penalty_on_overdue_installment(self, db, actor, cuotas) -> None:
        pago = pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 27))
        assert pago.dias_mora == 10
        assert pago.tasa_mora == Decimal("0.033")
        assert pago.monto_mora == Decimal("3.52")
        assert pago.monto_total == Decimal("1069.71")

    def test_recomputing_replaces_penalty(self, db, actor, cuotas) -> None:
        pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 27))
        pago = pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 27))
        assert pago.monto_mora == Decimal("3.52")
        assert pago.monto_total == Decimal("1069.71")

    def test_explicit_rate(self, db, actor, cuotas) -> None:
        pago = pagos_service.calcular_mora(
            db, actor, cuotas[0].id, tasa_diaria=Decimal("0.1"), fecha_corte=date(2025, 3, 27)
        )
        assert pago.monto_mora == Decimal("10.66")

    def test_discount_does_not_lower_penalty(self, db, actor, cuotas) -> None:
        pagos_service.aplicar_descuento(db, actor, cuotas[0].id, monto=Decimal("16.19"))
        pago = pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 27))
        assert pago.monto_mora == Decimal("3.52")
        assert pago.monto_total == Decimal("1053.52")

    def test_not_overdue(self, db, actor, cuotas) -> None:
        with pytest.raises(InvalidStateTransitionError):
            pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 17))

    def test_clamp_includes_penalty(self, db, actor, cuotas) -> None:
        pagos_service.calcular_mora(db, actor, cuotas[0].id, fecha_corte=date(2025, 3, 27))
        pago = _procesar(db, actor, cuotas[0], "5000", fecha_pago=date(2025, 3, 27))
        assert pago.monto_pagado == Decimal("1069.71")


class TestDescuentos:
    def test_amount_then_percentage(self, db, actor, cuotas) -> None:
        pago = pagos_service.aplicar_descuento(
            db, actor, cuotas[0].id, tipo=TipoDescuento.pronto_pago, monto=Decimal("16.19")
        )
        assert pago.monto_total == Decimal("1050.00")

        pago = pagos_service.aplicar_descuento(db, actor, cuotas[0].id, porcentaje=Decimal("10"))
        assert pago.monto_total == Decimal("945.00")
        assert [d["monto"] for d in pago.descuentos] == ["16.19", "105.00"]
        assert pago.descuentos[0]["tipo"] == "pronto_pago"

    def test_total_never_negative(self, db, actor, cuotas) -> None:
        pago = pagos_service.aplicar_descuento(db, actor, cuotas[0].id, monto=Decimal("5000"))
        assert pago.monto_total == Decimal("0.00")

    def test_rejected_on_processed(self, db, actor, cuotas) -> None:
        _procesar(db, actor, cuotas[0])
        with pytest.raises(InvalidStateTransitionError):
            pagos_service.aplicar_descuento(db, actor, cuotas[0].id, monto=Decimal("1"))

    def test_percentage_bounds(self, db, actor, cuotas) -> None:
        with pytest.raises(ValidationError):
            pagos_service.aplicar_descuento(db, actor, cuotas[0].id, porcentaje=Decimal("150"))


class TestRechazarCancelar:
    def test_reject_then_cancel(self, db, actor, cuotas) -> None:
        pago = pagos_service.rechazar_pago(db, actor, cuotas[0].id, "Fondos no confirmados")
        assert pago.estado == EstadoPago.rechazado
        assert pago.motivo_rechazo == "Fondos no confirmados"

        with pytest.raises(InvalidStateTransitionError):
            pagos_service.rechazar_pago(db, actor, cuotas[0].id, "Otra vez")

        pago = pagos_service.cancelar_pago(db, actor, cuotas[0].id, "Duplicada")
        assert pago.estado == EstadoPago.cancelado
        with pytest.raises(InvalidStateTransitionError):
            pagos_service.cancelar_pago(db, actor, cuotas[0].id, "Duplicada")

    def test_processed_cannot_be_cancelled(self, db, actor, cuotas) -> None:
        _procesar(db, actor, cuotas[0])
        with pytest.raises(InvalidStateTransitionError):
            pagos_service.cancelar_pago(db, actor, cuotas[0].id, "Error")

    def test_reason_is_required(self, db, actor, cuotas) -> None:
        with pytest.raises(ValidationError):
            pagos_service.rechazar_pago(db, actor, cuotas[0].id, "  ")


class TestLote:
    def test_failures_do_not_undo_successes(self, db, actor, prestamo, cuotas) -> None:
        def _item(pago):
            return PagoLoteItem(pago_id=pago.id, monto_pagado=Decimal("1066.19"), fecha_pago=date(2025, 2, 15))

        res = pagos_service.procesar_pagos_en_lote(db, actor, [_item(cuotas[0]), _item(cuotas[0]), _item(cuotas[1])])

        assert [p.id for p in res["exitosos"]] == [cuotas[0].id, cuotas[1].id]
        assert len(res["fallidos"]) == 1
        assert res["fallidos"][0]["pago_id"] == cuotas[0].id
        assert res["fallidos"][0]["error"] == "InvalidStateTransitionError"
        assert prestamo.cuotas_pagadas == 2


class TestEstadisticas:
    def test_totals(self, db, actor, prestamo, cuotas) -> None:
        _procesar(db, actor, cuotas[0], metodo_pago=MetodoPagoPrestamo.transferencia)
        pagos_service.cancelar_pago(db, actor, cuotas[11].id, "Prepago")

        stats = pagos_service.estadisticas(db, actor, prestamo.id)
        assert stats["total_pagos"] == 12
        assert stats["por_estado"] == {"procesado": 1, "pendiente": 10, "cancelado": 1}
        assert stats["total_pagado"] == Decimal("1066.19")
        assert stats["intereses_pagados"] == Decimal("120.00")
        assert stats["por_metodo"] == {"transferencia": {"cantidad": 1, "monto_total": Decimal("1066.19")}}

        esperado = redondear(stats["total_pagado"] / stats["total_programado"] * 100)
        assert stats["eficiencia_cobranza"] == esperado

    def test_empty(self, db, actor) -> None:
        stats = pagos_service.estadisticas(db, actor)
        assert stats["total_pagos"] == 0
        assert stats["eficiencia_cobranza"] == Decimal("0")

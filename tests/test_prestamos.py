"""Tests for loans: creation, schedule generation and read models."""

from datetime import date
from decimal import Decimal

import pytest

from backend.app.core.constants import (
    CategoriaCaja,
    EstadoMovimientoCaja,
    EstadoPago,
    EstadoPrestamo,
    ModuloDestino,
    TipoPrestamo,
)
from backend.app.core.errors import InvalidStateTransitionError, NotAuthorizedError, NotFoundError, ValidationError
from backend.app.db import models
from backend.app.schemas.prestamos import PrestamoCreate
from backend.app.services import prestamos_service


def _prestamo_in(**kwargs) -> PrestamoCreate:
    datos = dict(
        tipo=TipoPrestamo.personal,
        entidad_financiera="Banco X",
        monto_solicitado=Decimal("12000"),
        tasa_interes=Decimal("12"),
        plazo_meses=12,
        fecha_solicitud=date(2025, 1, 10),
        dia_pago=15,
    )
    datos.update(kwargs)
    return PrestamoCreate(**datos)


@pytest.fixture
def prestamo(db, actor):
    obj = prestamos_service.crear_prestamo(db, actor, _prestamo_in())
    db.flush()
    return obj


class TestCrearPrestamo:
    def test_derived_fields(self, prestamo) -> None:
        assert prestamo.codigo == "PREST001"
        assert prestamo.estado == EstadoPrestamo.aprobado
        assert prestamo.monto_aprobado == Decimal("12000.00")
        assert prestamo.cuota_mensual == Decimal("1066.19")
        assert prestamo.saldo_pendiente == Decimal("12000.00")
        assert prestamo.fecha_proximo_pago == date(2025, 2, 15)
        assert prestamo.cuotas_pendientes == 12
        assert prestamo.cuotas_pagadas == 0
        assert prestamo.tasa_mora_diaria == Decimal("0.033")

    def test_cash_income_is_recorded(self, db, prestamo) -> None:
        ingresos = db.query(models.MovimientoCaja).filter_by(categoria=CategoriaCaja.prestamo_recibido).all()
        assert len(ingresos) == 1
        mov = ingresos[0]
        assert mov.monto == Decimal("12000.00")
        assert mov.estado == EstadoMovimientoCaja.aplicado
        assert mov.modulo_destino == ModuloDestino.prestamos
        assert mov.referencia_modulo == prestamo.id
        assert mov.concepto == "Préstamo recibido - PREST001"

    def test_codes_are_sequential(self, db, actor, prestamo) -> None:
        otro = prestamos_service.crear_prestamo(db, actor, _prestamo_in(entidad_financiera="Caja Y"))
        assert otro.codigo == "PREST002"

    def test_disbursement_date_drives_first_due_date(self, db, actor) -> None:
        obj = prestamos_service.crear_prestamo(
            db, actor, _prestamo_in(fecha_desembolso=date(2025, 1, 31), dia_pago=31)
        )
        assert obj.fecha_proximo_pago == date(2025, 2, 28)

    def test_blank_entity_is_rejected(self, db, actor) -> None:
        with pytest.raises(ValidationError):
            prestamos_service.crear_prestamo(db, actor, _prestamo_in(entidad_financiera="   "))

    def test_foreign_account_is_rejected(self, db, actor, otro_actor, crear_cuenta) -> None:
        ajena = crear_cuenta(otro_actor)
        with pytest.raises(NotAuthorizedError):
            prestamos_service.crear_prestamo(db, actor, _prestamo_in(cuenta_pago_id=ajena.id))

    def test_other_users_cannot_read(self, db, otro_actor, prestamo) -> None:
        with pytest.raises(NotAuthorizedError):
            prestamos_service.obtener_prestamo(db, otro_actor, prestamo.id)

    def test_missing_loan(self, db, actor) -> None:
        with pytest.raises(NotFoundError):
            prestamos_service.obtener_prestamo(db, actor, "no-existe")


class TestCronograma:
    def test_generates_one_pending_installment_per_month(self, db, actor, prestamo) -> None:
        pagos = prestamos_service.generar_cronograma(db, actor, prestamo.id)

        assert len(pagos) == 12
        assert all(p.estado == EstadoPago.pendiente for p in pagos)
        primero = pagos[0]
        assert primero.codigo == "PAGOFIN0001"
        assert pagos[-1].codigo == "PAGOFIN0012"
        assert primero.numero_cuota == 1
        assert primero.fecha_programada == date(2025, 2, 15)
        assert primero.fecha_vencimiento == date(2025, 3, 17)
        assert primero.monto_capital == Decimal("946.19")
        assert primero.monto_interes == Decimal("120.00")
        assert primero.monto_total == Decimal("1066.19")
        assert primero.saldo_anterior == Decimal("12000.00")
        assert pagos[-1].saldo_posterior == Decimal("0.00")
        assert primero.tasa_mora == Decimal("0.033")

    def test_only_once(self, db, actor, prestamo) -> None:
        prestamos_service.generar_cronograma(db, actor, prestamo.id)
        with pytest.raises(InvalidStateTransitionError):
            prestamos_service.generar_cronograma(db, actor, prestamo.id)

    def test_cancel_closes_open_installments(self, db, actor, prestamo) -> None:
        pagos = prestamos_service.generar_cronograma(db, actor, prestamo.id)
        prestamos_service.cancelar_prestamo(db, actor, prestamo.id, "Refinanciado")

        assert prestamo.estado == EstadoPrestamo.cancelado
        assert prestamo.saldo_pendiente == Decimal("0")
        assert prestamo.fecha_proximo_pago is None
        assert {p.estado for p in pagos} == {EstadoPago.cancelado}

        with pytest.raises(InvalidStateTransitionError):
            prestamos_service.cancelar_prestamo(db, actor, prestamo.id, "Otra vez")

    def test_no_schedule_for_cancelled_loan(self, db, actor, prestamo) -> None:
        prestamos_service.cancelar_prestamo(db, actor, prestamo.id, "Desistido")
        with pytest.raises(InvalidStateTransitionError):
            prestamos_service.generar_cronograma(db, actor, prestamo.id)


class TestConsultas:
    def test_amortization_table(self, db, actor, prestamo) -> None:
        tabla = prestamos_service.tabla_amortizacion_prestamo(db, actor, prestamo.id)
        assert tabla["cuota_mensual"] == Decimal("1066.19")
        assert len(tabla["filas"]) == 12
        assert tabla["filas"][-1]["saldo_restante"] == Decimal("0.00")
        assert not any(f["pagada"] for f in tabla["filas"])

    def test_simulation(self) -> None:
        out = prestamos_service.simular_cuota(Decimal("12000"), Decimal("12"), 12)
        assert out == {
            "cuota_mensual": Decimal("1066.19"),
            "total_a_pagar": Decimal("12794.28"),
            "total_intereses": Decimal("794.28"),
        }

    def test_simulation_rejects_zero_term(self) -> None:
        with pytest.raises(ValidationError):
            prestamos_service.simular_cuota(Decimal("1000"), Decimal("10"), 0)

    def test_statistics(self, db, actor, prestamo) -> None:
        otro = prestamos_service.crear_prestamo(
            db, actor, _prestamo_in(monto_solicitado=Decimal("3000"), plazo_meses=6)
        )
        prestamos_service.cancelar_prestamo(db, actor, otro.id, "Pagado por adelantado")

        stats = prestamos_service.estadisticas(db, actor)
        assert stats["total_prestamos"] == 2
        assert stats["aprobados"] == 1
        assert stats["cancelados"] == 1
        assert stats["monto_total_aprobado"] == Decimal("15000.00")
        assert stats["saldo_pendiente_total"] == Decimal("12000.00")
        assert stats["cuota_mensual_total"] == Decimal("1066.19")

    def test_overdue_and_upcoming(self, db, actor, prestamo) -> None:
        vencidos = prestamos_service.prestamos_vencidos(db, actor, fecha_corte=date(2025, 3, 1))
        assert [p.id for p in vencidos] == [prestamo.id]
        assert prestamos_service.prestamos_vencidos(db, actor, fecha_corte=date(2025, 2, 1)) == []

        proximos = prestamos_service.proximos_a_vencer(db, actor, dias=30, fecha_corte=date(2025, 2, 1))
        assert [p.id for p in proximos] == [prestamo.id]
        assert prestamos_service.proximos_a_vencer(db, actor, dias=7, fecha_corte=date(2025, 2, 1)) == []

    def test_search(self, db, actor, prestamo) -> None:
        prestamos_service.crear_prestamo(db, actor, _prestamo_in(entidad_financiera="Caja Arequipa"))
        assert [p.codigo for p in prestamos_service.listar_prestamos(db, actor, q="arequipa")] == ["PREST002"]
        assert len(prestamos_service.listar_prestamos(db, actor, estado=EstadoPrestamo.aprobado)) == 2

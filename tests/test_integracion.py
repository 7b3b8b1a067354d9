"""Tests for the cash <-> bank integration orchestrator."""

import logging
from decimal import Decimal

import pytest

from backend.app.core.constants import (
    CategoriaBancaria,
    CategoriaCaja,
    EstadoMovimientoBancario,
    EstadoMovimientoCaja,
    MetodoPagoBancario,
    MetodoPagoCaja,
    TipoMovimientoBancario,
    TipoMovimientoCaja,
)
from backend.app.core.errors import (
    AccountInactiveError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    ValidationError,
)
from backend.app.db import models
from backend.app.schemas.movimientos_caja import MovimientoCajaCreate
from backend.app.services import cuentas_service, integracion_service
from backend.app.services import movimientos_bancarios_service as bancos
from backend.app.services import movimientos_caja_service as caja


def _pago_proveedor(cuenta, **kwargs) -> MovimientoCajaCreate:
    datos = dict(
        tipo=TipoMovimientoCaja.egreso,
        monto=Decimal("30.00"),
        concepto="Pago a proveedor",
        descripcion="Factura F001-123",
        categoria=CategoriaCaja.pago_proveedor,
        metodo_pago=MetodoPagoCaja.transferencia,
        afecta_cuenta_bancaria=True,
        cuenta_bancaria_id=cuenta.id,
    )
    datos.update(kwargs)
    return MovimientoCajaCreate(**datos)


def _movimientos_banco(db, cuenta):
    return (
        db.query(models.MovimientoBancario)
        .filter_by(cuenta_id=cuenta.id, es_saldo_inicial=False)
        .all()
    )


class TestRegistrarIntegrado:
    def test_writes_both_sides(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        mov_caja, mov_banco = res["movimiento_caja"], res["movimiento_bancario"]

        assert cuenta.saldo_actual == Decimal("70.00")
        assert res["resumen"] == {
            "cuenta_id": cuenta.id,
            "saldo_anterior": Decimal("100.00"),
            "saldo_posterior": Decimal("70.00"),
        }
        assert mov_caja.movimiento_bancario_id == mov_banco.id
        assert mov_banco.movimiento_caja_id == mov_caja.id
        assert mov_caja.saldo_banco_anterior == Decimal("100.00")
        assert mov_caja.saldo_banco_posterior == Decimal("70.00")
        assert mov_banco.tipo == TipoMovimientoBancario.egreso
        assert mov_banco.categoria == CategoriaBancaria.pago_proveedor
        assert mov_banco.metodo_pago == MetodoPagoBancario.transferencia
        assert mov_banco.descripcion == "[CAJA] Pago a proveedor - Factura F001-123"

    def test_cash_only(self, db, actor) -> None:
        data = MovimientoCajaCreate(
            tipo=TipoMovimientoCaja.ingreso,
            monto=Decimal("12.00"),
            concepto="Venta",
            categoria=CategoriaCaja.venta_producto,
            metodo_pago=MetodoPagoCaja.yape,
        )
        res = integracion_service.registrar_movimiento_integrado(db, actor, data)
        assert res["movimiento_bancario"] is None
        assert res["resumen"] is None
        assert res["movimiento_caja"].movimiento_bancario_id is None

    def test_income_credits_account(self, db, actor, cuenta) -> None:
        data = _pago_proveedor(
            cuenta, tipo=TipoMovimientoCaja.ingreso, categoria=CategoriaCaja.cobro_cliente,
            concepto="Cobro", monto=Decimal("45.00"),
        )
        res = integracion_service.registrar_movimiento_integrado(db, actor, data)
        assert res["movimiento_bancario"].categoria == CategoriaBancaria.cobro_cliente
        assert cuenta.saldo_actual == Decimal("145.00")

    def test_insufficient_funds_writes_nothing(self, db, actor, cuenta) -> None:
        with pytest.raises(InsufficientFundsError):
            integracion_service.registrar_movimiento_integrado(
                db, actor, _pago_proveedor(cuenta, monto=Decimal("100.01"))
            )
        assert cuenta.saldo_actual == Decimal("100.00")
        assert _movimientos_banco(db, cuenta) == []
        assert db.query(models.MovimientoCaja).count() == 0

    def test_bad_cash_breakdown_is_checked_before_bank(self, db, actor, cuenta) -> None:
        data = _pago_proveedor(
            cuenta,
            metodo_pago=MetodoPagoCaja.efectivo,
            desglose_efectivo={"billetes": {"b20": 1}},
        )
        with pytest.raises(ValidationError):
            integracion_service.registrar_movimiento_integrado(db, actor, data)
        assert _movimientos_banco(db, cuenta) == []

    def test_inactive_account(self, db, actor, cuenta) -> None:
        cuentas_service.cambiar_estado(db, actor, cuenta.id, False)
        with pytest.raises(AccountInactiveError):
            integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))

    def test_cash_failure_is_logged_and_rolled_back(self, db, actor, cuenta, monkeypatch, caplog) -> None:
        def _falla(*args, **kwargs):
            raise ValidationError("caja no disponible")

        monkeypatch.setattr(caja, "registrar_movimiento", _falla)
        with caplog.at_level(logging.ERROR):
            with pytest.raises(ValidationError):
                integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        assert "falló la caja" in caplog.text

        db.rollback()
        assert cuenta.saldo_actual == Decimal("100.00")
        assert _movimientos_banco(db, cuenta) == []

    def test_shared_payment_details_do_not_collide(self, db, actor, cuenta) -> None:
        a = integracion_service.registrar_movimiento_integrado(
            db, actor, _pago_proveedor(cuenta, detalles_pago="Transferencia BCP")
        )
        b = integracion_service.registrar_movimiento_integrado(
            db, actor, _pago_proveedor(cuenta, detalles_pago="Transferencia BCP")
        )
        num_a = a["movimiento_bancario"].numero_operacion
        num_b = b["movimiento_bancario"].numero_operacion

        assert num_a.startswith("CAJA-")
        assert num_b.startswith("CAJA-")
        assert num_a != num_b
        assert a["movimiento_caja"].detalles_pago == "Transferencia BCP"
        assert cuenta.saldo_actual == Decimal("40.00")

    def test_explicit_operation_number_reaches_bank(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(
            db, actor, _pago_proveedor(cuenta, detalles_pago="Transferencia BCP", numero_operacion=" OP-1 ")
        )
        assert res["movimiento_bancario"].numero_operacion == "OP-1"


class TestAnularIntegrado:
    def test_reversal_restores_balance_once(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        anulacion = integracion_service.anular_movimiento_integrado(
            db, actor, res["movimiento_caja"].id, "Proveedor devolvió"
        )

        assert cuenta.saldo_actual == Decimal("100.00")
        assert anulacion["movimiento_caja"].estado == EstadoMovimientoCaja.anulado
        assert anulacion["movimiento_bancario_anulado"].estado == EstadoMovimientoBancario.anulado
        compensacion = anulacion["movimiento_compensacion"]
        assert compensacion.tipo == TipoMovimientoBancario.ingreso
        assert compensacion.monto == Decimal("30.00")
        assert compensacion.movimiento_relacionado_id == res["movimiento_bancario"].id

        conciliacion = cuentas_service.conciliar_cuenta(db, actor, cuenta.id)
        assert conciliacion["cuadra"] is True

    def test_cash_only_reversal(self, db, actor) -> None:
        data = MovimientoCajaCreate(
            tipo=TipoMovimientoCaja.ingreso,
            monto=Decimal("12.00"),
            concepto="Venta",
            categoria=CategoriaCaja.venta_producto,
            metodo_pago=MetodoPagoCaja.plin,
        )
        res = integracion_service.registrar_movimiento_integrado(db, actor, data)
        anulacion = integracion_service.anular_movimiento_integrado(db, actor, res["movimiento_caja"].id, "Error")
        assert anulacion["movimiento_compensacion"] is None
        assert anulacion["movimiento_caja"].estado == EstadoMovimientoCaja.anulado

    def test_reversal_twice_is_rejected(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        integracion_service.anular_movimiento_integrado(db, actor, res["movimiento_caja"].id, "Uno")
        with pytest.raises(InvalidStateTransitionError):
            integracion_service.anular_movimiento_integrado(db, actor, res["movimiento_caja"].id, "Dos")

    def test_sides_cannot_be_voided_alone(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        with pytest.raises(InvalidStateTransitionError):
            caja.anular(db, actor, res["movimiento_caja"].id, "Solo caja")
        with pytest.raises(InvalidStateTransitionError):
            bancos.anular_movimiento(db, actor, res["movimiento_bancario"].id, "Solo banco")


class TestConciliacion:
    def test_consistent_links(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        integracion_service.anular_movimiento_integrado(db, actor, res["movimiento_caja"].id, "Error")
        integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta, monto=Decimal("10")))

        out = integracion_service.conciliar_integracion(db, actor)
        assert out["cuadra"] is True
        assert out["revisados_caja"] == 2
        assert out["revisados_banco"] == 2

    def test_detects_inconsistent_state(self, db, actor, cuenta) -> None:
        res = integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        res["movimiento_caja"].estado = EstadoMovimientoCaja.anulado
        db.flush()

        out = integracion_service.conciliar_integracion(db, actor)
        assert out["cuadra"] is False
        assert [i["tipo"] for i in out["incidencias"]] == ["estado_inconsistente"]

    def test_summary_splits_integrated_and_cash_only(self, db, actor, cuenta) -> None:
        integracion_service.registrar_movimiento_integrado(db, actor, _pago_proveedor(cuenta))
        integracion_service.registrar_movimiento_integrado(
            db,
            actor,
            MovimientoCajaCreate(
                tipo=TipoMovimientoCaja.ingreso,
                monto=Decimal("12.00"),
                concepto="Venta",
                categoria=CategoriaCaja.venta_producto,
                metodo_pago=MetodoPagoCaja.yape,
            ),
        )
        out = integracion_service.resumen_integracion(db, actor)
        assert out["integrados"] == 1
        assert out["solo_caja"] == 1
        assert out["total_integrado_egresos"] == Decimal("30.00")
        assert out["total_solo_caja_ingresos"] == Decimal("12.00")

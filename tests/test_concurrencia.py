"""Concurrent writers against the same account."""

import threading
from decimal import Decimal

import pytest

from backend.app.core.constants import (
    CategoriaBancaria,
    CategoriaCaja,
    MetodoPagoCaja,
    TipoMovimientoCaja,
)
from backend.app.core.errors import InsufficientFundsError
from backend.app.db import models
from backend.app.db.session import SessionLocal
from backend.app.schemas.movimientos_caja import MovimientoCajaCreate
from backend.app.services import integracion_service, saldo_service
from backend.app.services import movimientos_bancarios_service as bancos


def _en_paralelo(n: int, trabajo):
    """Lanza `n` hilos que arrancan a la vez y devuelve lo que devolvió cada uno."""
    barrera = threading.Barrier(n)
    resultados = []
    lock = threading.Lock()

    def _hilo(i: int) -> None:
        session = SessionLocal()
        try:
            barrera.wait()
            try:
                trabajo(session, i)
                session.commit()
                res = "ok"
            except InsufficientFundsError as exc:
                session.rollback()
                res = exc
        finally:
            session.close()
        with lock:
            resultados.append(res)

    hilos = [threading.Thread(target=_hilo, args=(i,)) for i in range(n)]
    for h in hilos:
        h.start()
    for h in hilos:
        h.join(timeout=60)
    return resultados


def _saldo(cuenta_id: str) -> Decimal:
    session = SessionLocal()
    try:
        return session.get(models.CuentaBancaria, cuenta_id).saldo_actual
    finally:
        session.close()


def test_two_withdrawals_cannot_overdraw(db, actor, cuenta) -> None:
    cuenta_id = cuenta.id
    db.rollback()

    def _egreso(session, i):
        bancos.registrar_egreso(
            session,
            actor,
            cuenta_id=cuenta_id,
            categoria=CategoriaBancaria.gasto_operativo,
            monto=Decimal("60.00"),
            descripcion=f"Retiro {i}",
        )

    resultados = _en_paralelo(2, _egreso)

    assert resultados.count("ok") == 1
    errores = [r for r in resultados if isinstance(r, InsufficientFundsError)]
    assert len(errores) == 1
    assert errores[0].disponible == Decimal("40.00")
    assert _saldo(cuenta_id) == Decimal("40.00")


def test_concurrent_deposits_all_land(db, actor, cuenta) -> None:
    cuenta_id = cuenta.id
    db.rollback()

    def _ingreso(session, i):
        bancos.registrar_ingreso(
            session,
            actor,
            cuenta_id=cuenta_id,
            categoria=CategoriaBancaria.cobro_cliente,
            monto=Decimal("10.00"),
            descripcion=f"Cobro {i}",
        )

    resultados = _en_paralelo(5, _ingreso)

    assert resultados == ["ok"] * 5
    assert _saldo(cuenta_id) == Decimal("150.00")
    assert bancos.suma_libro(db, cuenta_id) == (Decimal("50.00"), 5)


def test_stale_snapshot_cannot_overdraw(db, cuenta) -> None:
    cuenta_id = cuenta.id
    db.rollback()

    # s1 se queda con la foto de saldo 100 en su identity map
    s1 = SessionLocal(expire_on_commit=False)
    s2 = SessionLocal()
    try:
        vista = s1.get(models.CuentaBancaria, cuenta_id)
        s1.commit()
        assert vista.saldo_actual == Decimal("100.00")

        saldo_service.debitar(s2, cuenta_id, Decimal("60.00"))
        s2.commit()

        with pytest.raises(InsufficientFundsError) as exc:
            saldo_service.debitar(s1, cuenta_id, Decimal("60.00"))
        assert exc.value.disponible == Decimal("40.00")
        s1.rollback()
    finally:
        s1.close()
        s2.close()

    assert _saldo(cuenta_id) == Decimal("40.00")


def test_two_integrated_payments_cannot_overdraw(db, actor, cuenta) -> None:
    cuenta_id = cuenta.id
    db.rollback()

    def _pago(session, i):
        integracion_service.registrar_movimiento_integrado(
            session,
            actor,
            MovimientoCajaCreate(
                tipo=TipoMovimientoCaja.egreso,
                monto=Decimal("60.00"),
                concepto=f"Pago proveedor {i}",
                categoria=CategoriaCaja.pago_proveedor,
                metodo_pago=MetodoPagoCaja.transferencia,
                afecta_cuenta_bancaria=True,
                cuenta_bancaria_id=cuenta_id,
            ),
        )

    resultados = _en_paralelo(2, _pago)

    assert resultados.count("ok") == 1
    errores = [r for r in resultados if isinstance(r, InsufficientFundsError)]
    assert len(errores) == 1
    assert errores[0].disponible == Decimal("40.00")
    assert _saldo(cuenta_id) == Decimal("40.00")
    assert db.query(models.MovimientoCaja).count() == 1
    assert bancos.suma_libro(db, cuenta_id) == (Decimal("-60.00"), 1)

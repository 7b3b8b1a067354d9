"""HTTP-level tests through the FastAPI app."""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from jose import jwt

from backend.app.core.config import settings
from backend.app.core.security import decode_actor_token

API = "/api/v1"


def _abrir_cuenta(client, saldo="100.00", numero="001-0001") -> dict:
    resp = client.post(
        f"{API}/cuentas",
        json={
            "nombre": "Cuenta principal",
            "banco": "BCP",
            "tipo_cuenta": "corriente",
            "numero_cuenta": numero,
            "titular": "Empresa SAC",
            "saldo_inicial": saldo,
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").status_code == 200


def test_lifespan_runs_startup(client, monkeypatch) -> None:
    from backend.app import main

    niveles = []
    monkeypatch.setattr(main, "setup_logging", niveles.append)
    with client:
        assert niveles == [settings.LOG_LEVEL]
        assert client.get("/ready").json() == {"status": "ok", "db": "reachable"}


def test_open_account(client) -> None:
    cuenta = _abrir_cuenta(client)
    assert cuenta["codigo"] == "CTA001"
    assert Decimal(cuenta["saldo_actual"]) == Decimal("100.00")

    listado = client.get(f"{API}/cuentas").json()
    assert [c["id"] for c in listado] == [cuenta["id"]]


def test_duplicate_account_is_409(client) -> None:
    _abrir_cuenta(client)
    resp = client.post(
        f"{API}/cuentas",
        json={
            "nombre": "Otra",
            "banco": "BCP",
            "tipo_cuenta": "corriente",
            "numero_cuenta": "001-0001",
            "titular": "Empresa SAC",
        },
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyExistsError"


def test_overdraft_is_409(client) -> None:
    cuenta = _abrir_cuenta(client)
    resp = client.post(
        f"{API}/movimientos-bancarios/egreso",
        json={
            "cuenta_id": cuenta["id"],
            "categoria": "gasto_operativo",
            "monto": "100.01",
            "descripcion": "Compra",
        },
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "InsufficientFundsError"
    assert body["detail"] == "Saldo insuficiente. Disponible: 100.00, Requerido: 100.01"


def test_income_and_reversal(client) -> None:
    cuenta = _abrir_cuenta(client)
    resp = client.post(
        f"{API}/movimientos-bancarios/ingreso",
        json={
            "cuenta_id": cuenta["id"],
            "categoria": "cobro_cliente",
            "monto": "50.00",
            "descripcion": "Cobro factura",
        },
    )
    assert resp.status_code == 201, resp.text
    mov = resp.json()
    assert Decimal(mov["saldo_posterior"]) == Decimal("150.00")

    resp = client.post(f"{API}/movimientos-bancarios/{mov['id']}/anular", json={"motivo": "Error"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["tipo"] == "egreso"

    saldo = client.get(f"{API}/cuentas/{cuenta['id']}").json()["saldo_actual"]
    assert Decimal(saldo) == Decimal("100.00")


def test_integrated_cash_flow(client) -> None:
    cuenta = _abrir_cuenta(client)
    resp = client.post(
        f"{API}/movimientos-caja",
        json={
            "tipo": "egreso",
            "monto": "30.00",
            "concepto": "Pago a proveedor",
            "categoria": "pago_proveedor",
            "metodo_pago": "transferencia",
            "afecta_cuenta_bancaria": True,
            "cuenta_bancaria_id": cuenta["id"],
        },
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert Decimal(body["resumen"]["saldo_posterior"]) == Decimal("70.00")
    caja_id = body["movimiento_caja"]["id"]
    assert body["movimiento_caja"]["movimiento_bancario_id"] == body["movimiento_bancario"]["id"]

    # el lado bancario no se anula por separado
    resp = client.post(
        f"{API}/movimientos-bancarios/{body['movimiento_bancario']['id']}/anular", json={"motivo": "x"}
    )
    assert resp.status_code == 409

    resp = client.post(f"{API}/movimientos-caja/{caja_id}/anular", json={"motivo": "Error de registro"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["movimiento_compensacion"]["tipo"] == "ingreso"

    saldo = client.get(f"{API}/cuentas/{cuenta['id']}").json()["saldo_actual"]
    assert Decimal(saldo) == Decimal("100.00")
    assert client.get(f"{API}/movimientos-caja/integracion/conciliacion").json()["cuadra"] is True


def test_integrated_cash_without_funds(client) -> None:
    cuenta = _abrir_cuenta(client)
    resp = client.post(
        f"{API}/movimientos-caja",
        json={
            "tipo": "egreso",
            "monto": "500.00",
            "concepto": "Compra grande",
            "categoria": "pago_proveedor",
            "metodo_pago": "transferencia",
            "afecta_cuenta_bancaria": True,
            "cuenta_bancaria_id": cuenta["id"],
        },
    )
    assert resp.status_code == 409
    assert client.get(f"{API}/movimientos-caja").json() == []


def test_loan_schedule_and_payment(client) -> None:
    resp = client.post(
        f"{API}/prestamos",
        json={
            "tipo": "personal",
            "entidad_financiera": "Banco X",
            "monto_solicitado": "12000",
            "tasa_interes": "12",
            "plazo_meses": 12,
            "fecha_solicitud": "2025-01-10",
            "dia_pago": 15,
        },
    )
    assert resp.status_code == 201, resp.text
    prestamo = resp.json()
    assert Decimal(prestamo["cuota_mensual"]) == Decimal("1066.19")

    resp = client.post(f"{API}/prestamos/{prestamo['id']}/cronograma")
    assert resp.status_code == 201, resp.text
    cuotas = resp.json()
    assert len(cuotas) == 12
    assert client.post(f"{API}/prestamos/{prestamo['id']}/cronograma").status_code == 409

    resp = client.post(
        f"{API}/pagos/{cuotas[0]['id']}/procesar",
        json={"monto_pagado": "1066.19", "fecha_pago": "2025-02-15"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["estado"] == "procesado"

    prestamo = client.get(f"{API}/prestamos/{prestamo['id']}").json()
    assert prestamo["cuotas_pagadas"] == 1
    assert Decimal(prestamo["saldo_pendiente"]) == Decimal("10933.81")


def test_simulation_endpoint(client) -> None:
    resp = client.post(
        f"{API}/prestamos/simular",
        json={"monto": "12000", "tasa_interes": "12", "plazo_meses": 12},
    )
    assert resp.status_code == 200, resp.text
    assert Decimal(resp.json()["total_intereses"]) == Decimal("794.28")


def test_missing_resource_is_404(client) -> None:
    resp = client.get(f"{API}/cuentas/no-existe")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFoundError"


class TestToken:
    def test_claims_become_actor(self) -> None:
        token = jwt.encode(
            {"sub": "user-009", "name": "Ana", "email": "ana@example.com"},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )
        actor = decode_actor_token(token)
        assert actor.user_id == "user-009"
        assert actor.display_name == "Ana"
        assert actor.role == "user"

    def test_missing_sub(self) -> None:
        token = jwt.encode({"name": "Ana"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        with pytest.raises(HTTPException) as exc:
            decode_actor_token(token)
        assert exc.value.status_code == 401

    def test_bad_signature(self) -> None:
        token = jwt.encode({"sub": "user-009"}, "otra-clave", algorithm=settings.ALGORITHM)
        with pytest.raises(HTTPException):
            decode_actor_token(token)

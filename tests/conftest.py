"""Pytest configuration and fixtures."""

import os
import tempfile

# La configuración se lee al importar backend.app: el entorno va primero.
_DB_DIR = tempfile.mkdtemp(prefix="finanzas-tests-")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'finanzas.db')}"
os.environ["BOOTSTRAP_CREATE_ALL"] = "false"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from backend.app.core.constants import Moneda, TipoCuenta  # noqa: E402
from backend.app.core.security import ActorContext, get_actor  # noqa: E402
from backend.app.db import models  # noqa: E402,F401
from backend.app.db.base import Base  # noqa: E402
from backend.app.db.session import SessionLocal, engine, get_db  # noqa: E402
from backend.app.schemas.cuentas import CuentaBancariaCreate  # noqa: E402
from backend.app.services import cuentas_service  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    """Esquema limpio para cada test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def actor() -> ActorContext:
    return ActorContext(user_id="user-001", display_name="Tester", email="tester@example.com")


@pytest.fixture
def otro_actor() -> ActorContext:
    return ActorContext(user_id="user-002", display_name="Otro")


@pytest.fixture
def crear_cuenta(db):
    """Abre y confirma una cuenta bancaria."""

    def _crear(actor, *, saldo_inicial="100.00", numero="001-0001", banco="BCP", moneda=Moneda.PEN):
        cuenta = cuentas_service.abrir_cuenta(
            db,
            actor,
            CuentaBancariaCreate(
                nombre="Cuenta principal",
                banco=banco,
                tipo_cuenta=TipoCuenta.corriente,
                numero_cuenta=numero,
                titular="Empresa SAC",
                moneda=moneda,
                saldo_inicial=Decimal(saldo_inicial),
            ),
        )
        db.commit()
        db.refresh(cuenta)
        return cuenta

    return _crear


@pytest.fixture
def cuenta(crear_cuenta, actor):
    """Cuenta activa con saldo 100.00."""
    return crear_cuenta(actor)


@pytest.fixture
def client(actor):
    from backend.app.main import app

    def _get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_actor] = lambda: actor
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

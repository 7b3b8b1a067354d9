# backend/app/db/session.py
"""
Gestión de la conexión a la base de datos (SQLAlchemy).

Puntos clave:
- Construimos engine desde settings.resolve_database_url()
- Postgres: connect_args para psycopg (prepare_threshold=0, timeout)
  y NullPool opcional cuando se pasa por un pooler.
- SQLite: check_same_thread=False, un timeout de bloqueo generoso y
  BEGIN IMMEDIATE emitido por SQLAlchemy, para que dos escrituras
  concurrentes se serialicen en vez de fallar, y para que SAVEPOINT
  funcione con pysqlite.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from backend.app.core.config import is_sqlite_url, settings


DATABASE_URL = settings.resolve_database_url()

if is_sqlite_url(DATABASE_URL):
    connect_args = {"check_same_thread": False, "timeout": 30}
else:
    connect_args = {
        "connect_timeout": 10,
        # Importante: prepare_threshold DEBE ser int, no string.
        "prepare_threshold": 0,
    }

engine_kwargs = dict(
    pool_pre_ping=True,
    future=True,
    connect_args=connect_args,
)

if settings.DB_USE_NULLPOOL:
    engine_kwargs["poolclass"] = NullPool

engine = create_engine(DATABASE_URL, **engine_kwargs)


if is_sqlite_url(DATABASE_URL):

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        """
        pysqlite abre transacciones por su cuenta (y mal con SAVEPOINT).
        Desactivamos ese comportamiento y emitimos el BEGIN nosotros.
        """
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        try:
            cur.execute("PRAGMA foreign_keys=ON")
        finally:
            cur.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        # IMMEDIATE: el escritor toma el bloqueo al empezar; el segundo espera
        conn.exec_driver_sql("BEGIN IMMEDIATE")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def get_db():
    """
    Dependencia FastAPI:
    - abre sesión
    - cierra sesión al finalizar (rollback implícito si no hubo commit)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

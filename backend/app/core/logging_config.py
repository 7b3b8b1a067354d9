# backend/app/core/logging_config.py
"""
Configuración de logging del backend.

Cada módulo usa `logging.getLogger(__name__)` y mensajes con etiqueta
entre corchetes ("[integracion] ...", "[prestamos] ..."). Aquí solo se
prepara el logger raíz una vez, al arrancar la app.
"""

from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """
    Configura el logger raíz con salida por stdout.

    - level: DEBUG / INFO / WARNING / ERROR (por defecto INFO).
    """
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("backend").setLevel(log_level)

    # Menos ruido de librerías externas
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)

# backend/app/core/errors.py
"""
Errores de negocio del módulo de finanzas.

Los servicios lanzan SOLO estas excepciones. La capa HTTP (main.py) las
traduce a una respuesta JSON con el status_code de cada clase, de modo
que el llamante siempre recibe un fallo tipado con un mensaje legible.
"""

from __future__ import annotations

from decimal import Decimal


class FinanzasError(Exception):
    """Base de todos los errores de negocio."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FinanzasError):
    """Dato obligatorio ausente o fuera de rango."""

    status_code = 422


class NotFoundError(FinanzasError):
    """Cuenta, movimiento, préstamo o pago inexistente."""

    status_code = 404


class NotAuthorizedError(FinanzasError):
    """El actor no es el propietario del recurso."""

    status_code = 403


class InsufficientFundsError(FinanzasError):
    """El egreso supera el saldo disponible de la cuenta."""

    status_code = 409

    def __init__(self, disponible: Decimal, solicitado: Decimal, message: str | None = None) -> None:
        self.disponible = disponible
        self.solicitado = solicitado
        super().__init__(
            message
            or f"Saldo insuficiente. Disponible: {disponible:.2f}, Requerido: {solicitado:.2f}"
        )


class InvalidStateTransitionError(FinanzasError):
    """Operación no permitida en el estado actual del registro."""

    status_code = 409


class AccountInactiveError(InvalidStateTransitionError):
    """La cuenta bancaria está desactivada y no admite movimientos."""


class AlreadyExistsError(FinanzasError):
    """Duplicado de número de operación, código o cuenta."""

    status_code = 409

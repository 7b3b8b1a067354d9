"""Tests for the business error hierarchy."""

from decimal import Decimal

from backend.app.core.errors import (
    AccountInactiveError,
    AlreadyExistsError,
    FinanzasError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)


class TestErrorHierarchy:
    def test_all_are_finanzas_errors(self) -> None:
        for cls in (
            ValidationError,
            NotFoundError,
            NotAuthorizedError,
            InvalidStateTransitionError,
            AccountInactiveError,
            AlreadyExistsError,
        ):
            assert issubclass(cls, FinanzasError)
        assert isinstance(InsufficientFundsError(Decimal("1"), Decimal("2")), FinanzasError)

    def test_account_inactive_is_invalid_state(self) -> None:
        assert issubclass(AccountInactiveError, InvalidStateTransitionError)

    def test_status_codes(self) -> None:
        assert ValidationError("x").status_code == 422
        assert NotFoundError("x").status_code == 404
        assert NotAuthorizedError("x").status_code == 403
        assert InvalidStateTransitionError("x").status_code == 409
        assert AlreadyExistsError("x").status_code == 409


class TestInsufficientFunds:
    def test_carries_both_amounts(self) -> None:
        err = InsufficientFundsError(disponible=Decimal("40.00"), solicitado=Decimal("60.00"))
        assert err.disponible == Decimal("40.00")
        assert err.solicitado == Decimal("60.00")
        assert err.status_code == 409

    def test_default_message(self) -> None:
        err = InsufficientFundsError(disponible=Decimal("40"), solicitado=Decimal("60"))
        assert str(err) == "Saldo insuficiente. Disponible: 40.00, Requerido: 60.00"
        assert err.message == str(err)

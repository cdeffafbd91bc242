"""Map ledger exceptions onto HTTP responses."""

from fastapi import HTTPException

from solidarite.services.ledger_errors import (
    LedgerError,
    LedgerValidationError,
    LedgerConflictError,
    LedgerNotFoundError,
    LedgerAuthorizationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (LedgerValidationError, 400),
    (LedgerAuthorizationError, 403),
    (LedgerNotFoundError, 404),
    (LedgerConflictError, 409),
    (LedgerError, 400),
)


def ledger_http_error(exc: LedgerError) -> HTTPException:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status_code, detail=str(exc))
    raise TypeError(f"Not a ledger error: {exc!r}")

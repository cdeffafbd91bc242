"""Exceptions raised by the ledger services.

The API layer maps each subclass onto an HTTP status; see
``solidarite.api.errors``.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""


class LedgerValidationError(LedgerError):
    """Input is malformed or violates a business rule (bad amount, over ceiling)."""


class LedgerConflictError(LedgerError):
    """Operation is not allowed in the record's current state."""


class LedgerNotFoundError(LedgerError):
    """Referenced loan, fine or member does not exist."""


class LedgerAuthorizationError(LedgerError):
    """Caller lacks the role or ownership the operation requires."""

"""Domain error taxonomy.

Every error carries a stable ``reason`` string that the HTTP layer returns to
callers, so clients can branch on it without parsing messages.
"""

from __future__ import annotations


class LedgerError(Exception):
    reason = "LedgerError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)
        self.message = message or self.reason


class ValidationError(LedgerError, ValueError):
    reason = "ValidationError"


class InvalidAmount(ValidationError):
    reason = "InvalidAmount"


class NotFound(LedgerError, LookupError):
    reason = "NotFound"


class Conflict(LedgerError):
    reason = "Conflict"


class AlreadyExists(Conflict):
    reason = "AlreadyExists"


class DuplicatePayment(Conflict):
    reason = "DuplicatePayment"


class InvalidTransition(Conflict):
    reason = "InvalidTransition"


class ConcurrentModification(Conflict):
    reason = "ConcurrentModification"


class NoBillableActivity(LedgerError):
    reason = "NoBillableActivity"


class InvalidSignature(LedgerError):
    reason = "InvalidSignature"


class TransientDependencyFailure(LedgerError):
    reason = "TransientDependencyFailure"


class GatewayUnavailable(TransientDependencyFailure):
    reason = "GatewayUnavailable"

"""
Ledger error taxonomy.

Every error carries a machine-readable ``reason`` code so callers can tell
"amount out of range" apart from "kyc not approved" without parsing messages.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""

    default_reason = "ledger_error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "reason": self.reason,
            "detail": self.message,
        }


class ValidationError(LedgerError):
    """Malformed input or amount outside plan bounds"""

    default_reason = "invalid_input"


class NotFoundError(LedgerError):
    """User, plan, investment, payment or return is missing"""

    default_reason = "not_found"


class ConflictError(LedgerError):
    """State already moved on (already paid, duplicate active investment, ...)"""

    default_reason = "conflict"


class PreconditionError(LedgerError):
    """Business prerequisite not met (KYC, registration, payout method)"""

    default_reason = "precondition_failed"


class ExternalServiceError(LedgerError):
    """Gateway or notification collaborator failed"""

    default_reason = "external_service_failed"

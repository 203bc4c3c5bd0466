"""Ledger error taxonomy.

Every error carries a machine-readable ``code``. Batch jobs turn these into
per-item outcomes; request handlers map them to HTTP responses through the
envelope handlers from ``libs.common.error_handler``.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for ledger business errors."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(LedgerError):
    """Bad input: missing code, malformed payment details."""

    code = "validation_error"
    status_code = 422


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """Duplicate referral or payout, self-referral, already-used code."""

    code = "conflict"
    status_code = 409


class InsufficientFundsError(LedgerError):
    code = "insufficient_balance"
    status_code = 409


class InactiveCampaignError(LedgerError):
    code = "campaign_inactive"
    status_code = 409


class LedgerSystemError(LedgerError):
    """Unexpected failure mid-operation."""

    code = "system_error"
    status_code = 500

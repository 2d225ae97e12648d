"""
Ledger error taxonomy.

Every engine operation raises one of these synchronously. None of them leave
partial effects behind: writes are staged on the transaction and discarded
when the operation fails.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""
    status_code = 400
    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class InvalidOption(LedgerError):
    code = "invalid_option"


class InvalidAmount(LedgerError):
    code = "invalid_amount"


class InvalidWager(LedgerError):
    code = "invalid_wager"


class InsufficientFunds(LedgerError):
    code = "insufficient_funds"


class BettingClosed(LedgerError):
    code = "betting_closed"


class DuplicateBet(LedgerError):
    status_code = 409
    code = "duplicate_bet"


class AlreadySettled(LedgerError):
    status_code = 409
    code = "already_settled"


class InvalidState(LedgerError):
    """Wrong wager status for the requested transition."""
    status_code = 409
    code = "invalid_state"


class Forbidden(LedgerError):
    status_code = 403
    code = "forbidden"


class TransientConflict(LedgerError):
    """Optimistic-concurrency retries exhausted; safe to retry from scratch."""
    status_code = 503
    code = "transient_conflict"


class WriteConflict(Exception):
    """
    Raised by a store when a commit observes a version change.

    Internal to the store/transaction retry loop, never surfaced to callers.
    """

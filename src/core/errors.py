"""
Error taxonomy for reading state, quoting and submitting trades.
"""


class TradingError(Exception):
    """Base class for every error raised by the trading core."""


class AccountNotFound(TradingError):
    """A required on-chain account does not exist."""

    def __init__(self, address, label: str = "account"):
        self.address = address
        self.label = label
        super().__init__(f"{label} {address} not found")


class MalformedAccount(TradingError):
    """Account data is shorter than the layout requires or fails an invariant."""

    def __init__(self, address, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Malformed account {address}: {reason}")


class InfeasibleRequest(TradingError):
    """Requested amount cannot be satisfied by the current reserves."""


class SubmissionRejected(TradingError):
    """The transport or the chain rejected the transaction."""


class MechanismChanged(SubmissionRejected):
    """The bonding curve completed between reading state and landing the trade."""


class TradeFailed(TradingError):
    """All attempts of a trade were exhausted."""

    def __init__(self, last_error: Exception, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Trade failed after {attempts} attempt(s): {last_error}")


FATAL_ERRORS = (AccountNotFound, MalformedAccount, InfeasibleRequest)

"""Core blockchain functionality."""

from core.client import SolanaClient
from core.errors import (
    AccountNotFound,
    InfeasibleRequest,
    MalformedAccount,
    MechanismChanged,
    SubmissionRejected,
    TradeFailed,
    TradingError,
)
from core.pda import derive_address

__all__ = [
    "SolanaClient",
    "derive_address",
    # Errors
    "TradingError",
    "AccountNotFound",
    "MalformedAccount",
    "InfeasibleRequest",
    "SubmissionRejected",
    "MechanismChanged",
    "TradeFailed",
]

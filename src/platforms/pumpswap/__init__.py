"""
PumpSwap AMM platform (post-migration pools).

Program ID: pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA
"""

from .address_provider import PumpSwapAddresses, PumpSwapAddressProvider
from .instruction_builder import PumpSwapInstructionLayout
from .pool_manager import PumpSwapPoolManager

__all__ = [
    "PumpSwapAddresses",
    "PumpSwapAddressProvider",
    "PumpSwapInstructionLayout",
    "PumpSwapPoolManager",
]

"""
Pump.fun bonding curve platform.

Program ID: 6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P
"""

from .address_provider import PumpFunAddresses, PumpFunAddressProvider
from .curve_manager import PumpFunCurveManager
from .instruction_builder import PumpFunInstructionLayout

__all__ = [
    "PumpFunAddresses",
    "PumpFunAddressProvider",
    "PumpFunCurveManager",
    "PumpFunInstructionLayout",
]

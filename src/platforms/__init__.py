"""
Platform registry.

Maps each Platform to its address provider and instruction layout.
"""

from interfaces.core import Platform, PlatformImplementations
from platforms.pumpfun import PumpFunAddressProvider, PumpFunInstructionLayout
from platforms.pumpswap import PumpSwapAddressProvider, PumpSwapInstructionLayout


def get_platform_implementations(platform: Platform) -> PlatformImplementations:
    """Get the implementations bundle for platform.

    Raises:
        ValueError: If the platform is not supported
    """
    if platform == Platform.PUMP_FUN:
        return PlatformImplementations(
            address_provider=PumpFunAddressProvider(),
            layout=PumpFunInstructionLayout(),
        )
    if platform == Platform.PUMP_SWAP:
        return PlatformImplementations(
            address_provider=PumpSwapAddressProvider(),
            layout=PumpSwapInstructionLayout(),
        )
    raise ValueError(f"Unsupported platform: {platform}")


__all__ = ["get_platform_implementations"]

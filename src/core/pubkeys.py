"""
System-wide addresses and constants shared by all platforms.
"""

from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey

LAMPORTS_PER_SOL: Final[int] = 1_000_000_000
TOKEN_DECIMALS: Final[int] = 6
SOL_DECIMALS: Final[int] = 9

BPS_DENOMINATOR: Final[int] = 10_000


@dataclass
class SystemAddresses:
    """Programs and mints that are not owned by Pump.fun or PumpSwap."""

    SYSTEM_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "11111111111111111111111111111111"
    )
    TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    )
    TOKEN_2022_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
    )
    ASSOCIATED_TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
    )
    SOL_MINT: Final[Pubkey] = Pubkey.from_string(
        "So11111111111111111111111111111111111111112"
    )

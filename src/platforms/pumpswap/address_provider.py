"""
PumpSwap implementation of AddressProvider interface.

Pools created by Pump.fun migration are owned by a pool-authority PDA of
the Pump.fun program and always quote against wrapped SOL.
"""

import struct
from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.pda import derive_address
from core.pubkeys import SystemAddresses
from interfaces.core import (
    AddressProvider,
    BuildOptions,
    Mechanism,
    Platform,
    PoolState,
)
from platforms.pumpfun.address_provider import (
    PumpFunAddresses,
    PumpFunAddressProvider,
    derive_fee_config,
)

CANONICAL_POOL_INDEX = 0


@dataclass
class PumpSwapAddresses:
    """PumpSwap program addresses."""

    PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA"
    )
    PROTOCOL_FEE_RECIPIENT: Final[Pubkey] = Pubkey.from_string(
        "62qc2CNXwrYqQScmEdiZFFAnJR262PxWEuNQtxfafNgV"
    )


class PumpSwapAddressProvider(AddressProvider):
    """PumpSwap implementation of AddressProvider interface."""

    def __init__(self, pumpfun: PumpFunAddressProvider | None = None):
        self._pumpfun = pumpfun or PumpFunAddressProvider()

    @property
    def platform(self) -> Platform:
        return Platform.PUMP_SWAP

    @property
    def program_id(self) -> Pubkey:
        return PumpSwapAddresses.PROGRAM

    def derive_pool(
        self,
        mint: Pubkey,
        quote_mint: Pubkey = SystemAddresses.SOL_MINT,
        index: int = CANONICAL_POOL_INDEX,
    ) -> Pubkey:
        """Pool created for mint when its bonding curve migrated."""
        pool_authority = self._pumpfun.derive_pool_authority(mint)
        return derive_address(
            [b"pool", struct.pack("<H", index), pool_authority, mint, quote_mint],
            PumpSwapAddresses.PROGRAM,
        )

    def derive_pool_v2(self, mint: Pubkey) -> Pubkey:
        return derive_address([b"pool-v2", mint], PumpSwapAddresses.PROGRAM)

    def derive_global_config(self) -> Pubkey:
        return derive_address([b"global_config"], PumpSwapAddresses.PROGRAM)

    def derive_event_authority(self) -> Pubkey:
        return derive_address([b"__event_authority"], PumpSwapAddresses.PROGRAM)

    def derive_coin_creator_vault_authority(self, coin_creator: Pubkey) -> Pubkey:
        return derive_address([b"creator_vault", coin_creator], PumpSwapAddresses.PROGRAM)

    def derive_global_volume_accumulator(self) -> Pubkey:
        return derive_address([b"global_volume_accumulator"], PumpSwapAddresses.PROGRAM)

    def derive_user_volume_accumulator(self, user: Pubkey) -> Pubkey:
        return derive_address(
            [b"user_volume_accumulator", user], PumpSwapAddresses.PROGRAM
        )

    def derive_fee_config(self) -> Pubkey:
        return derive_fee_config(PumpSwapAddresses.PROGRAM)

    def get_trade_accounts(
        self,
        mechanism: Mechanism,
        user: Pubkey,
        token_program: Pubkey,
        options: BuildOptions,
        fee_recipient: Pubkey | None = None,
    ) -> dict[str, Pubkey]:
        """Every account a pool buy or sell references, by name.

        Args:
            mechanism: Current pool state
            user: Trader wallet
            token_program: Program owning the base mint
            options: Build options (pool-v2 inclusion)
            fee_recipient: Protocol fee recipient override

        Returns:
            Dictionary mapping account names to addresses
        """
        if not isinstance(mechanism, PoolState):
            raise TypeError(f"PumpSwap accounts need a PoolState, got {type(mechanism).__name__}")

        quote_mint = mechanism.quote_mint
        quote_token_program = SystemAddresses.TOKEN_PROGRAM
        protocol_fee_recipient = fee_recipient or PumpSwapAddresses.PROTOCOL_FEE_RECIPIENT
        coin_creator_vault_authority = self.derive_coin_creator_vault_authority(
            mechanism.coin_creator
        )
        user_volume_accumulator = self.derive_user_volume_accumulator(user)

        accounts = {
            "pool": mechanism.pool,
            "user": user,
            "global_config": self.derive_global_config(),
            "base_mint": mechanism.mint,
            "quote_mint": quote_mint,
            "user_base_token_account": get_associated_token_address(
                user, mechanism.mint, token_program
            ),
            "user_quote_token_account": get_associated_token_address(
                user, quote_mint, quote_token_program
            ),
            "pool_base_token_account": mechanism.pool_base_token_account,
            "pool_quote_token_account": mechanism.pool_quote_token_account,
            "protocol_fee_recipient": protocol_fee_recipient,
            "protocol_fee_recipient_token_account": get_associated_token_address(
                protocol_fee_recipient, quote_mint, quote_token_program
            ),
            "base_token_program": token_program,
            "quote_token_program": quote_token_program,
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "associated_token_program": SystemAddresses.ASSOCIATED_TOKEN_PROGRAM,
            "event_authority": self.derive_event_authority(),
            "program": PumpSwapAddresses.PROGRAM,
            "coin_creator_vault_ata": get_associated_token_address(
                coin_creator_vault_authority, quote_mint, quote_token_program
            ),
            "coin_creator_vault_authority": coin_creator_vault_authority,
            "global_volume_accumulator": self.derive_global_volume_accumulator(),
            "user_volume_accumulator": user_volume_accumulator,
            "fee_config": self.derive_fee_config(),
            "fee_program": PumpFunAddresses.FEE_PROGRAM,
        }
        if mechanism.is_cashback_coin:
            accounts["user_volume_accumulator_quote_token_account"] = (
                get_associated_token_address(
                    user_volume_accumulator, quote_mint, quote_token_program
                )
            )
        if options.include_v2_accounts:
            accounts["pool_v2"] = self.derive_pool_v2(mechanism.mint)
        return accounts

    def get_claim_accounts(self, user: Pubkey) -> dict[str, Pubkey]:
        quote_mint = SystemAddresses.SOL_MINT
        quote_token_program = SystemAddresses.TOKEN_PROGRAM
        user_volume_accumulator = self.derive_user_volume_accumulator(user)
        return {
            "user": user,
            "user_volume_accumulator": user_volume_accumulator,
            "quote_mint": quote_mint,
            "quote_token_program": quote_token_program,
            "user_volume_accumulator_quote_token_account": get_associated_token_address(
                user_volume_accumulator, quote_mint, quote_token_program
            ),
            "user_quote_token_account": get_associated_token_address(
                user, quote_mint, quote_token_program
            ),
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "event_authority": self.derive_event_authority(),
            "program": PumpSwapAddresses.PROGRAM,
        }

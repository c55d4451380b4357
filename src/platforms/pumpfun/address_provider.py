"""
Pump.fun implementation of AddressProvider interface.

All bonding-curve PDAs and the account set for curve buy, sell and
claim_cashback instructions.
"""

from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.pda import derive_address
from core.pubkeys import SystemAddresses
from interfaces.core import (
    AddressProvider,
    BuildOptions,
    CurveState,
    Mechanism,
    Platform,
)


@dataclass
class PumpFunAddresses:
    """Pump.fun program addresses."""

    PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
    )
    FEE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
        "pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ"
    )
    # Used when the global account cannot be read
    DEFAULT_FEE_RECIPIENT: Final[Pubkey] = Pubkey.from_string(
        "CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM"
    )


def derive_fee_config(program_id: Pubkey) -> Pubkey:
    """Fee-config PDA of the fee program, keyed by the trading program."""
    return derive_address([b"fee_config", bytes(program_id)], PumpFunAddresses.FEE_PROGRAM)


class PumpFunAddressProvider(AddressProvider):
    """Pump.fun implementation of AddressProvider interface."""

    @property
    def platform(self) -> Platform:
        return Platform.PUMP_FUN

    @property
    def program_id(self) -> Pubkey:
        return PumpFunAddresses.PROGRAM

    def derive_global(self) -> Pubkey:
        return derive_address([b"global"], PumpFunAddresses.PROGRAM)

    def derive_bonding_curve(self, mint: Pubkey) -> Pubkey:
        return derive_address([b"bonding-curve", mint], PumpFunAddresses.PROGRAM)

    def derive_bonding_curve_v2(self, mint: Pubkey) -> Pubkey:
        return derive_address([b"bonding-curve-v2", mint], PumpFunAddresses.PROGRAM)

    def derive_associated_bonding_curve(
        self, bonding_curve: Pubkey, mint: Pubkey, token_program: Pubkey
    ) -> Pubkey:
        """Token account owned by the curve (an ATA-program PDA)."""
        return derive_address(
            [bonding_curve, token_program, mint],
            SystemAddresses.ASSOCIATED_TOKEN_PROGRAM,
        )

    def derive_creator_vault(self, creator: Pubkey) -> Pubkey:
        return derive_address([b"creator-vault", creator], PumpFunAddresses.PROGRAM)

    def derive_event_authority(self) -> Pubkey:
        return derive_address([b"__event_authority"], PumpFunAddresses.PROGRAM)

    def derive_global_volume_accumulator(self) -> Pubkey:
        return derive_address([b"global_volume_accumulator"], PumpFunAddresses.PROGRAM)

    def derive_user_volume_accumulator(self, user: Pubkey) -> Pubkey:
        return derive_address(
            [b"user_volume_accumulator", user], PumpFunAddresses.PROGRAM
        )

    def derive_fee_config(self) -> Pubkey:
        return derive_fee_config(PumpFunAddresses.PROGRAM)

    def derive_pool_authority(self, mint: Pubkey) -> Pubkey:
        """Authority that owns the PumpSwap pool created on migration."""
        return derive_address([b"pool-authority", mint], PumpFunAddresses.PROGRAM)

    def derive_user_token_account(
        self, user: Pubkey, mint: Pubkey, token_program: Pubkey
    ) -> Pubkey:
        return get_associated_token_address(user, mint, token_program)

    def get_trade_accounts(
        self,
        mechanism: Mechanism,
        user: Pubkey,
        token_program: Pubkey,
        options: BuildOptions,
        fee_recipient: Pubkey | None = None,
    ) -> dict[str, Pubkey]:
        """Every account a curve buy or sell references, by name.

        Args:
            mechanism: Current curve state
            user: Trader wallet
            token_program: Program owning the mint
            options: Build options (bonding-curve-v2 inclusion)
            fee_recipient: Fee recipient read from the global account

        Returns:
            Dictionary mapping account names to addresses
        """
        if not isinstance(mechanism, CurveState):
            raise TypeError(f"Pump.fun accounts need a CurveState, got {type(mechanism).__name__}")

        mint = mechanism.mint
        bonding_curve = mechanism.bonding_curve
        accounts = {
            "global": self.derive_global(),
            "fee_recipient": fee_recipient or PumpFunAddresses.DEFAULT_FEE_RECIPIENT,
            "mint": mint,
            "bonding_curve": bonding_curve,
            "associated_bonding_curve": self.derive_associated_bonding_curve(
                bonding_curve, mint, token_program
            ),
            "user_token_account": self.derive_user_token_account(user, mint, token_program),
            "user": user,
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "token_program": token_program,
            "creator_vault": self.derive_creator_vault(mechanism.creator),
            "event_authority": self.derive_event_authority(),
            "program": PumpFunAddresses.PROGRAM,
            "global_volume_accumulator": self.derive_global_volume_accumulator(),
            "user_volume_accumulator": self.derive_user_volume_accumulator(user),
            "fee_config": self.derive_fee_config(),
            "fee_program": PumpFunAddresses.FEE_PROGRAM,
        }
        if options.include_v2_accounts:
            accounts["bonding_curve_v2"] = self.derive_bonding_curve_v2(mint)
        return accounts

    def get_claim_accounts(self, user: Pubkey) -> dict[str, Pubkey]:
        return {
            "user": user,
            "user_volume_accumulator": self.derive_user_volume_accumulator(user),
            "system_program": SystemAddresses.SYSTEM_PROGRAM,
            "event_authority": self.derive_event_authority(),
            "program": PumpFunAddresses.PROGRAM,
        }

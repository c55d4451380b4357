"""
Pump.fun instruction layout for the bonding curve program.

Account order and writability mirror the program's IDL exactly; the
generic builder in trading.instruction_builder resolves the names.
"""

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import (
    CloseAccountParams,
    close_account,
    create_idempotent_associated_token_account,
)

from interfaces.core import (
    AccountSpec,
    BuildOptions,
    InstructionLayout,
    Platform,
    QuotingMode,
    TradeDirection,
    TradeQuote,
    TradeRequest,
)
from platforms.pumpfun.address_provider import PumpFunAddresses

BUY_DISCRIMINATOR = bytes([102, 6, 61, 18, 1, 218, 235, 234])
BUY_EXACT_SOL_IN_DISCRIMINATOR = bytes([56, 252, 116, 8, 158, 223, 205, 95])
SELL_DISCRIMINATOR = bytes([51, 230, 133, 164, 1, 127, 131, 173])
CLAIM_CASHBACK_DISCRIMINATOR = bytes([37, 58, 35, 126, 190, 53, 228, 197])


class PumpFunInstructionLayout(InstructionLayout):
    """Encodings for curve buy, buy_exact_sol_in, sell and claim_cashback."""

    platform = Platform.PUMP_FUN
    program_id = PumpFunAddresses.PROGRAM
    buy_compute_units = 200_000
    sell_compute_units = 300_000

    buy_accounts = (
        AccountSpec("global"),
        AccountSpec("fee_recipient", is_writable=True),
        AccountSpec("mint"),
        AccountSpec("bonding_curve", is_writable=True),
        AccountSpec("associated_bonding_curve", is_writable=True),
        AccountSpec("user_token_account", is_writable=True),
        AccountSpec("user", is_signer=True, is_writable=True),
        AccountSpec("system_program"),
        AccountSpec("token_program"),
        AccountSpec("creator_vault", is_writable=True),
        AccountSpec("event_authority"),
        AccountSpec("program"),
        AccountSpec("global_volume_accumulator"),
        AccountSpec("user_volume_accumulator", is_writable=True),
        AccountSpec("fee_config"),
        AccountSpec("fee_program"),
        AccountSpec("bonding_curve_v2", optional=True),
    )

    sell_accounts = (
        AccountSpec("global"),
        AccountSpec("fee_recipient", is_writable=True),
        AccountSpec("mint"),
        AccountSpec("bonding_curve", is_writable=True),
        AccountSpec("associated_bonding_curve", is_writable=True),
        AccountSpec("user_token_account", is_writable=True),
        AccountSpec("user", is_signer=True, is_writable=True),
        AccountSpec("system_program"),
        AccountSpec("creator_vault", is_writable=True),
        AccountSpec("token_program"),
        AccountSpec("event_authority"),
        AccountSpec("program"),
        AccountSpec("fee_config"),
        AccountSpec("fee_program"),
    )

    claim_accounts = (
        AccountSpec("user", is_signer=True, is_writable=True),
        AccountSpec("user_volume_accumulator", is_writable=True),
        AccountSpec("system_program"),
        AccountSpec("event_authority"),
        AccountSpec("program"),
    )

    claim_discriminator = CLAIM_CASHBACK_DISCRIMINATOR

    def discriminator(self, direction: TradeDirection, mode: QuotingMode) -> bytes:
        if direction == TradeDirection.SELL:
            return SELL_DISCRIMINATOR
        if mode == QuotingMode.EXACT_INPUT:
            return BUY_EXACT_SOL_IN_DISCRIMINATOR
        return BUY_DISCRIMINATOR

    def payload_suffix(
        self, direction: TradeDirection, track_volume: bool, options: BuildOptions
    ) -> bytes:
        """Curve buys end with an OptionBool track flag.

        The 24-byte compat form omits it, which the program reads as
        "track"; so it is only usable when tracking is wanted.
        """
        if direction == TradeDirection.SELL:
            return b""
        if options.buy_24b_compat and track_volume:
            return b""
        return bytes([1, 1 if track_volume else 0])

    def pre_instructions(
        self,
        direction: TradeDirection,
        quote: TradeQuote,
        accounts: dict[str, Pubkey],
        missing: set[str],
        options: BuildOptions,
    ) -> list[Instruction]:
        if direction != TradeDirection.BUY or "user_token_account" not in missing:
            return []
        return [
            create_idempotent_associated_token_account(
                accounts["user"],  # payer
                accounts["user"],  # owner
                accounts["mint"],
                accounts["token_program"],
            )
        ]

    def post_instructions(
        self,
        request: TradeRequest,
        accounts: dict[str, Pubkey],
        options: BuildOptions,
    ) -> list[Instruction]:
        if request.direction != TradeDirection.SELL or not request.close_token_account:
            return []
        return [
            close_account(
                CloseAccountParams(
                    program_id=accounts["token_program"],
                    account=accounts["user_token_account"],
                    dest=accounts["user"],
                    owner=accounts["user"],
                    signers=[],
                )
            )
        ]

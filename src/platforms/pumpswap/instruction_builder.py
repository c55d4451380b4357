"""
PumpSwap instruction layout for pool buy, sell and claim_cashback.

Pool trades settle in wrapped SOL, so buys wrap lamports into the user's
WSOL account first and sells unwrap it afterwards.
"""

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    close_account,
    create_idempotent_associated_token_account,
    sync_native,
)

from core.pubkeys import SystemAddresses
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
from platforms.pumpfun.instruction_builder import (
    BUY_DISCRIMINATOR,
    CLAIM_CASHBACK_DISCRIMINATOR,
    SELL_DISCRIMINATOR,
)
from platforms.pumpswap.address_provider import PumpSwapAddresses

_SHARED_PREFIX = (
    AccountSpec("pool", is_writable=True),
    AccountSpec("user", is_signer=True, is_writable=True),
    AccountSpec("global_config"),
    AccountSpec("base_mint"),
    AccountSpec("quote_mint"),
    AccountSpec("user_base_token_account", is_writable=True),
    AccountSpec("user_quote_token_account", is_writable=True),
    AccountSpec("pool_base_token_account", is_writable=True),
    AccountSpec("pool_quote_token_account", is_writable=True),
    AccountSpec("protocol_fee_recipient"),
    AccountSpec("protocol_fee_recipient_token_account", is_writable=True),
    AccountSpec("base_token_program"),
    AccountSpec("quote_token_program"),
    AccountSpec("system_program"),
    AccountSpec("associated_token_program"),
    AccountSpec("event_authority"),
    AccountSpec("program"),
    AccountSpec("coin_creator_vault_ata", is_writable=True),
    AccountSpec("coin_creator_vault_authority"),
)


class PumpSwapInstructionLayout(InstructionLayout):
    """Encodings for pool buy, sell and claim_cashback."""

    platform = Platform.PUMP_SWAP
    program_id = PumpSwapAddresses.PROGRAM
    buy_compute_units = 500_000
    sell_compute_units = 300_000

    buy_accounts = _SHARED_PREFIX + (
        AccountSpec("global_volume_accumulator", is_writable=True),
        AccountSpec("user_volume_accumulator", is_writable=True),
        AccountSpec("fee_config"),
        AccountSpec("fee_program"),
        AccountSpec(
            "user_volume_accumulator_quote_token_account", is_writable=True, optional=True
        ),
        AccountSpec("pool_v2", optional=True),
    )

    sell_accounts = _SHARED_PREFIX + (
        AccountSpec("fee_config"),
        AccountSpec("fee_program"),
    )

    claim_accounts = (
        AccountSpec("user", is_signer=True, is_writable=True),
        AccountSpec("user_volume_accumulator", is_writable=True),
        AccountSpec("quote_mint"),
        AccountSpec("quote_token_program"),
        AccountSpec("user_volume_accumulator_quote_token_account", is_writable=True),
        AccountSpec("user_quote_token_account", is_writable=True),
        AccountSpec("system_program"),
        AccountSpec("event_authority"),
        AccountSpec("program"),
    )

    claim_discriminator = CLAIM_CASHBACK_DISCRIMINATOR

    def discriminator(self, direction: TradeDirection, mode: QuotingMode) -> bytes:
        return BUY_DISCRIMINATOR if direction == TradeDirection.BUY else SELL_DISCRIMINATOR

    def payload_suffix(
        self, direction: TradeDirection, track_volume: bool, options: BuildOptions
    ) -> bytes:
        return bytes([1 if track_volume else 0])

    def _create_ata(
        self, accounts: dict[str, Pubkey], owner: Pubkey, mint: Pubkey, token_program: Pubkey
    ) -> Instruction:
        return create_idempotent_associated_token_account(
            accounts["user"],  # payer
            owner,
            mint,
            token_program,
        )

    def _create_user_wsol(self, accounts: dict[str, Pubkey]) -> Instruction:
        return self._create_ata(
            accounts,
            accounts["user"],
            accounts["quote_mint"],
            accounts["quote_token_program"],
        )

    def pre_instructions(
        self,
        direction: TradeDirection,
        quote: TradeQuote,
        accounts: dict[str, Pubkey],
        missing: set[str],
        options: BuildOptions,
    ) -> list[Instruction]:
        instructions = []
        if "user_quote_token_account" in missing:
            instructions.append(self._create_user_wsol(accounts))

        if direction == TradeDirection.SELL:
            return instructions

        if "user_base_token_account" in missing:
            instructions.append(
                self._create_ata(
                    accounts,
                    accounts["user"],
                    accounts["base_mint"],
                    accounts["base_token_program"],
                )
            )

        # Wrap the max spend plus a buffer for rounding at the program
        wrap_lamports = quote.bound_amount + options.wsol_wrap_buffer_lamports
        instructions.append(
            transfer(
                TransferParams(
                    from_pubkey=accounts["user"],
                    to_pubkey=accounts["user_quote_token_account"],
                    lamports=wrap_lamports,
                )
            )
        )
        instructions.append(
            sync_native(
                SyncNativeParams(
                    SystemAddresses.TOKEN_PROGRAM, accounts["user_quote_token_account"]
                )
            )
        )
        return instructions

    def post_instructions(
        self,
        request: TradeRequest,
        accounts: dict[str, Pubkey],
        options: BuildOptions,
    ) -> list[Instruction]:
        if request.direction != TradeDirection.SELL:
            return []

        user = accounts["user"]
        instructions = []
        if request.close_token_account:
            instructions.append(
                close_account(
                    CloseAccountParams(
                        program_id=accounts["base_token_program"],
                        account=accounts["user_base_token_account"],
                        dest=user,
                        owner=user,
                        signers=[],
                    )
                )
            )
        if options.close_wsol_account:
            wsol_account = accounts["user_quote_token_account"]
            instructions.append(
                sync_native(SyncNativeParams(SystemAddresses.TOKEN_PROGRAM, wsol_account))
            )
            instructions.append(
                close_account(
                    CloseAccountParams(
                        program_id=SystemAddresses.TOKEN_PROGRAM,
                        account=wsol_account,
                        dest=user,
                        owner=user,
                        signers=[],
                    )
                )
            )
        return instructions

    def claim_pre_instructions(
        self, accounts: dict[str, Pubkey], missing: set[str]
    ) -> list[Instruction]:
        instructions = []
        if "user_quote_token_account" in missing:
            instructions.append(self._create_user_wsol(accounts))
        if "user_volume_accumulator_quote_token_account" in missing:
            instructions.append(
                self._create_ata(
                    accounts,
                    accounts["user_volume_accumulator"],
                    accounts["quote_mint"],
                    accounts["quote_token_program"],
                )
            )
        return instructions

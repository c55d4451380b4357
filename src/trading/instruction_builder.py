"""
Generic instruction assembly for every mechanism.

One routine builds buys, sells and claims for both programs: the
per-program InstructionLayout supplies discriminators, account templates
and auxiliary instructions, and this module resolves and encodes them.
"""

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from core.errors import InfeasibleRequest
from interfaces.core import (
    AccountSpec,
    BuildOptions,
    InstructionLayout,
    Mechanism,
    Platform,
    TradeDirection,
    TradeQuote,
    TradeRequest,
)
from platforms import get_platform_implementations
from utils.logger import get_logger

logger = get_logger(__name__)

U64_MAX = 2**64 - 1


def resolve_account_metas(
    template: tuple[AccountSpec, ...], accounts: dict[str, Pubkey]
) -> list[AccountMeta]:
    """Turn a named template into ordered AccountMetas.

    Optional slots are dropped when the name is absent from accounts.

    Raises:
        KeyError: If a required account name is missing
    """
    metas = []
    for spec in template:
        pubkey = accounts.get(spec.name)
        if pubkey is None:
            if spec.optional:
                continue
            raise KeyError(f"Missing required account '{spec.name}'")
        metas.append(
            AccountMeta(pubkey=pubkey, is_signer=spec.is_signer, is_writable=spec.is_writable)
        )
    return metas


def encode_amounts(amount: int, bound: int) -> bytes:
    for value in (amount, bound):
        if not 0 <= value <= U64_MAX:
            raise InfeasibleRequest(f"Amount {value} does not fit in u64")
    return struct.pack("<QQ", amount, bound)


class TradeInstructionBuilder:
    """Builds protocol-exact instructions from a quote and resolved accounts."""

    def __init__(
        self,
        options: BuildOptions | None = None,
        layouts: dict[Platform, InstructionLayout] | None = None,
    ):
        self.options = options or BuildOptions()
        self.layouts = layouts or {
            platform: get_platform_implementations(platform).layout
            for platform in Platform
        }

    def layout_for(self, platform: Platform) -> InstructionLayout:
        return self.layouts[platform]

    def encode_trade_data(
        self,
        layout: InstructionLayout,
        request: TradeRequest,
        quote: TradeQuote,
        track_volume: bool,
    ) -> bytes:
        return (
            layout.discriminator(request.direction, request.mode)
            + encode_amounts(quote.primary_amount, quote.bound_amount)
            + layout.payload_suffix(request.direction, track_volume, self.options)
        )

    def build_trade_instruction(
        self,
        request: TradeRequest,
        mechanism: Mechanism,
        quote: TradeQuote,
        accounts: dict[str, Pubkey],
    ) -> Instruction:
        """The program instruction alone, without auxiliary instructions."""
        layout = self.layout_for(mechanism.platform)
        template = (
            layout.buy_accounts
            if request.direction == TradeDirection.BUY
            else layout.sell_accounts
        )
        track_volume = self.options.track_volume_for(mechanism.is_cashback_coin)
        if mechanism.is_cashback_coin:
            logger.info(
                f"Cashback coin {mechanism.mint}: track_volume={track_volume} "
                f"on {mechanism.platform.value}"
            )

        return Instruction(
            program_id=layout.program_id,
            data=self.encode_trade_data(layout, request, quote, track_volume),
            accounts=resolve_account_metas(template, accounts),
        )

    def build(
        self,
        request: TradeRequest,
        mechanism: Mechanism,
        quote: TradeQuote,
        accounts: dict[str, Pubkey],
        missing: set[str] | None = None,
    ) -> list[Instruction]:
        """Full instruction list for a trade.

        Args:
            request: What is being traded
            mechanism: Curve or pool the quote was computed against
            quote: Quote whose primary and bound amounts are encoded
            accounts: Named addresses from the platform's address provider
            missing: Names of accounts that do not exist yet

        Returns:
            Pre-instructions, the program instruction, post-instructions
        """
        missing = missing or set()
        layout = self.layout_for(mechanism.platform)
        instructions = layout.pre_instructions(
            request.direction, quote, accounts, missing, self.options
        )
        instructions.append(
            self.build_trade_instruction(request, mechanism, quote, accounts)
        )
        instructions.extend(layout.post_instructions(request, accounts, self.options))
        return instructions

    def build_claim(
        self,
        platform: Platform,
        accounts: dict[str, Pubkey],
        missing: set[str] | None = None,
    ) -> list[Instruction]:
        """Instructions to claim accrued cashback on platform."""
        layout = self.layout_for(platform)
        instructions = layout.claim_pre_instructions(accounts, missing or set())
        instructions.append(
            Instruction(
                program_id=layout.program_id,
                data=layout.claim_discriminator,
                accounts=resolve_account_metas(layout.claim_accounts, accounts),
            )
        )
        return instructions

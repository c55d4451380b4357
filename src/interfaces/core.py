"""
Shared domain types and platform interfaces.

A token trades on exactly one mechanism at a time: the Pump.fun bonding
curve until it completes, then the PumpSwap pool it migrated into.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from core.pubkeys import BPS_DENOMINATOR, SystemAddresses


class Platform(Enum):
    """Programs a token can be traded on."""

    PUMP_FUN = "pump_fun"
    PUMP_SWAP = "pump_swap"


class TradeDirection(Enum):
    BUY = "buy"
    SELL = "sell"


class QuotingMode(Enum):
    """How TradeRequest.amount is interpreted.

    BUDGET_IN: amount is the most the caller will pay (buys) or tokens in (sells).
    EXACT_OUTPUT: amount is the exact output wanted (tokens for buys, lamports for sells).
    EXACT_INPUT: amount is the exact input (lamports for buys, tokens for sells).
    """

    BUDGET_IN = "budget_in"
    EXACT_OUTPUT = "exact_output"
    EXACT_INPUT = "exact_input"


@dataclass(frozen=True)
class CurveState:
    """Decoded Pump.fun bonding curve account."""

    mint: Pubkey
    bonding_curve: Pubkey
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool
    creator: Pubkey
    is_mayhem_mode: bool = False
    is_cashback_coin: bool = False

    @property
    def platform(self) -> Platform:
        return Platform.PUMP_FUN


@dataclass(frozen=True)
class PoolState:
    """PumpSwap pool reserves plus the addresses needed to trade against it."""

    mint: Pubkey
    pool: Pubkey
    base_reserve: int
    quote_reserve: int
    coin_creator: Pubkey
    pool_base_token_account: Pubkey
    pool_quote_token_account: Pubkey
    quote_mint: Pubkey = SystemAddresses.SOL_MINT
    is_cashback_coin: bool = False

    @property
    def platform(self) -> Platform:
        return Platform.PUMP_SWAP


Mechanism = CurveState | PoolState


@dataclass(frozen=True)
class FeeSchedule:
    """Fee basis points in effect for one mechanism.

    For the curve only protocol + creator apply, for the pool all three
    components are deducted as one flat rate.
    """

    protocol_bps: int
    creator_bps: int
    lp_bps: int = 0
    source: str = "default"

    @property
    def total_bps(self) -> int:
        return self.protocol_bps + self.creator_bps + self.lp_bps

    @property
    def is_usable(self) -> bool:
        return 0 < self.total_bps < BPS_DENOMINATOR


@dataclass(frozen=True)
class TransferFee:
    """One epoch-indexed entry of a Token-2022 transfer fee config."""

    epoch: int
    maximum_fee: int
    basis_points: int


@dataclass(frozen=True)
class TransferFeeConfig:
    older: TransferFee
    newer: TransferFee

    def active(self, epoch: int) -> TransferFee:
        """Newer entry applies once its epoch is reached."""
        return self.newer if epoch >= self.newer.epoch else self.older


@dataclass(frozen=True)
class MintInfo:
    mint: Pubkey
    token_program: Pubkey
    decimals: int
    transfer_fee: TransferFeeConfig | None = None

    @property
    def is_token_2022(self) -> bool:
        return self.token_program == SystemAddresses.TOKEN_2022_PROGRAM


@dataclass(frozen=True)
class TradeRequest:
    """What the caller wants to trade."""

    mint: Pubkey
    direction: TradeDirection
    mode: QuotingMode
    amount: int
    slippage_bps: int
    close_token_account: bool = False

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"amount must be non-negative, got {self.amount}")
        if not 0 <= self.slippage_bps <= BPS_DENOMINATOR:
            raise ValueError(
                f"slippage_bps must be within 0..{BPS_DENOMINATOR}, got {self.slippage_bps}"
            )


@dataclass(frozen=True)
class TradeQuote:
    """Amounts that go into the instruction payload plus expected fill.

    primary_amount is the payload amount field, bound_amount the on-chain
    min-out or max-in guard, counter_amount the expected other side.
    token_amount / sol_amount are the expected wallet deltas (tokens net of
    transfer-fee withholding).
    """

    primary_amount: int
    counter_amount: int
    bound_amount: int
    price_estimate: float = 0.0
    token_amount: int = 0
    sol_amount: int = 0
    transfer_fee: int = 0

    @property
    def is_zero(self) -> bool:
        return self.primary_amount == 0

    @classmethod
    def zero(cls) -> "TradeQuote":
        return cls(primary_amount=0, counter_amount=0, bound_amount=0)


@dataclass(frozen=True)
class AccountSpec:
    """One slot of an instruction's account list."""

    name: str
    is_signer: bool = False
    is_writable: bool = False
    optional: bool = False


@dataclass
class BuildOptions:
    """Knobs for instruction assembly, resolved from configuration."""

    include_v2_accounts: bool = True
    buy_24b_compat: bool = True
    track_volume: bool = True
    cashback_track_volume: bool | None = None
    close_wsol_account: bool = True
    wsol_wrap_buffer_lamports: int = 500_000

    def track_volume_for(self, is_cashback_coin: bool) -> bool:
        if is_cashback_coin and self.cashback_track_volume is not None:
            return self.cashback_track_volume
        return self.track_volume


class AddressProvider(ABC):
    """Derives every address a platform's instructions need."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        pass

    @property
    @abstractmethod
    def program_id(self) -> Pubkey:
        pass

    @abstractmethod
    def get_trade_accounts(
        self,
        mechanism: Mechanism,
        user: Pubkey,
        token_program: Pubkey,
        options: BuildOptions,
        fee_recipient: Pubkey | None = None,
    ) -> dict[str, Pubkey]:
        """Named addresses for buy and sell instructions."""

    @abstractmethod
    def get_claim_accounts(self, user: Pubkey) -> dict[str, Pubkey]:
        """Named addresses for the claim_cashback instruction."""


class InstructionLayout(ABC):
    """Describes one program's instruction encodings.

    The generic builder resolves account templates against the names an
    AddressProvider returns, so layouts never compute addresses themselves.
    """

    platform: Platform
    program_id: Pubkey
    buy_accounts: tuple[AccountSpec, ...]
    sell_accounts: tuple[AccountSpec, ...]
    claim_accounts: tuple[AccountSpec, ...]
    claim_discriminator: bytes
    buy_compute_units: int = 200_000
    sell_compute_units: int = 300_000
    claim_compute_units: int = 200_000

    def compute_unit_limit(self, direction: TradeDirection | None) -> int:
        """Compute budget for a trade in direction, or for a claim when None."""
        if direction is None:
            return self.claim_compute_units
        if direction == TradeDirection.BUY:
            return self.buy_compute_units
        return self.sell_compute_units

    @abstractmethod
    def discriminator(self, direction: TradeDirection, mode: QuotingMode) -> bytes:
        pass

    @abstractmethod
    def payload_suffix(
        self, direction: TradeDirection, track_volume: bool, options: BuildOptions
    ) -> bytes:
        """Bytes appended after discriminator + two u64 amounts."""

    def pre_instructions(
        self,
        direction: TradeDirection,
        quote: TradeQuote,
        accounts: dict[str, Pubkey],
        missing: set[str],
        options: BuildOptions,
    ) -> list[Instruction]:
        return []

    def post_instructions(
        self,
        request: TradeRequest,
        accounts: dict[str, Pubkey],
        options: BuildOptions,
    ) -> list[Instruction]:
        return []

    def claim_pre_instructions(
        self, accounts: dict[str, Pubkey], missing: set[str]
    ) -> list[Instruction]:
        return []


@dataclass
class PlatformImplementations:
    """Per-platform bundle handed to the builder and executor."""

    address_provider: AddressProvider
    layout: InstructionLayout


class BalanceCache(ABC):
    """Holdings and SOL balance the executor reports fills to."""

    @abstractmethod
    def get_holding_fraction(self, mint: Pubkey, percent: float) -> int:
        """Raw token amount that is percent of the cached holding."""

    @abstractmethod
    def record_fill(self, mint: Pubkey, amount_delta: int, price: float | None = None) -> None:
        pass

    @abstractmethod
    def reduce_holding(self, mint: Pubkey, amount: int) -> None:
        pass

    @abstractmethod
    def get_balance(self) -> int:
        pass

    @abstractmethod
    def credit_balance(self, amount: int) -> None:
        pass

"""
Trade execution: read, quote, build, submit and confirm with retries.

Each attempt starts from a fresh read of the governing mechanism so a
curve that completes mid-trade is picked up as a pool on the next try.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import aiohttp
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from core.client import SolanaClient
from core.errors import (
    FATAL_ERRORS,
    AccountNotFound,
    InfeasibleRequest,
    SubmissionRejected,
    TradeFailed,
)
from core.pubkeys import LAMPORTS_PER_SOL, SystemAddresses
from interfaces.core import (
    BalanceCache,
    BuildOptions,
    CurveState,
    Mechanism,
    MintInfo,
    Platform,
    QuotingMode,
    TradeDirection,
    TradeQuote,
    TradeRequest,
)
from platforms import get_platform_implementations
from trading.fee_oracle import FeeOracle
from trading.instruction_builder import TradeInstructionBuilder
from trading.quote_engine import QuoteEngine
from trading.state_reader import StateReader
from utils.logger import get_logger, log_trade_event

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    SubmissionRejected,
    SolanaRpcException,
    RPCException,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
)

DEFAULT_PRIORITY_FEE = 100_000

# User-owned token accounts that may need creating before a trade
_USER_TOKEN_ACCOUNTS = {
    Platform.PUMP_FUN: ("user_token_account",),
    Platform.PUMP_SWAP: ("user_base_token_account", "user_quote_token_account"),
}
_CLAIM_CREATABLE_ACCOUNTS = {
    Platform.PUMP_FUN: (),
    Platform.PUMP_SWAP: (
        "user_quote_token_account",
        "user_volume_accumulator_quote_token_account",
    ),
}


@dataclass
class RetryPolicy:
    """Fixed-delay retry bound for submissions."""

    max_attempts: int = 3
    delay_seconds: float = 0.1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")


@dataclass
class TradeResult:
    signature: str | None
    quote: TradeQuote
    attempts: int
    platform: Platform | None = None
    realized_token_amount: int | None = None

    @property
    def submitted(self) -> bool:
        return self.signature is not None


@dataclass
class _AttemptOutcome:
    signature: str | None
    mechanism: Mechanism
    quote: TradeQuote


class TradeExecutor:
    """Runs buys, sells and cashback claims against the live mechanism."""

    def __init__(
        self,
        client: SolanaClient,
        wallet: Keypair,
        cache: BalanceCache | None = None,
        options: BuildOptions | None = None,
        retry: RetryPolicy | None = None,
        priority_fee: int | None = DEFAULT_PRIORITY_FEE,
        state_reader: StateReader | None = None,
        fee_oracle: FeeOracle | None = None,
        quote_engine: QuoteEngine | None = None,
        builder: TradeInstructionBuilder | None = None,
    ):
        self.client = client
        self.wallet = wallet
        self.cache = cache
        self.options = options or BuildOptions()
        self.retry = retry or RetryPolicy()
        self.priority_fee = priority_fee
        self.state_reader = state_reader or StateReader(client)
        self.fee_oracle = fee_oracle or FeeOracle(self.state_reader)
        self.quote_engine = quote_engine or QuoteEngine()
        self.builder = builder or TradeInstructionBuilder(self.options)
        self.platforms = {p: get_platform_implementations(p) for p in Platform}

    @property
    def user(self) -> Pubkey:
        return self.wallet.pubkey()

    async def _with_retries(
        self, label: str, attempt: Callable[[], Awaitable[T]]
    ) -> tuple[T, int]:
        """Run attempt up to the retry bound.

        Rejected submissions and RPC failures are retried after a fixed delay
        and the last one is wrapped in TradeFailed. Fatal errors (missing or
        malformed accounts, infeasible sizes) and anything unexpected
        propagate immediately.
        """
        last_error: Exception | None = None
        for number in range(1, self.retry.max_attempts + 1):
            try:
                return await attempt(), number
            except FATAL_ERRORS:
                raise
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    f"{label} attempt {number}/{self.retry.max_attempts} failed: {e}"
                )
            if number < self.retry.max_attempts:
                await asyncio.sleep(self.retry.delay_seconds)

        logger.error(f"{label} failed after {self.retry.max_attempts} attempts")
        raise TradeFailed(last_error, self.retry.max_attempts)

    async def _submit(self, instructions, compute_unit_limit: int) -> str:
        signature = await self.client.build_and_send_transaction(
            instructions,
            self.wallet,
            priority_fee=self.priority_fee,
            compute_unit_limit=compute_unit_limit,
        )
        if not await self.client.confirm_transaction(signature):
            raise SubmissionRejected(f"Transaction {signature} was not confirmed")
        return signature

    async def _fee_recipient(self, mechanism: Mechanism) -> Pubkey | None:
        if isinstance(mechanism, CurveState):
            global_account = await self.state_reader.read_global()
            return global_account.fee_recipient
        return None

    async def _missing_user_accounts(self, mint_info: MintInfo) -> set[Pubkey]:
        """Addresses of the user's token and WSOL accounts that do not exist yet.

        Both depend only on the mint, so they are checked before any
        reserve state is read.
        """
        token_account = get_associated_token_address(
            self.user, mint_info.mint, mint_info.token_program
        )
        wsol_account = get_associated_token_address(
            self.user, SystemAddresses.SOL_MINT, SystemAddresses.TOKEN_PROGRAM
        )
        named = {"token": token_account, "wsol": wsol_account}
        missing = await self.state_reader.missing_accounts(named)
        if missing:
            logger.debug(f"Missing user accounts: {sorted(missing)}")
        return {named[name] for name in missing}

    async def _attempt_trade(self, request: TradeRequest) -> _AttemptOutcome:
        mint_info = await self.state_reader.read_mint(request.mint)
        missing_addresses = await self._missing_user_accounts(mint_info)

        token_account = get_associated_token_address(
            self.user, request.mint, mint_info.token_program
        )
        if request.direction == TradeDirection.SELL and token_account in missing_addresses:
            raise AccountNotFound(token_account, "user token account")

        mechanism = await self.state_reader.read_mechanism(request.mint)
        fees = await self.fee_oracle.resolve(mechanism)
        epoch = await self.client.get_epoch() if mint_info.transfer_fee else 0

        implementations = self.platforms[mechanism.platform]
        accounts = implementations.address_provider.get_trade_accounts(
            mechanism,
            self.user,
            mint_info.token_program,
            self.options,
            await self._fee_recipient(mechanism),
        )
        missing = {
            name
            for name in _USER_TOKEN_ACCOUNTS[mechanism.platform]
            if accounts[name] in missing_addresses
        }

        quote = self.quote_engine.quote(request, mechanism, fees, mint_info, epoch)
        if quote.is_zero:
            logger.warning(
                f"Zero-size {request.direction.value} quote for {request.mint} "
                f"on {mechanism.platform.value}, nothing submitted"
            )
            return _AttemptOutcome(None, mechanism, quote)

        logger.info(
            f"{request.direction.value.upper()} {request.mint} on {mechanism.platform.value}: "
            f"amount={quote.primary_amount} bound={quote.bound_amount} "
            f"price={quote.price_estimate:.10f} SOL"
        )
        instructions = self.builder.build(request, mechanism, quote, accounts, missing)
        signature = await self._submit(
            instructions,
            implementations.layout.compute_unit_limit(request.direction),
        )
        return _AttemptOutcome(signature, mechanism, quote)

    async def execute(self, request: TradeRequest) -> TradeResult:
        """Execute request, retrying within the policy.

        Raises:
            AccountNotFound, MalformedAccount, InfeasibleRequest: Immediately
            TradeFailed: When every attempt was rejected
        """
        label = f"{request.direction.value} {request.mint}"
        outcome, attempts = await self._with_retries(
            label, lambda: self._attempt_trade(request)
        )
        result = TradeResult(
            signature=outcome.signature,
            quote=outcome.quote,
            attempts=attempts,
            platform=outcome.mechanism.platform,
        )
        if not result.submitted:
            return result

        if request.direction == TradeDirection.BUY:
            await self._record_buy(request, result)
        else:
            self._record_sell(request, result)

        log_trade_event(
            event_type=request.direction.value.upper(),
            token_mint=str(request.mint),
            platform=result.platform.value,
            amount_sol=outcome.quote.sol_amount / LAMPORTS_PER_SOL,
            tx_signature=result.signature,
            extra={
                "token_amount": result.realized_token_amount,
                "bound_amount": outcome.quote.bound_amount,
                "attempts": attempts,
            },
        )
        logger.info(f"{label} confirmed in {attempts} attempt(s): {result.signature}")
        return result

    async def execute_buy(self, request: TradeRequest) -> TradeResult:
        if request.direction != TradeDirection.BUY:
            raise ValueError("execute_buy needs a BUY request")
        return await self.execute(request)

    async def execute_sell(self, request: TradeRequest) -> TradeResult:
        if request.direction != TradeDirection.SELL:
            raise ValueError("execute_sell needs a SELL request")
        return await self.execute(request)

    async def execute_sell_fraction(
        self, mint: Pubkey, percent: float, slippage_bps: int
    ) -> TradeResult:
        """Sell percent of the cached holding of mint.

        Selling 100% also closes the user's token account.
        """
        if self.cache is None:
            raise ValueError("Selling a fraction needs a balance cache")
        amount = self.cache.get_holding_fraction(mint, percent)
        if amount <= 0:
            raise InfeasibleRequest(f"No cached holding of {mint} to sell")
        request = TradeRequest(
            mint=mint,
            direction=TradeDirection.SELL,
            mode=QuotingMode.EXACT_INPUT,
            amount=amount,
            slippage_bps=slippage_bps,
            close_token_account=percent >= 100,
        )
        return await self.execute_sell(request)

    async def _record_buy(self, request: TradeRequest, result: TradeResult) -> None:
        realized = await self.client.get_token_balance_change(
            result.signature, self.user, request.mint
        )
        if realized is None or realized <= 0:
            realized = result.quote.token_amount
        result.realized_token_amount = realized
        if self.cache is not None:
            self.cache.record_fill(request.mint, realized, result.quote.price_estimate)

    def _record_sell(self, request: TradeRequest, result: TradeResult) -> None:
        result.realized_token_amount = result.quote.primary_amount
        if self.cache is not None:
            self.cache.reduce_holding(request.mint, result.quote.primary_amount)
            self.cache.credit_balance(result.quote.sol_amount)

    async def claim_cashback(self, platform: Platform) -> str:
        """Claim accrued cashback on platform and return the signature.

        Raises:
            AccountNotFound: If the user has no volume accumulator there
            TradeFailed: When every attempt was rejected
        """
        implementations = self.platforms[platform]
        accounts = implementations.address_provider.get_claim_accounts(self.user)

        async def attempt() -> str:
            checked = ("user_volume_accumulator",) + _CLAIM_CREATABLE_ACCOUNTS[platform]
            missing = await self.state_reader.missing_accounts(
                {name: accounts[name] for name in checked}
            )
            if "user_volume_accumulator" in missing:
                raise AccountNotFound(
                    accounts["user_volume_accumulator"], "user volume accumulator"
                )
            instructions = self.builder.build_claim(platform, accounts, missing)
            return await self._submit(
                instructions, implementations.layout.compute_unit_limit(None)
            )

        signature, attempts = await self._with_retries(
            f"claim_cashback {platform.value}", attempt
        )
        log_trade_event(
            event_type="CLAIM",
            token_mint=str(accounts["user_volume_accumulator"]),
            platform=platform.value,
            tx_signature=signature,
            extra={"attempts": attempts},
        )
        return signature

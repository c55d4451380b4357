"""
Integer quoting for the Pump.fun bonding curve and PumpSwap pools.

Every function here is pure and uses integer arithmetic only, with the
same rounding the on-chain programs use: fees and required inputs round
up, outputs round down. The only float is the informational price.
"""

from collections.abc import Callable

from core.errors import InfeasibleRequest, MechanismChanged
from core.pubkeys import BPS_DENOMINATOR, SOL_DECIMALS, TOKEN_DECIMALS
from interfaces.core import (
    CurveState,
    FeeSchedule,
    Mechanism,
    MintInfo,
    PoolState,
    QuotingMode,
    TradeDirection,
    TradeQuote,
    TradeRequest,
    TransferFeeConfig,
)
from utils.logger import get_logger

logger = get_logger(__name__)


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def max_with_slippage(amount: int, slippage_bps: int) -> int:
    """Upper bound for an input amount (max spend)."""
    return ceil_div(amount * (BPS_DENOMINATOR + slippage_bps), BPS_DENOMINATOR)


def min_with_slippage(amount: int, slippage_bps: int) -> int:
    """Lower bound for an output amount (min receive)."""
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def price_estimate(lamports: int, tokens: int) -> float:
    """SOL per whole token."""
    if tokens <= 0:
        return 0.0
    return (lamports / tokens) * 10 ** (TOKEN_DECIMALS - SOL_DECIMALS)


def transfer_fee_for(amount: int, config: TransferFeeConfig | None, epoch: int) -> int:
    """Token-2022 transfer fee withheld from amount at epoch."""
    if config is None or amount <= 0:
        return 0
    fee = config.active(epoch)
    if fee.basis_points == 0:
        return 0
    return min(ceil_div(amount * fee.basis_points, BPS_DENOMINATOR), fee.maximum_fee)


# Bonding curve


def curve_tokens_for_budget(
    budget: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    protocol_fee_bps: int,
    creator_fee_bps: int,
) -> int:
    """Tokens a fee-inclusive budget buys on the curve (uncapped)."""
    total_fee_bps = protocol_fee_bps + creator_fee_bps
    net_spend = budget * BPS_DENOMINATOR // (BPS_DENOMINATOR + total_fee_bps)
    if net_spend <= 1:
        return 0

    fees = ceil_div(net_spend * protocol_fee_bps, BPS_DENOMINATOR) + ceil_div(
        net_spend * creator_fee_bps, BPS_DENOMINATOR
    )
    if net_spend + fees > budget:
        net_spend -= net_spend + fees - budget
        if net_spend <= 1:
            return 0

    return (net_spend - 1) * virtual_token_reserves // (
        virtual_sol_reserves + net_spend - 1
    )


def curve_spend_for_tokens(
    tokens: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    total_fee_bps: int,
) -> int | None:
    """Fee-inclusive lamports needed to buy exactly tokens, None if unreachable."""
    if tokens <= 0:
        return 0
    if tokens >= virtual_token_reserves:
        return None
    net_spend = (
        ceil_div(tokens * virtual_sol_reserves, virtual_token_reserves - tokens) + 1
    )
    return ceil_div(net_spend * (BPS_DENOMINATOR + total_fee_bps), BPS_DENOMINATOR)


def curve_gross_cost(
    tokens: int, virtual_token_reserves: int, virtual_sol_reserves: int
) -> int | None:
    """Fee-exclusive constant-product cost of tokens, None if unreachable."""
    if tokens <= 0:
        return 0
    if tokens >= virtual_token_reserves:
        return None
    cost = (
        virtual_token_reserves * virtual_sol_reserves
        // (virtual_token_reserves - tokens)
        - virtual_sol_reserves
    )
    return cost if cost >= 0 else None


def _max_tokens_within(
    budget: int, upper: int, cost_of: Callable[[int], int | None]
) -> int:
    """Largest t in [0, upper] with cost_of(t) <= budget (cost non-decreasing)."""
    lo, hi = 0, upper
    while lo < hi:
        mid = lo + (hi - lo + 1) // 2
        cost = cost_of(mid)
        if cost is not None and cost <= budget:
            lo = mid
        else:
            hi = mid - 1
    return lo


def find_max_tokens_for_budget(
    budget: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    total_fee_bps: int,
    cap: int | None = None,
) -> int:
    """Largest token count whose fee-inclusive spend fits budget."""
    upper = virtual_token_reserves - 1
    if cap is not None:
        upper = min(upper, cap)
    if budget <= 0 or upper <= 0:
        return 0
    return _max_tokens_within(
        budget,
        upper,
        lambda t: curve_spend_for_tokens(
            t, virtual_token_reserves, virtual_sol_reserves, total_fee_bps
        ),
    )


def find_max_tokens_for_gross_budget(
    budget: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    cap: int | None = None,
) -> int:
    """Largest token count whose fee-exclusive cost fits budget."""
    upper = virtual_token_reserves - 1
    if cap is not None:
        upper = min(upper, cap)
    if budget <= 0 or upper <= 0:
        return 0
    return _max_tokens_within(
        budget,
        upper,
        lambda t: curve_gross_cost(t, virtual_token_reserves, virtual_sol_reserves),
    )


def curve_sell_output(
    tokens: int, virtual_token_reserves: int, virtual_sol_reserves: int
) -> int:
    """Lamports out for selling tokens into the curve."""
    if tokens <= 0:
        return 0
    return virtual_sol_reserves - (
        virtual_token_reserves * virtual_sol_reserves
        // (virtual_token_reserves + tokens)
    )


def _min_tokens_reaching(target: int, ceiling: int, output_of: Callable[[int], int]) -> int | None:
    """Smallest t with output_of(t) >= target, None if target >= ceiling.

    output_of must be non-decreasing and approach ceiling from below.
    """
    if target <= 0:
        return 0
    if target >= ceiling:
        return None
    hi = 1
    while output_of(hi) < target:
        hi *= 2
    lo = hi // 2 + 1 if hi > 1 else 1
    while lo < hi:
        mid = (lo + hi) // 2
        if output_of(mid) >= target:
            hi = mid
        else:
            lo = mid + 1
    return lo


def curve_tokens_for_sol_out(
    lamports: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    real_sol_reserves: int | None = None,
) -> int | None:
    """Fewest tokens to sell so the curve pays at least lamports.

    The payout comes out of the real SOL reserves, so a target above them
    is unreachable even while the virtual reserves would allow it.
    """
    ceiling = virtual_sol_reserves
    if real_sol_reserves is not None:
        ceiling = min(ceiling, real_sol_reserves + 1)
    return _min_tokens_reaching(
        lamports,
        ceiling,
        lambda t: curve_sell_output(t, virtual_token_reserves, virtual_sol_reserves),
    )


# PumpSwap pool


def pool_tokens_for_quote_in(
    quote_in: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> int:
    """Base tokens out for spending quote_in (fee taken from the input)."""
    if quote_in <= 0 or base_reserve <= 0 or quote_reserve <= 0:
        return 0
    net_in = quote_in * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR
    if net_in <= 0:
        return 0
    return base_reserve * net_in // (quote_reserve + net_in)


def pool_quote_in_for_tokens(
    tokens: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> int | None:
    """Fee-inclusive quote needed to take exactly tokens out, None if unreachable."""
    if tokens <= 0:
        return 0
    if tokens >= base_reserve or quote_reserve <= 0:
        return None
    product = base_reserve * quote_reserve
    quote_in = ceil_div(product, base_reserve - tokens) - quote_reserve
    return ceil_div(quote_in * BPS_DENOMINATOR, BPS_DENOMINATOR - fee_bps)


def pool_sell_output(
    tokens: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> int:
    """Quote out for selling tokens (fee taken from the input), floored at zero."""
    if tokens <= 0 or base_reserve <= 0 or quote_reserve <= 0:
        return 0
    net_in = tokens * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR
    out = quote_reserve - base_reserve * quote_reserve // (base_reserve + net_in)
    return max(out, 0)


def pool_tokens_for_quote_out(
    lamports: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> int | None:
    """Fewest tokens to sell so the pool pays at least lamports."""
    if base_reserve <= 0 or fee_bps >= BPS_DENOMINATOR:
        return None
    return _min_tokens_reaching(
        lamports,
        quote_reserve,
        lambda t: pool_sell_output(t, base_reserve, quote_reserve, fee_bps),
    )


Handler = Callable[[TradeRequest, Mechanism, FeeSchedule, Callable[[int], int]], TradeQuote]


class QuoteEngine:
    """Dispatches a TradeRequest to the formulas of the governing mechanism."""

    def __init__(self):
        self._handlers: dict[tuple[type, TradeDirection], Handler] = {
            (CurveState, TradeDirection.BUY): self._curve_buy,
            (CurveState, TradeDirection.SELL): self._curve_sell,
            (PoolState, TradeDirection.BUY): self._pool_buy,
            (PoolState, TradeDirection.SELL): self._pool_sell,
        }

    def quote(
        self,
        request: TradeRequest,
        mechanism: Mechanism,
        fees: FeeSchedule,
        mint_info: MintInfo | None = None,
        epoch: int = 0,
    ) -> TradeQuote:
        """Quote request against mechanism.

        Args:
            request: What to trade
            mechanism: Freshly read curve or pool state
            fees: Resolved fee schedule for that mechanism
            mint_info: Mint with optional transfer-fee extension
            epoch: Current epoch (selects the active transfer fee)

        Returns:
            The quote; a zero quote when the trade size rounds to nothing

        Raises:
            MechanismChanged: If a completed curve is quoted directly
            InfeasibleRequest: If an exact amount cannot be met
        """
        if isinstance(mechanism, CurveState) and mechanism.complete:
            raise MechanismChanged(
                f"Bonding curve for {mechanism.mint} is complete, re-read the mechanism"
            )

        if request.amount == 0:
            return TradeQuote.zero()

        transfer_fee = mint_info.transfer_fee if mint_info else None

        def withheld(tokens: int) -> int:
            return transfer_fee_for(tokens, transfer_fee, epoch)

        handler = self._handlers[(type(mechanism), request.direction)]
        quote = handler(request, mechanism, fees, withheld)
        logger.debug(
            f"{mechanism.platform.value} {request.direction.value}/{request.mode.value} "
            f"amount={request.amount} -> primary={quote.primary_amount} "
            f"counter={quote.counter_amount} bound={quote.bound_amount}"
        )
        return quote

    def _curve_buy(
        self,
        request: TradeRequest,
        curve: CurveState,
        fees: FeeSchedule,
        withheld: Callable[[int], int],
    ) -> TradeQuote:
        amount = request.amount
        slippage = request.slippage_bps
        v_tokens = curve.virtual_token_reserves
        v_sol = curve.virtual_sol_reserves
        total_fee_bps = fees.protocol_bps + fees.creator_bps

        if request.mode == QuotingMode.EXACT_OUTPUT:
            if amount >= v_tokens or amount > curve.real_token_reserves:
                raise InfeasibleRequest(
                    f"Cannot buy {amount} tokens, curve holds {curve.real_token_reserves}"
                )
            spend = curve_spend_for_tokens(amount, v_tokens, v_sol, total_fee_bps)
            fee = withheld(amount)
            return TradeQuote(
                primary_amount=amount,
                counter_amount=spend,
                bound_amount=max_with_slippage(spend, slippage),
                price_estimate=price_estimate(spend, amount),
                token_amount=amount - fee,
                sol_amount=spend,
                transfer_fee=fee,
            )

        quoted = min(
            curve_tokens_for_budget(
                amount, v_tokens, v_sol, fees.protocol_bps, fees.creator_bps
            ),
            curve.real_token_reserves,
        )
        if quoted <= 0:
            return TradeQuote.zero()
        price = price_estimate(amount, quoted)

        if request.mode == QuotingMode.EXACT_INPUT:
            fee = withheld(quoted)
            net_tokens = quoted - fee
            return TradeQuote(
                primary_amount=amount,
                counter_amount=net_tokens,
                bound_amount=min_with_slippage(net_tokens, slippage),
                price_estimate=price,
                token_amount=net_tokens,
                sol_amount=amount,
                transfer_fee=fee,
            )

        tokens_for_buy = min(
            find_max_tokens_for_budget(
                amount, v_tokens, v_sol, total_fee_bps, cap=curve.real_token_reserves
            ),
            quoted,
        )
        tokens = min_with_slippage(tokens_for_buy, slippage)
        if tokens <= 0:
            return TradeQuote.zero()
        spend = curve_spend_for_tokens(tokens, v_tokens, v_sol, total_fee_bps)
        fee = withheld(tokens)
        return TradeQuote(
            primary_amount=tokens,
            counter_amount=spend,
            bound_amount=max_with_slippage(spend, slippage),
            price_estimate=price,
            token_amount=tokens - fee,
            sol_amount=spend,
            transfer_fee=fee,
        )

    def _curve_sell(
        self,
        request: TradeRequest,
        curve: CurveState,
        fees: FeeSchedule,
        withheld: Callable[[int], int],
    ) -> TradeQuote:
        v_tokens = curve.virtual_token_reserves
        v_sol = curve.virtual_sol_reserves
        tokens = request.amount

        if request.mode == QuotingMode.EXACT_OUTPUT:
            tokens = curve_tokens_for_sol_out(
                request.amount, v_tokens, v_sol, curve.real_sol_reserves
            )
            if tokens is None:
                raise InfeasibleRequest(
                    f"Curve cannot pay {request.amount} lamports "
                    f"(virtual SOL {v_sol}, real SOL {curve.real_sol_reserves})"
                )

        sol_out = curve_sell_output(tokens, v_tokens, v_sol)
        if sol_out <= 0:
            return TradeQuote.zero()
        return TradeQuote(
            primary_amount=tokens,
            counter_amount=sol_out,
            bound_amount=min_with_slippage(sol_out, request.slippage_bps),
            price_estimate=price_estimate(sol_out, tokens),
            token_amount=tokens,
            sol_amount=sol_out,
        )

    def _pool_buy(
        self,
        request: TradeRequest,
        pool: PoolState,
        fees: FeeSchedule,
        withheld: Callable[[int], int],
    ) -> TradeQuote:
        amount = request.amount
        slippage = request.slippage_bps
        fee_bps = fees.total_bps

        if request.mode == QuotingMode.EXACT_OUTPUT:
            spend = pool_quote_in_for_tokens(
                amount, pool.base_reserve, pool.quote_reserve, fee_bps
            )
            if spend is None:
                raise InfeasibleRequest(
                    f"Cannot buy {amount} tokens, pool holds {pool.base_reserve}"
                )
            tokens = amount
            price = price_estimate(spend, tokens)
        else:
            quoted = pool_tokens_for_quote_in(
                amount, pool.base_reserve, pool.quote_reserve, fee_bps
            )
            tokens = min_with_slippage(quoted, slippage)
            if tokens <= 0:
                return TradeQuote.zero()
            spend = pool_quote_in_for_tokens(
                tokens, pool.base_reserve, pool.quote_reserve, fee_bps
            )
            price = price_estimate(amount, quoted)

        fee = withheld(tokens)
        return TradeQuote(
            primary_amount=tokens,
            counter_amount=spend,
            bound_amount=max_with_slippage(spend, slippage),
            price_estimate=price,
            token_amount=tokens - fee,
            sol_amount=spend,
            transfer_fee=fee,
        )

    def _pool_sell(
        self,
        request: TradeRequest,
        pool: PoolState,
        fees: FeeSchedule,
        withheld: Callable[[int], int],
    ) -> TradeQuote:
        fee_bps = fees.total_bps
        tokens = request.amount

        if request.mode == QuotingMode.EXACT_OUTPUT:
            tokens = pool_tokens_for_quote_out(
                request.amount, pool.base_reserve, pool.quote_reserve, fee_bps
            )
            if tokens is None:
                raise InfeasibleRequest(
                    f"Pool cannot pay {request.amount} lamports (quote reserve {pool.quote_reserve})"
                )

        quote_out = pool_sell_output(tokens, pool.base_reserve, pool.quote_reserve, fee_bps)
        if quote_out <= 0:
            return TradeQuote.zero()
        return TradeQuote(
            primary_amount=tokens,
            counter_amount=quote_out,
            bound_amount=min_with_slippage(quote_out, request.slippage_bps),
            price_estimate=price_estimate(quote_out, tokens),
            token_amount=tokens,
            sol_amount=quote_out,
        )

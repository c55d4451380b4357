"""Тесты TradeExecutor: ретраи, фатальные ошибки, кеш балансов"""
from unittest.mock import AsyncMock

import pytest
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from conftest import curve_bytes, mint_bytes, pool_bytes, pump_global_bytes
from core.errors import (
    AccountNotFound,
    InfeasibleRequest,
    MechanismChanged,
    SubmissionRejected,
    TradeFailed,
)
from core.pubkeys import SystemAddresses
from interfaces.core import Platform, QuotingMode, TradeDirection, TradeRequest
from trading.balance_cache import InMemoryBalanceCache
from trading.executor import RetryPolicy, TradeExecutor


@pytest.fixture
def fee_recipient():
    return Pubkey.new_unique()


@pytest.fixture
def live_curve(chain, mint, pumpfun_addresses, fee_recipient):
    """Active curve, global account and a legacy SPL mint on chain"""
    chain.put(pumpfun_addresses.derive_bonding_curve(mint), curve_bytes())
    chain.put(pumpfun_addresses.derive_global(), pump_global_bytes(fee_recipient))
    chain.put(mint, mint_bytes(), owner=SystemAddresses.TOKEN_PROGRAM)
    return mint


@pytest.fixture
def cache():
    return InMemoryBalanceCache(sol_lamports=5_000_000_000)


@pytest.fixture
def executor(mock_client, wallet, cache):
    return TradeExecutor(
        mock_client,
        wallet,
        cache=cache,
        retry=RetryPolicy(max_attempts=3, delay_seconds=0),
    )


def buy(mint, amount=100_000_000, mode=QuotingMode.BUDGET_IN):
    return TradeRequest(
        mint=mint,
        direction=TradeDirection.BUY,
        mode=mode,
        amount=amount,
        slippage_bps=500,
    )


def put_pool(chain, mint, pumpswap_addresses):
    base_vault = Pubkey.new_unique()
    quote_vault = Pubkey.new_unique()
    chain.put(
        pumpswap_addresses.derive_pool(mint),
        pool_bytes(mint, pool_base_token_account=base_vault, pool_quote_token_account=quote_vault),
    )
    chain.token_balances[base_vault] = 200_000_000_000_000
    chain.token_balances[quote_vault] = 85_000_000_000


@pytest.mark.asyncio
async def test_buy_on_curve(executor, mock_client, live_curve, cache, fee_recipient):
    result = await executor.execute_buy(buy(live_curve))

    assert result.submitted
    assert result.attempts == 1
    assert result.platform == Platform.PUMP_FUN
    assert result.realized_token_amount == result.quote.token_amount
    assert cache.get_holding(live_curve).amount == result.quote.token_amount

    instructions = mock_client.build_and_send_transaction.await_args.args[0]
    # ATA create + buy
    assert len(instructions) == 2
    assert instructions[1].accounts[1].pubkey == fee_recipient
    assert mock_client.build_and_send_transaction.await_args.kwargs["compute_unit_limit"] == 200_000


@pytest.mark.asyncio
async def test_buy_uses_realized_balance_change(executor, mock_client, live_curve, cache):
    mock_client.get_token_balance_change = AsyncMock(return_value=123_456)

    result = await executor.execute_buy(buy(live_curve))

    assert result.realized_token_amount == 123_456
    assert cache.get_holding(live_curve).amount == 123_456


@pytest.mark.asyncio
async def test_retries_then_succeeds(executor, mock_client, live_curve):
    mock_client.build_and_send_transaction = AsyncMock(
        side_effect=[SubmissionRejected("blockhash not found"), "sig_2"]
    )

    result = await executor.execute_buy(buy(live_curve))

    assert result.signature == "sig_2"
    assert result.attempts == 2


@pytest.mark.asyncio
async def test_retry_bound(executor, mock_client, live_curve, cache):
    mock_client.build_and_send_transaction = AsyncMock(
        side_effect=SubmissionRejected("slippage exceeded")
    )

    with pytest.raises(TradeFailed) as exc_info:
        await executor.execute_buy(buy(live_curve))

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, SubmissionRejected)
    assert mock_client.build_and_send_transaction.await_count == 3
    assert cache.get_holding(live_curve) is None


@pytest.mark.asyncio
async def test_unconfirmed_counts_as_rejection(executor, mock_client, live_curve):
    mock_client.confirm_transaction = AsyncMock(side_effect=[False, True])

    result = await executor.execute_buy(buy(live_curve))

    assert result.attempts == 2


@pytest.mark.asyncio
async def test_missing_mechanism_is_fatal(executor, mock_client, mint):
    with pytest.raises(AccountNotFound):
        await executor.execute_buy(buy(mint))

    mock_client.build_and_send_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_infeasible_is_fatal(executor, mock_client, live_curve):
    request = buy(live_curve, amount=10**18, mode=QuotingMode.EXACT_OUTPUT)

    with pytest.raises(InfeasibleRequest):
        await executor.execute_buy(request)

    mock_client.build_and_send_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_quote_not_submitted(executor, mock_client, live_curve, cache):
    result = await executor.execute_buy(buy(live_curve, amount=1))

    assert not result.submitted
    assert result.quote.is_zero
    mock_client.build_and_send_transaction.assert_not_awaited()
    assert cache.get_holding(live_curve) is None


@pytest.mark.asyncio
async def test_migration_mid_trade_retries_on_pool(
    executor, chain, mock_client, live_curve, pumpfun_addresses, pumpswap_addresses
):
    async def migrate_then_land(instructions, *args, **kwargs):
        if mock_client.build_and_send_transaction.await_count == 1:
            chain.put(
                pumpfun_addresses.derive_bonding_curve(live_curve),
                curve_bytes(complete=True),
            )
            put_pool(chain, live_curve, pumpswap_addresses)
            raise MechanismChanged("BondingCurveComplete")
        return "sig_pool"

    mock_client.build_and_send_transaction = AsyncMock(side_effect=migrate_then_land)

    result = await executor.execute_buy(buy(live_curve))

    assert result.platform == Platform.PUMP_SWAP
    assert result.signature == "sig_pool"
    assert result.attempts == 2
    assert mock_client.build_and_send_transaction.await_args.kwargs["compute_unit_limit"] == 500_000


@pytest.mark.asyncio
async def test_sell_fraction_updates_cache(executor, chain, wallet, live_curve, cache):
    token_account = get_associated_token_address(
        wallet.pubkey(), live_curve, SystemAddresses.TOKEN_PROGRAM
    )
    chain.put(token_account, bytes(165))
    cache.record_fill(live_curve, 1_000_000_000_000)

    result = await executor.execute_sell_fraction(live_curve, 50, slippage_bps=500)

    assert result.submitted
    assert result.quote.primary_amount == 500_000_000_000
    assert cache.get_holding(live_curve).amount == 500_000_000_000
    assert cache.get_balance() == 5_000_000_000 + result.quote.sol_amount


@pytest.mark.asyncio
async def test_sell_everything_closes_account(
    executor, chain, mock_client, wallet, live_curve, cache
):
    token_account = get_associated_token_address(
        wallet.pubkey(), live_curve, SystemAddresses.TOKEN_PROGRAM
    )
    chain.put(token_account, bytes(165))
    cache.record_fill(live_curve, 1_000_000_000_000)

    await executor.execute_sell_fraction(live_curve, 100, slippage_bps=500)

    instructions = mock_client.build_and_send_transaction.await_args.args[0]
    assert len(instructions) == 2
    assert cache.get_holding(live_curve) is None


@pytest.mark.asyncio
async def test_sell_without_token_account_is_fatal(executor, mock_client, live_curve, cache):
    cache.record_fill(live_curve, 1_000)

    with pytest.raises(AccountNotFound):
        await executor.execute_sell_fraction(live_curve, 100, slippage_bps=500)

    mock_client.build_and_send_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_sell_fraction_without_holding(executor, live_curve):
    with pytest.raises(InfeasibleRequest):
        await executor.execute_sell_fraction(live_curve, 50, slippage_bps=500)


@pytest.mark.asyncio
async def test_direction_checked(executor, live_curve):
    sell = TradeRequest(
        mint=live_curve,
        direction=TradeDirection.SELL,
        mode=QuotingMode.EXACT_INPUT,
        amount=1,
        slippage_bps=0,
    )
    with pytest.raises(ValueError):
        await executor.execute_buy(sell)


@pytest.mark.asyncio
async def test_claim_cashback(executor, chain, mock_client, wallet, pumpswap_addresses):
    accounts = pumpswap_addresses.get_claim_accounts(wallet.pubkey())
    chain.put(accounts["user_volume_accumulator"], bytes(100))

    signature = await executor.claim_cashback(Platform.PUMP_SWAP)

    assert signature == "test_signature_abc"
    instructions = mock_client.build_and_send_transaction.await_args.args[0]
    # both WSOL accounts are missing and get created first
    assert len(instructions) == 3


@pytest.mark.asyncio
async def test_claim_without_accumulator_is_fatal(executor, mock_client):
    with pytest.raises(AccountNotFound):
        await executor.claim_cashback(Platform.PUMP_FUN)

    mock_client.build_and_send_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_user_accounts_checked_before_reserves(
    executor, chain, mock_client, live_curve, pumpfun_addresses
):
    """Тест: проверка существования аккаунтов идёт до чтения резервов"""
    curve_address = pumpfun_addresses.derive_bonding_curve(live_curve)
    order = []

    async def account_info(address):
        if address == curve_address:
            order.append("reserves")
        return await chain.get_account_info(address)

    async def multiple_accounts(addresses):
        order.append("existence")
        return await chain.get_multiple_accounts(addresses)

    mock_client.get_account_info = AsyncMock(side_effect=account_info)
    mock_client.get_multiple_accounts = AsyncMock(side_effect=multiple_accounts)

    await executor.execute_buy(buy(live_curve))

    assert "reserves" in order
    assert order.index("existence") < order.index("reserves")


@pytest.mark.asyncio
async def test_sell_without_token_account_skips_reserve_read(
    executor, mock_client, live_curve, pumpfun_addresses, cache
):
    cache.record_fill(live_curve, 1_000)
    curve_address = pumpfun_addresses.derive_bonding_curve(live_curve)

    with pytest.raises(AccountNotFound):
        await executor.execute_sell_fraction(live_curve, 100, slippage_bps=500)

    read = [call.args[0] for call in mock_client.get_account_info.await_args_list]
    assert curve_address not in read


@pytest.mark.asyncio
async def test_rpc_failure_is_retried(executor, mock_client, live_curve):
    mock_client.build_and_send_transaction = AsyncMock(
        side_effect=[ConnectionError("connection reset"), "sig_2"]
    )

    result = await executor.execute_buy(buy(live_curve))

    assert result.attempts == 2


@pytest.mark.asyncio
async def test_unexpected_error_is_not_retried(executor, mock_client, live_curve):
    """Тест: ошибки программирования не ретраятся и не оборачиваются в TradeFailed"""
    mock_client.build_and_send_transaction = AsyncMock(side_effect=KeyError("pool"))

    with pytest.raises(KeyError):
        await executor.execute_buy(buy(live_curve))

    assert mock_client.build_and_send_transaction.await_count == 1

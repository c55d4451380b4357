"""Тесты чтения состояния: кривая, пул, минт"""
import pytest
from solders.pubkey import Pubkey

from conftest import (
    INITIAL_VIRTUAL_TOKENS,
    curve_bytes,
    mint_bytes,
    pool_bytes,
    token2022_mint_bytes,
)
from core.errors import AccountNotFound, MalformedAccount
from core.pubkeys import SystemAddresses
from interfaces.core import CurveState, PoolState
from platforms.pumpfun.curve_manager import decode_curve_state
from platforms.pumpswap.pool_manager import decode_pool_account
from trading.state_reader import StateReader, decode_mint


def test_decode_curve_without_trailing_flags(mint):
    address = Pubkey.new_unique()
    creator = Pubkey.new_unique()

    state = decode_curve_state(address, mint, curve_bytes(creator=creator))

    assert state.virtual_token_reserves == INITIAL_VIRTUAL_TOKENS
    assert state.creator == creator
    assert state.complete is False
    assert state.is_mayhem_mode is False
    assert state.is_cashback_coin is False


def test_decode_curve_with_flags(mint):
    state = decode_curve_state(
        Pubkey.new_unique(), mint, curve_bytes(mayhem=True, cashback=True)
    )
    assert state.is_mayhem_mode is True
    assert state.is_cashback_coin is True


def test_decode_curve_mayhem_only(mint):
    state = decode_curve_state(Pubkey.new_unique(), mint, curve_bytes(mayhem=True))
    assert state.is_mayhem_mode is True
    assert state.is_cashback_coin is False


def test_decode_curve_too_short(mint):
    with pytest.raises(MalformedAccount):
        decode_curve_state(Pubkey.new_unique(), mint, curve_bytes()[:80])


def test_decode_curve_zero_reserves_active(mint):
    with pytest.raises(MalformedAccount):
        decode_curve_state(Pubkey.new_unique(), mint, curve_bytes(virtual_sol_reserves=0))


def test_decode_curve_zero_reserves_complete_ok(mint):
    state = decode_curve_state(
        Pubkey.new_unique(),
        mint,
        curve_bytes(virtual_token_reserves=0, virtual_sol_reserves=0, complete=True),
    )
    assert state.complete is True


def test_decode_pool_account(mint):
    base_vault = Pubkey.new_unique()
    quote_vault = Pubkey.new_unique()
    creator = Pubkey.new_unique()

    pool = decode_pool_account(
        Pubkey.new_unique(),
        pool_bytes(mint, pool_base_token_account=base_vault,
                   pool_quote_token_account=quote_vault, coin_creator=creator),
    )

    assert pool.base_mint == mint
    assert pool.quote_mint == SystemAddresses.SOL_MINT
    assert pool.pool_base_token_account == base_vault
    assert pool.pool_quote_token_account == quote_vault
    assert pool.coin_creator == creator


def test_decode_pool_too_short(mint):
    with pytest.raises(MalformedAccount):
        decode_pool_account(Pubkey.new_unique(), pool_bytes(mint)[:200])


def test_decode_legacy_mint(mint):
    info = decode_mint(mint, SystemAddresses.TOKEN_PROGRAM, mint_bytes(decimals=6))
    assert info.decimals == 6
    assert info.transfer_fee is None
    assert info.is_token_2022 is False


def test_decode_token2022_transfer_fee(mint):
    data = token2022_mint_bytes(older=(0, 1_000, 50), newer=(600, 5_000, 100))

    info = decode_mint(mint, SystemAddresses.TOKEN_2022_PROGRAM, data)

    assert info.is_token_2022 is True
    assert info.transfer_fee.older.basis_points == 50
    assert info.transfer_fee.newer.maximum_fee == 5_000
    assert info.transfer_fee.active(599).basis_points == 50
    assert info.transfer_fee.active(600).basis_points == 100


def test_decode_token2022_without_extensions(mint):
    info = decode_mint(mint, SystemAddresses.TOKEN_2022_PROGRAM, mint_bytes())
    assert info.transfer_fee is None


def test_decode_mint_unknown_owner(mint):
    with pytest.raises(MalformedAccount):
        decode_mint(mint, SystemAddresses.SYSTEM_PROGRAM, mint_bytes())


def _put_pool(chain, mint, pumpswap_addresses, base=1_000_000, quote=2_000_000):
    base_vault = Pubkey.new_unique()
    quote_vault = Pubkey.new_unique()
    chain.put(
        pumpswap_addresses.derive_pool(mint),
        pool_bytes(mint, pool_base_token_account=base_vault, pool_quote_token_account=quote_vault),
    )
    chain.token_balances[base_vault] = base
    chain.token_balances[quote_vault] = quote


@pytest.mark.asyncio
async def test_read_mechanism_active_curve(chain, mock_client, mint, pumpfun_addresses):
    chain.put(pumpfun_addresses.derive_bonding_curve(mint), curve_bytes())

    mechanism = await StateReader(mock_client).read_mechanism(mint)

    assert isinstance(mechanism, CurveState)
    assert mechanism.mint == mint


@pytest.mark.asyncio
async def test_read_mechanism_complete_curve_routes_to_pool(
    chain, mock_client, mint, pumpfun_addresses, pumpswap_addresses
):
    chain.put(
        pumpfun_addresses.derive_bonding_curve(mint),
        curve_bytes(complete=True, mayhem=False, cashback=True),
    )
    _put_pool(chain, mint, pumpswap_addresses)

    mechanism = await StateReader(mock_client).read_mechanism(mint)

    assert isinstance(mechanism, PoolState)
    assert mechanism.base_reserve == 1_000_000
    assert mechanism.quote_reserve == 2_000_000
    assert mechanism.is_cashback_coin is True


@pytest.mark.asyncio
async def test_read_mechanism_missing_curve_uses_pool(
    chain, mock_client, mint, pumpswap_addresses
):
    _put_pool(chain, mint, pumpswap_addresses)

    mechanism = await StateReader(mock_client).read_mechanism(mint)

    assert isinstance(mechanism, PoolState)


@pytest.mark.asyncio
async def test_read_mechanism_nothing_found(mock_client, mint):
    with pytest.raises(AccountNotFound):
        await StateReader(mock_client).read_mechanism(mint)


@pytest.mark.asyncio
async def test_read_pool_wrong_base_mint(chain, mock_client, mint, pumpswap_addresses):
    chain.put(pumpswap_addresses.derive_pool(mint), pool_bytes(Pubkey.new_unique()))

    with pytest.raises(MalformedAccount):
        await StateReader(mock_client).read_pool(mint)


@pytest.mark.asyncio
async def test_read_mint_uses_owner(chain, mock_client, mint):
    chain.put(mint, mint_bytes(), owner=SystemAddresses.TOKEN_2022_PROGRAM)

    info = await StateReader(mock_client).read_mint(mint)

    assert info.token_program == SystemAddresses.TOKEN_2022_PROGRAM


@pytest.mark.asyncio
async def test_missing_accounts(chain, mock_client):
    present = Pubkey.new_unique()
    absent = Pubkey.new_unique()
    chain.put(present, b"\x00")

    missing = await StateReader(mock_client).missing_accounts(
        {"present": present, "absent": absent}
    )

    assert missing == {"absent"}
    mock_client.get_multiple_accounts.assert_awaited_once()


@pytest.mark.asyncio
async def test_read_account_data_missing_is_none(mock_client):
    assert await StateReader(mock_client).read_account_data(Pubkey.new_unique()) is None

"""
Pytest fixtures for pump-trader tests
"""
import struct
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from core.errors import AccountNotFound
from core.pubkeys import SystemAddresses
from interfaces.core import CurveState, FeeSchedule, PoolState
from platforms.pumpfun.address_provider import PumpFunAddressProvider
from platforms.pumpswap.address_provider import PumpSwapAddressProvider

# Reserves of a freshly launched curve
INITIAL_VIRTUAL_TOKENS = 1_073_000_000_000_000
INITIAL_VIRTUAL_SOL = 30_000_000_000
INITIAL_REAL_TOKENS = 793_100_000_000_000
TOTAL_SUPPLY = 1_000_000_000_000_000


def curve_bytes(
    virtual_token_reserves=INITIAL_VIRTUAL_TOKENS,
    virtual_sol_reserves=INITIAL_VIRTUAL_SOL,
    real_token_reserves=INITIAL_REAL_TOKENS,
    real_sol_reserves=0,
    token_total_supply=TOTAL_SUPPLY,
    complete=False,
    creator=None,
    mayhem=None,
    cashback=None,
) -> bytes:
    """Raw bonding curve account; trailing flags only when given."""
    creator = creator or Pubkey.new_unique()
    data = (
        b"\x17\xb7\xf8\x37\x60\xd8\xac\x60"
        + struct.pack(
            "<QQQQQ",
            virtual_token_reserves,
            virtual_sol_reserves,
            real_token_reserves,
            real_sol_reserves,
            token_total_supply,
        )
        + bytes([1 if complete else 0])
        + bytes(creator)
    )
    if mayhem is not None or cashback is not None:
        data += bytes([1 if mayhem else 0])
    if cashback is not None:
        data += bytes([1 if cashback else 0])
    return data


def pool_bytes(
    base_mint: Pubkey,
    quote_mint: Pubkey = SystemAddresses.SOL_MINT,
    pool_base_token_account: Pubkey | None = None,
    pool_quote_token_account: Pubkey | None = None,
    coin_creator: Pubkey | None = None,
) -> bytes:
    return (
        bytes(8)
        + bytes([255])
        + struct.pack("<H", 0)
        + bytes(Pubkey.new_unique())
        + bytes(base_mint)
        + bytes(quote_mint)
        + bytes(Pubkey.new_unique())
        + bytes(pool_base_token_account or Pubkey.new_unique())
        + bytes(pool_quote_token_account or Pubkey.new_unique())
        + struct.pack("<Q", 0)
        + bytes(coin_creator or Pubkey.new_unique())
    )


def mint_bytes(decimals: int = 6, size: int = 82) -> bytes:
    data = bytearray(size)
    data[44] = decimals
    data[45] = 1
    return bytes(data)


def token2022_mint_bytes(
    older=(0, 0, 0), newer=(0, 0, 0), decimals: int = 6
) -> bytes:
    """Token-2022 mint with a transfer-fee extension.

    older/newer are (epoch, maximum_fee, basis_points).
    """
    base = bytearray(165)
    base[44] = decimals
    base[45] = 1
    extension = (
        bytes(32)
        + bytes(32)
        + struct.pack("<Q", 0)
        + struct.pack("<QQH", *older)
        + struct.pack("<QQH", *newer)
    )
    return (
        bytes(base)
        + bytes([1])
        + struct.pack("<HH", 1, len(extension))
        + extension
    )


def fee_config_bytes(lp_bps: int, protocol_bps: int, creator_bps: int) -> bytes:
    return bytes(8) + bytes(32) + bytes([255]) + struct.pack(
        "<QQQ", lp_bps, protocol_bps, creator_bps
    )


def pump_global_bytes(
    fee_recipient: Pubkey, protocol_bps: int = 95, creator_bps: int = 30
) -> bytes:
    data = bytearray(200)
    data[41:73] = bytes(fee_recipient)
    data[105:113] = struct.pack("<Q", protocol_bps)
    data[154:162] = struct.pack("<Q", creator_bps)
    return bytes(data)


class FakeChain:
    """Accounts and token balances keyed by address."""

    def __init__(self):
        self.accounts: dict[Pubkey, SimpleNamespace] = {}
        self.token_balances: dict[Pubkey, int] = {}

    def put(self, address: Pubkey, data: bytes, owner: Pubkey | None = None):
        self.accounts[address] = SimpleNamespace(
            data=data, owner=owner or SystemAddresses.SYSTEM_PROGRAM
        )

    def remove(self, address: Pubkey):
        self.accounts.pop(address, None)

    async def get_account_info(self, address: Pubkey):
        if address not in self.accounts:
            raise AccountNotFound(address)
        return self.accounts[address]

    async def get_multiple_accounts(self, addresses):
        return [self.accounts.get(address) for address in addresses]

    async def get_token_account_balance(self, address: Pubkey) -> int:
        return self.token_balances.get(address, 0)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def mock_client(chain):
    """SolanaClient mock backed by FakeChain"""
    client = MagicMock()
    client.get_account_info = AsyncMock(side_effect=chain.get_account_info)
    client.get_multiple_accounts = AsyncMock(side_effect=chain.get_multiple_accounts)
    client.get_token_account_balance = AsyncMock(
        side_effect=chain.get_token_account_balance
    )
    client.get_epoch = AsyncMock(return_value=500)
    client.build_and_send_transaction = AsyncMock(return_value="test_signature_abc")
    client.confirm_transaction = AsyncMock(return_value=True)
    client.get_token_balance_change = AsyncMock(return_value=None)
    return client


@pytest.fixture
def wallet():
    return Keypair()


@pytest.fixture
def mint():
    return Pubkey.new_unique()


@pytest.fixture
def pumpfun_addresses():
    return PumpFunAddressProvider()


@pytest.fixture
def pumpswap_addresses():
    return PumpSwapAddressProvider()


@pytest.fixture
def curve(mint, pumpfun_addresses):
    return CurveState(
        mint=mint,
        bonding_curve=pumpfun_addresses.derive_bonding_curve(mint),
        virtual_token_reserves=INITIAL_VIRTUAL_TOKENS,
        virtual_sol_reserves=INITIAL_VIRTUAL_SOL,
        real_token_reserves=INITIAL_REAL_TOKENS,
        real_sol_reserves=0,
        token_total_supply=TOTAL_SUPPLY,
        complete=False,
        creator=Pubkey.new_unique(),
    )


@pytest.fixture
def pool(mint, pumpswap_addresses):
    return PoolState(
        mint=mint,
        pool=pumpswap_addresses.derive_pool(mint),
        base_reserve=200_000_000_000_000,
        quote_reserve=85_000_000_000,
        coin_creator=Pubkey.new_unique(),
        pool_base_token_account=Pubkey.new_unique(),
        pool_quote_token_account=Pubkey.new_unique(),
    )


@pytest.fixture
def curve_fees():
    return FeeSchedule(protocol_bps=95, creator_bps=30, source="test")


@pytest.fixture
def pool_fees():
    return FeeSchedule(protocol_bps=5, creator_bps=5, lp_bps=20, source="test")


@pytest.fixture(autouse=True)
def trade_log_dir(tmp_path, monkeypatch):
    """Keep JSON trade events out of the working directory"""
    monkeypatch.setattr("utils.logger.LOG_DIR", tmp_path)
    return tmp_path

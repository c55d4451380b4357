"""
PumpSwap pool account decoding and reserve reads.
"""

from dataclasses import dataclass

from construct import Bytes, Int8ul, Int16ul, Int64ul, Struct
from solders.pubkey import Pubkey

from core.client import SolanaClient
from core.errors import MalformedAccount
from interfaces.core import PoolState
from platforms.pumpswap.address_provider import PumpSwapAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)

POOL_STRUCT = Struct(
    "discriminator" / Bytes(8),
    "pool_bump" / Int8ul,
    "index" / Int16ul,
    "creator" / Bytes(32),
    "base_mint" / Bytes(32),
    "quote_mint" / Bytes(32),
    "lp_mint" / Bytes(32),
    "pool_base_token_account" / Bytes(32),
    "pool_quote_token_account" / Bytes(32),
    "lp_supply" / Int64ul,
    "coin_creator" / Bytes(32),
)
POOL_MIN_SIZE = POOL_STRUCT.sizeof()  # 243


@dataclass(frozen=True)
class PoolAccount:
    """Static part of a pool account (reserves live in the vaults)."""

    address: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    pool_base_token_account: Pubkey
    pool_quote_token_account: Pubkey
    coin_creator: Pubkey


def decode_pool_account(address: Pubkey, data: bytes) -> PoolAccount:
    if len(data) < POOL_MIN_SIZE:
        raise MalformedAccount(
            address, f"pool account needs {POOL_MIN_SIZE} bytes, got {len(data)}"
        )
    parsed = POOL_STRUCT.parse(data)
    return PoolAccount(
        address=address,
        base_mint=Pubkey.from_bytes(parsed.base_mint),
        quote_mint=Pubkey.from_bytes(parsed.quote_mint),
        pool_base_token_account=Pubkey.from_bytes(parsed.pool_base_token_account),
        pool_quote_token_account=Pubkey.from_bytes(parsed.pool_quote_token_account),
        coin_creator=Pubkey.from_bytes(parsed.coin_creator),
    )


class PumpSwapPoolManager:
    """Fetches pool accounts and their vault balances."""

    def __init__(
        self,
        client: SolanaClient,
        address_provider: PumpSwapAddressProvider | None = None,
    ):
        self.client = client
        self.address_provider = address_provider or PumpSwapAddressProvider()

    async def get_pool_state(self, mint: Pubkey, is_cashback_coin: bool = False) -> PoolState:
        """Read the canonical pool for mint and both vault balances.

        Args:
            mint: Base mint of the pool
            is_cashback_coin: Cashback flag carried over from the retired curve

        Raises:
            AccountNotFound: If the pool does not exist
            MalformedAccount: If the pool is undecodable or belongs to another mint
        """
        pool_address = self.address_provider.derive_pool(mint)
        account = await self.client.get_account_info(pool_address)
        pool = decode_pool_account(pool_address, bytes(account.data))

        if pool.base_mint != mint:
            raise MalformedAccount(pool_address, f"pool base mint {pool.base_mint} != {mint}")

        base_reserve = await self.client.get_token_account_balance(
            pool.pool_base_token_account
        )
        quote_reserve = await self.client.get_token_account_balance(
            pool.pool_quote_token_account
        )
        if base_reserve <= 0 or quote_reserve <= 0:
            logger.warning(
                f"Pool {pool_address} has an empty side (base={base_reserve}, quote={quote_reserve})"
            )

        logger.debug(f"Pool {pool_address}: base={base_reserve} quote={quote_reserve}")

        return PoolState(
            mint=mint,
            pool=pool_address,
            base_reserve=base_reserve,
            quote_reserve=quote_reserve,
            coin_creator=pool.coin_creator,
            pool_base_token_account=pool.pool_base_token_account,
            pool_quote_token_account=pool.pool_quote_token_account,
            quote_mint=pool.quote_mint,
            is_cashback_coin=is_cashback_coin,
        )
